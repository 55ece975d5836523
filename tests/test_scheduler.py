"""Tests for the pending-notification poller."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from herald.channels.adapters.memory import MockChannelAdapter
from herald.channels.registry import AdapterRegistry
from herald.core.types import utcnow
from herald.notifications.engine import NotificationEngine
from herald.notifications.errors import DispatchError
from herald.notifications.models import DispatchOutcome, NotificationStatus, NotificationType
from herald.notifications.renderer import JinjaTemplateRenderer
from herald.notifications.scheduler import BatchResult, PendingNotificationPoller

from conftest import user_spec


async def test_run_once_dispatches_due_notifications(engine, adapter) -> None:
    due = [await engine.create_notification(user_spec()) for _ in range(3)]
    later = await engine.create_notification(user_spec(send_after=utcnow() + timedelta(hours=1)))

    batch = await PendingNotificationPoller(engine).run_once()

    assert batch.sent == 3
    assert batch.total == 3
    assert adapter.calls == 3
    for n in due:
        assert (await engine.get_notification(n.id)).status == NotificationStatus.SENT
    assert (await engine.get_notification(later.id)).status == NotificationStatus.PENDING_SEND


async def test_empty_run() -> None:
    class EmptyEngine:
        async def get_pending_notifications(self, now=None):
            return []

    batch = await PendingNotificationPoller(EmptyEngine()).run_once()
    assert batch == BatchResult()


async def test_failures_are_isolated(store, contexts) -> None:
    sms_only = MockChannelAdapter(notification_types=[NotificationType.SMS], fail_with="carrier rejected")
    email = MockChannelAdapter(notification_types=[NotificationType.EMAIL], key="email")
    engine = NotificationEngine(
        backend=store,
        adapters=AdapterRegistry([sms_only, email]),
        contexts=contexts,
        renderer=JinjaTemplateRenderer(),
        send_on_create=False,
    )
    await engine.create_notification(user_spec(notification_type="SMS"))
    await engine.create_notification(user_spec(notification_type="EMAIL"))
    await engine.create_notification(user_spec(notification_type="PUSH"))

    batch = await PendingNotificationPoller(engine).run_once()

    assert batch.sent == 1
    assert batch.failed == 2
    assert batch.errors == {}


async def test_raised_errors_are_collected(engine, adapter, monkeypatch: pytest.MonkeyPatch) -> None:
    ok = await engine.create_notification(user_spec())
    bad = await engine.create_notification(user_spec())
    original = engine.delayed_send

    async def flaky(notification_id, *, timeout=None):
        if notification_id == bad.id:
            raise DispatchError("backend unavailable")
        return await original(notification_id, timeout=timeout)

    monkeypatch.setattr(engine, "delayed_send", flaky)

    batch = await PendingNotificationPoller(engine).run_once()

    assert batch.sent == 1
    assert "backend unavailable" in batch.errors[bad.id]
    assert (await engine.get_notification(ok.id)).status == NotificationStatus.SENT


async def test_overlapping_runs_send_once(store, contexts) -> None:
    slow = MockChannelAdapter(delay=0.05)
    engine = NotificationEngine(
        backend=store,
        adapters=AdapterRegistry([slow]),
        contexts=contexts,
        renderer=JinjaTemplateRenderer(),
        send_on_create=False,
    )
    for _ in range(5):
        await engine.create_notification(user_spec())
    first, second = PendingNotificationPoller(engine), PendingNotificationPoller(engine)

    a, b = await asyncio.gather(first.run_once(), second.run_once())

    assert slow.calls == 5
    assert a.sent + b.sent == 5


async def test_concurrency_is_bounded(engine) -> None:
    active = 0
    peak = 0

    async def tracking(notification_id, *, timeout=None):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return await NotificationEngine.delayed_send(engine, notification_id, timeout=timeout)

    for _ in range(6):
        await engine.create_notification(user_spec())
    engine.delayed_send = tracking

    batch = await PendingNotificationPoller(engine, max_concurrency=2).run_once()

    assert batch.sent == 6
    assert peak == 2


async def test_start_and_close(engine, adapter) -> None:
    await engine.create_notification(user_spec())
    poller = PendingNotificationPoller(engine, interval=60)

    poller.start()
    assert poller.running
    for _ in range(50):
        if adapter.calls:
            break
        await asyncio.sleep(0.01)
    await poller.close()

    assert adapter.calls == 1
    assert not poller.running


def test_invalid_concurrency(engine) -> None:
    with pytest.raises(ValueError):
        PendingNotificationPoller(engine, max_concurrency=0)


def test_batch_counts() -> None:
    batch = BatchResult()
    assert (batch.sent, batch.failed, batch.skipped, batch.total) == (0, 0, 0, 0)
    assert DispatchOutcome.SKIPPED == "skipped"
