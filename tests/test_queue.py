"""Tests for the in-process dispatch queue."""

from __future__ import annotations

import asyncio

import pytest

from herald.channels.registry import AdapterRegistry
from herald.notifications.engine import NotificationEngine
from herald.notifications.models import NotificationStatus
from herald.notifications.queue import AsyncioQueueService, QueueService
from herald.notifications.renderer import JinjaTemplateRenderer

from conftest import user_spec


def test_satisfies_protocol() -> None:
    assert isinstance(AsyncioQueueService(), QueueService)


def test_requires_a_worker() -> None:
    with pytest.raises(ValueError):
        AsyncioQueueService(workers=0)


async def test_workers_dispatch_enqueued_ids(store, adapter, contexts) -> None:
    engine = NotificationEngine(
        backend=store,
        adapters=AdapterRegistry([adapter]),
        contexts=contexts,
        renderer=JinjaTemplateRenderer(),
        send_on_create=True,
    )
    queue = AsyncioQueueService(workers=2)
    engine.register_queue_service(queue)
    queue.start(engine.delayed_send)

    created = [await engine.create_notification(user_spec()) for _ in range(4)]
    await queue.join()
    await queue.stop()

    assert adapter.calls == 4
    for n in created:
        assert (await engine.get_notification(n.id)).status == NotificationStatus.SENT


async def test_duplicate_ids_collapse_while_queued() -> None:
    handled: list[str] = []

    async def handler(notification_id: str) -> None:
        handled.append(notification_id)

    queue = AsyncioQueueService(workers=1)
    await queue.enqueue("n-1")
    await queue.enqueue("n-1")
    await queue.enqueue("n-2")
    assert queue.size == 2

    queue.start(handler)
    await queue.join()
    await queue.stop()

    assert handled == ["n-1", "n-2"]


async def test_handler_errors_do_not_stop_workers() -> None:
    handled: list[str] = []

    async def handler(notification_id: str) -> None:
        if notification_id == "bad":
            raise RuntimeError("boom")
        handled.append(notification_id)

    queue = AsyncioQueueService(workers=1)
    queue.start(handler)
    await queue.enqueue("bad")
    await queue.enqueue("good")
    await queue.join()
    assert queue.running
    await queue.stop()

    assert handled == ["good"]
    assert not queue.running


async def test_duplicate_triggers_are_absorbed_by_claim(engine, adapter) -> None:
    n = await engine.create_notification(user_spec())
    queue = AsyncioQueueService(workers=3)
    queue.start(engine.delayed_send)

    for _ in range(3):
        await queue.enqueue(n.id)
        await asyncio.sleep(0)
    await queue.join()
    await queue.stop()

    assert adapter.calls == 1
