"""Tests for PostgresNotificationRepository with SQLite async."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from herald.channels.adapters.memory import MockChannelAdapter
from herald.channels.registry import AdapterRegistry
from herald.db.engine import DatabaseManager
from herald.notifications.context import ContextRegistry
from herald.notifications.engine import NotificationEngine
from herald.notifications.errors import InvalidStateError, NotFoundError, ValidationError
from herald.notifications.models import DispatchOutcome, NotificationStatus, OneOffRecipient
from herald.notifications.renderer import JinjaTemplateRenderer
from herald.repositories.postgres.notifications import PostgresNotificationRepository

from conftest import one_off_spec, user_spec

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
async def repo():
    db = DatabaseManager("sqlite+aiosqlite:///:memory:")
    await db.create_all()
    yield PostgresNotificationRepository(db)
    await db.close()


@pytest.fixture
async def file_repo(tmp_path):
    db = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'herald.db'}")
    await db.create_all()
    yield PostgresNotificationRepository(db)
    await db.close()


async def test_create_and_get(repo) -> None:
    n = await repo.create(user_spec(send_after=NOW, attachments=[{"file_id": "f1"}]))
    found = await repo.get_by_id(n.id)
    assert found is not None
    assert found.recipient == n.recipient
    assert found.send_after == NOW
    assert found.send_after.tzinfo is not None
    assert found.attachments[0].file_id == "f1"
    assert found.context_parameters == {"name": "Ada"}
    assert found.status == NotificationStatus.PENDING_SEND


async def test_one_off_round_trip(repo) -> None:
    n = await repo.create(one_off_spec())
    found = await repo.get_by_id(n.id)
    assert found.recipient == OneOffRecipient(
        email_or_phone="prospect@example.com", first_name="Jane", last_name="Doe"
    )
    assert [x.id for x in await repo.list_for_one_off_recipient("prospect@example.com")] == [n.id]
    assert await repo.list_for_user("user-1") == []


async def test_get_missing(repo) -> None:
    assert await repo.get_by_id("missing") is None


async def test_create_validates(repo) -> None:
    with pytest.raises(ValidationError):
        await repo.create(one_off_spec(first_name=None))
    assert await repo.list_all() == []


async def test_list_pending_ordering(repo) -> None:
    later = await repo.create(user_spec(send_after=NOW - timedelta(minutes=1)))
    unscheduled = await repo.create(user_spec())
    earlier = await repo.create(user_spec(send_after=NOW - timedelta(hours=1)))
    await repo.create(user_spec(send_after=NOW + timedelta(minutes=1)))
    cancelled = await repo.create(user_spec())
    await repo.cancel(cancelled.id)

    pending = await repo.list_pending(NOW)

    assert [n.id for n in pending] == [unscheduled.id, earlier.id, later.id]


async def test_eligibility_boundary(repo) -> None:
    n = await repo.create(user_spec(send_after=NOW))
    assert [p.id for p in await repo.list_pending(NOW)] == [n.id]
    assert await repo.list_pending(NOW - timedelta(microseconds=1)) == []


class TestClaim:
    async def test_claim_then_mark_sent(self, repo) -> None:
        n = await repo.create(user_spec())
        claim = await repo.claim_for_dispatch(n.id)
        assert claim is not None
        assert await repo.claim_for_dispatch(n.id) is None

        sent = await repo.mark_sent(claim, {"name": "Ada"}, "mock", sent_at=NOW)

        assert sent.status == NotificationStatus.SENT
        assert sent.context_used == {"name": "Ada"}
        assert sent.adapter_used == "mock"
        assert sent.sent_at == NOW
        assert await repo.mark_failed(claim, "late") is None
        assert await repo.claim_for_dispatch(n.id) is None

    async def test_mark_failed(self, repo) -> None:
        n = await repo.create(user_spec())
        claim = await repo.claim_for_dispatch(n.id)
        failed = await repo.mark_failed(claim, "adapter: bounced")
        assert failed.status == NotificationStatus.FAILED
        assert failed.failure_reason == "adapter: bounced"

    async def test_stale_claim_takeover(self, repo) -> None:
        n = await repo.create(user_spec())
        first = await repo.claim_for_dispatch(n.id, now=NOW)
        assert await repo.claim_for_dispatch(n.id, now=NOW + timedelta(minutes=9)) is None
        second = await repo.claim_for_dispatch(n.id, now=NOW + timedelta(minutes=10))
        assert second is not None
        assert await repo.mark_sent(first, {}, "mock") is None
        assert (await repo.mark_sent(second, {}, "mock")).status == NotificationStatus.SENT

    async def test_concurrent_claims_have_one_winner(self, file_repo) -> None:
        n = await file_repo.create(user_spec())
        claims = await asyncio.gather(*(file_repo.claim_for_dispatch(n.id) for _ in range(8)))
        assert sum(1 for c in claims if c is not None) == 1


class TestTransitions:
    async def test_update(self, repo) -> None:
        n = await repo.create(user_spec())
        updated = await repo.update(n.id, {"title": "Changed", "send_after": NOW})
        assert updated.title == "Changed"
        found = await repo.get_by_id(n.id)
        assert found.title == "Changed"
        assert found.send_after == NOW

    async def test_update_rejects_immutable(self, repo) -> None:
        n = await repo.create(user_spec())
        with pytest.raises(ValidationError):
            await repo.update(n.id, {"status": "SENT"})

    async def test_update_rejects_null_attachments(self, repo) -> None:
        n = await repo.create(user_spec())
        with pytest.raises(ValidationError) as exc_info:
            await repo.update(n.id, {"attachments": None})
        assert "attachments" in exc_info.value.errors
        found = await repo.get_by_id(n.id)
        assert found.attachments == []

    async def test_update_while_claimed(self, repo) -> None:
        n = await repo.create(user_spec())
        await repo.claim_for_dispatch(n.id)
        with pytest.raises(InvalidStateError, match="dispatch in progress"):
            await repo.update(n.id, {"title": "x"})

    async def test_update_missing(self, repo) -> None:
        with pytest.raises(NotFoundError):
            await repo.update("missing", {"title": "x"})

    async def test_cancel(self, repo) -> None:
        n = await repo.create(user_spec())
        cancelled = await repo.cancel(n.id)
        assert cancelled.status == NotificationStatus.CANCELLED
        assert await repo.claim_for_dispatch(n.id) is None
        with pytest.raises(InvalidStateError):
            await repo.cancel(n.id)

    async def test_cancel_while_claimed(self, repo) -> None:
        n = await repo.create(user_spec())
        await repo.claim_for_dispatch(n.id)
        with pytest.raises(InvalidStateError, match="dispatch in progress"):
            await repo.cancel(n.id)

    async def test_read_and_reschedule(self, repo) -> None:
        sent = await repo.create(user_spec())
        await repo.mark_sent(await repo.claim_for_dispatch(sent.id), {}, "mock")
        read = await repo.mark_read(sent.id, read_at=NOW)
        assert read.status == NotificationStatus.READ
        assert read.read_at == NOW

        failed = await repo.create(user_spec())
        await repo.mark_failed(await repo.claim_for_dispatch(failed.id), "boom")
        rescheduled = await repo.reschedule(failed.id, NOW + timedelta(days=1))
        assert rescheduled.status == NotificationStatus.PENDING_SEND
        assert rescheduled.failure_reason is None
        assert rescheduled.send_after == NOW + timedelta(days=1)

        with pytest.raises(InvalidStateError):
            await repo.reschedule(sent.id)
        with pytest.raises(NotFoundError):
            await repo.mark_read("missing")


async def test_engine_over_sql_backend(file_repo) -> None:
    adapter = MockChannelAdapter(delay=0.02)
    engine = NotificationEngine(
        backend=file_repo,
        adapters=AdapterRegistry([adapter]),
        contexts=ContextRegistry({"greeting": lambda p: {"name": p["name"]}}),
        renderer=JinjaTemplateRenderer(),
        send_on_create=False,
    )
    n = await engine.create_notification(user_spec())

    results = await asyncio.gather(*(engine.send(n.id) for _ in range(5)))

    assert adapter.calls == 1
    assert [r.outcome for r in results].count(DispatchOutcome.SENT) == 1
    stored = await engine.get_notification(n.id)
    assert stored.status == NotificationStatus.SENT
    assert stored.context_used == {"name": "Ada"}
