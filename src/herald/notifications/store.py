"""In-memory notification backend."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from herald.core.types import JsonObject, ensure_utc, utcnow
from herald.notifications.errors import InvalidStateError, NotFoundError
from herald.notifications.models import (
    DispatchClaim,
    Notification,
    NotificationPatch,
    NotificationSpec,
    NotificationStatus,
    OneOffRecipient,
    RegisteredUser,
)
from herald.notifications.transitions import ensure_transition
from herald.notifications.validation import apply_patch, new_notification


@dataclass
class _Record:
    notification: Notification
    claim_token: str | None = None
    claimed_at: datetime | None = None


def pending_sort_key(notification: Notification) -> tuple[bool, datetime, datetime]:
    """Order by ``send_after`` ascending with nulls first, then ``created_at``."""
    send_after = ensure_utc(notification.send_after)
    return (
        send_after is not None,
        send_after or notification.created_at,
        notification.created_at,
    )


class NotificationStore:
    """In-memory store for notifications.

    Single-process only: the lock plays the part of the row lock a real
    database provides, so every status change is a compare-and-swap.
    Returned notifications are copies; mutating them never touches the store.
    """

    def __init__(self, stale_claim_after: timedelta = timedelta(minutes=10)) -> None:
        self._records: dict[str, _Record] = {}
        self._lock = asyncio.Lock()
        self._stale_claim_after = stale_claim_after

    async def create(self, spec: NotificationSpec | Mapping[str, Any]) -> Notification:
        notification = new_notification(spec)
        async with self._lock:
            self._records[notification.id] = _Record(notification=notification)
        return notification.model_copy(deep=True)

    async def get_by_id(self, notification_id: str) -> Notification | None:
        record = self._records.get(notification_id)
        return record.notification.model_copy(deep=True) if record else None

    async def update(
        self,
        notification_id: str,
        patch: NotificationPatch | Mapping[str, Any],
    ) -> Notification:
        async with self._lock:
            record = self._require(notification_id)
            current = record.notification
            if current.status != NotificationStatus.PENDING_SEND:
                raise InvalidStateError(notification_id, current.status, "only pending notifications can be updated")
            if self._claim_active(record, utcnow()):
                raise InvalidStateError(notification_id, current.status, "dispatch in progress")
            record.notification = apply_patch(current, patch)
            return record.notification.model_copy(deep=True)

    async def list_pending(self, now: datetime | None = None) -> list[Notification]:
        now = ensure_utc(now) or utcnow()
        pending = [
            record.notification
            for record in self._records.values()
            if record.notification.is_eligible(now)
        ]
        pending.sort(key=pending_sort_key)
        return [n.model_copy(deep=True) for n in pending]

    async def claim_for_dispatch(
        self, notification_id: str, now: datetime | None = None
    ) -> DispatchClaim | None:
        now = ensure_utc(now) or utcnow()
        async with self._lock:
            record = self._records.get(notification_id)
            if record is None:
                return None
            if record.notification.status != NotificationStatus.PENDING_SEND:
                return None
            if self._claim_active(record, now):
                return None
            record.claim_token = str(uuid.uuid4())
            record.claimed_at = now
            return DispatchClaim(
                notification=record.notification.model_copy(deep=True),
                token=record.claim_token,
                claimed_at=now,
            )

    async def mark_sent(
        self,
        claim: DispatchClaim,
        context_used: JsonObject,
        adapter_used: str,
        sent_at: datetime | None = None,
    ) -> Notification | None:
        return await self._finalize(
            claim,
            NotificationStatus.SENT,
            context_used=context_used,
            adapter_used=adapter_used,
            sent_at=ensure_utc(sent_at) or utcnow(),
            failure_reason=None,
        )

    async def mark_failed(self, claim: DispatchClaim, reason: str) -> Notification | None:
        return await self._finalize(claim, NotificationStatus.FAILED, failure_reason=reason)

    async def cancel(self, notification_id: str) -> Notification:
        async with self._lock:
            record = self._require(notification_id)
            status = record.notification.status
            if status == NotificationStatus.PENDING_SEND and self._claim_active(record, utcnow()):
                raise InvalidStateError(notification_id, status, "dispatch in progress")
            return self._transition(record, NotificationStatus.CANCELLED)

    async def mark_read(
        self, notification_id: str, read_at: datetime | None = None
    ) -> Notification:
        async with self._lock:
            record = self._require(notification_id)
            return self._transition(
                record, NotificationStatus.READ, read_at=ensure_utc(read_at) or utcnow()
            )

    async def reschedule(
        self, notification_id: str, send_after: datetime | None = None
    ) -> Notification:
        async with self._lock:
            record = self._require(notification_id)
            changes: dict[str, Any] = {"failure_reason": None}
            if send_after is not None:
                changes["send_after"] = ensure_utc(send_after)
            return self._transition(record, NotificationStatus.PENDING_SEND, **changes)

    async def list_for_user(self, user_id: str) -> list[Notification]:
        return [
            r.notification.model_copy(deep=True)
            for r in self._records.values()
            if isinstance(r.notification.recipient, RegisteredUser)
            and r.notification.recipient.user_id == user_id
        ]

    async def list_for_one_off_recipient(self, email_or_phone: str) -> list[Notification]:
        return [
            r.notification.model_copy(deep=True)
            for r in self._records.values()
            if isinstance(r.notification.recipient, OneOffRecipient)
            and r.notification.recipient.email_or_phone == email_or_phone
        ]

    async def list_all(self) -> list[Notification]:
        return [r.notification.model_copy(deep=True) for r in self._records.values()]

    # -- internals -----------------------------------------------------------

    def _require(self, notification_id: str) -> _Record:
        record = self._records.get(notification_id)
        if record is None:
            raise NotFoundError(notification_id)
        return record

    def _claim_active(self, record: _Record, now: datetime) -> bool:
        if record.claim_token is None or record.claimed_at is None:
            return False
        return record.claimed_at > now - self._stale_claim_after

    def _transition(
        self, record: _Record, target: NotificationStatus, **changes: Any
    ) -> Notification:
        current = record.notification
        ensure_transition(current.id, current.status, target)
        record.notification = current.model_copy(
            update={"status": target, "updated_at": utcnow(), **changes}
        )
        record.claim_token = None
        record.claimed_at = None
        return record.notification.model_copy(deep=True)

    async def _finalize(
        self, claim: DispatchClaim, target: NotificationStatus, **changes: Any
    ) -> Notification | None:
        async with self._lock:
            record = self._records.get(claim.notification.id)
            if record is None or record.claim_token != claim.token:
                return None
            if record.notification.status != NotificationStatus.PENDING_SEND:
                return None
            return self._transition(record, target, **changes)
