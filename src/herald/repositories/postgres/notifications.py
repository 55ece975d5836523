"""SQL notification repository.

Every status change is a single ``UPDATE ... WHERE`` guarded by the
expected status (and, for claims, the claim columns). The row count tells
whether this caller won; that is the only cross-process exclusion the
engine relies on.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, case, or_, select, update

from herald.core.types import JsonObject, ensure_utc, utcnow
from herald.db.engine import DatabaseManager
from herald.db.models import NotificationRow
from herald.notifications.errors import InvalidStateError, NotFoundError
from herald.notifications.models import (
    AttachmentRef,
    DispatchClaim,
    Notification,
    NotificationPatch,
    NotificationSpec,
    NotificationStatus,
    NotificationType,
    OneOffRecipient,
    RegisteredUser,
)
from herald.notifications.transitions import ensure_transition
from herald.notifications.validation import apply_patch, new_notification

_PENDING = NotificationStatus.PENDING_SEND.value


class PostgresNotificationRepository:
    """SQL-backed notification storage (Postgres via asyncpg, SQLite via aiosqlite)."""

    def __init__(
        self,
        db: DatabaseManager,
        stale_claim_after: timedelta = timedelta(minutes=10),
    ) -> None:
        self._db = db
        self._stale_claim_after = stale_claim_after

    async def create(self, spec: NotificationSpec | Mapping[str, Any]) -> Notification:
        notification = new_notification(spec)
        async with self._db.session() as db:
            db.add(self._notification_to_row(notification))
            await db.commit()
        return notification

    async def get_by_id(self, notification_id: str) -> Notification | None:
        async with self._db.session() as db:
            row = await db.get(NotificationRow, notification_id)
            if row is None:
                return None
            return self._row_to_notification(row)

    async def update(
        self,
        notification_id: str,
        patch: NotificationPatch | Mapping[str, Any],
    ) -> Notification:
        current = await self._require(notification_id)
        if current.status != NotificationStatus.PENDING_SEND:
            raise InvalidStateError(notification_id, current.status, "only pending notifications can be updated")

        updated = apply_patch(current, patch)
        values = self._mutable_values(updated)
        won = await self._compare_and_swap(
            notification_id, _PENDING, values, self._unclaimed(utcnow())
        )
        if not won:
            raise InvalidStateError(notification_id, await self._status_of(notification_id), "dispatch in progress")
        return updated

    async def list_pending(self, now: datetime | None = None) -> list[Notification]:
        now = ensure_utc(now) or utcnow()
        stmt = (
            select(NotificationRow)
            .where(
                NotificationRow.status == _PENDING,
                or_(NotificationRow.send_after.is_(None), NotificationRow.send_after <= now),
            )
            .order_by(
                case((NotificationRow.send_after.is_(None), 0), else_=1),
                NotificationRow.send_after,
                NotificationRow.created_at,
            )
        )
        async with self._db.session() as db:
            result = await db.execute(stmt)
            return [self._row_to_notification(r) for r in result.scalars().all()]

    async def claim_for_dispatch(
        self, notification_id: str, now: datetime | None = None
    ) -> DispatchClaim | None:
        now = ensure_utc(now) or utcnow()
        token = str(uuid.uuid4())
        won = await self._compare_and_swap(
            notification_id,
            _PENDING,
            {"claim_token": token, "claimed_at": now},
            self._unclaimed(now),
        )
        if not won:
            return None
        notification = await self.get_by_id(notification_id)
        if notification is None:
            return None
        return DispatchClaim(notification=notification, token=token, claimed_at=now)

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
        current = await self._require(notification_id)
        ensure_transition(notification_id, current.status, NotificationStatus.CANCELLED)
        now = utcnow()
        won = await self._compare_and_swap(
            notification_id,
            _PENDING,
            {"status": NotificationStatus.CANCELLED.value, **self._cleared_claim(now)},
            self._unclaimed(now),
        )
        if not won:
            raise InvalidStateError(notification_id, await self._status_of(notification_id), "dispatch in progress")
        return await self._require(notification_id)

    async def mark_read(
        self, notification_id: str, read_at: datetime | None = None
    ) -> Notification:
        return await self._transition(
            notification_id,
            NotificationStatus.READ,
            {"read_at": ensure_utc(read_at) or utcnow()},
        )

    async def reschedule(
        self, notification_id: str, send_after: datetime | None = None
    ) -> Notification:
        values: dict[str, Any] = {"failure_reason": None}
        if send_after is not None:
            values["send_after"] = ensure_utc(send_after)
        return await self._transition(notification_id, NotificationStatus.PENDING_SEND, values)

    async def list_for_user(self, user_id: str) -> list[Notification]:
        return await self._list(NotificationRow.user_id == user_id)

    async def list_for_one_off_recipient(self, email_or_phone: str) -> list[Notification]:
        return await self._list(NotificationRow.email_or_phone == email_or_phone)

    async def list_all(self) -> list[Notification]:
        return await self._list()

    # -- internals -----------------------------------------------------------

    async def _list(self, *criteria: Any) -> list[Notification]:
        stmt = select(NotificationRow).where(*criteria).order_by(NotificationRow.created_at)
        async with self._db.session() as db:
            result = await db.execute(stmt)
            return [self._row_to_notification(r) for r in result.scalars().all()]

    async def _require(self, notification_id: str) -> Notification:
        notification = await self.get_by_id(notification_id)
        if notification is None:
            raise NotFoundError(notification_id)
        return notification

    async def _status_of(self, notification_id: str) -> NotificationStatus:
        return (await self._require(notification_id)).status

    def _unclaimed(self, now: datetime) -> Any:
        cutoff = now - self._stale_claim_after
        return or_(NotificationRow.claim_token.is_(None), NotificationRow.claimed_at <= cutoff)

    @staticmethod
    def _cleared_claim(now: datetime) -> dict[str, Any]:
        return {"claim_token": None, "claimed_at": None, "updated_at": now}

    async def _compare_and_swap(
        self,
        notification_id: str,
        expected_status: str,
        values: dict[str, Any],
        *criteria: Any,
    ) -> bool:
        stmt = (
            update(NotificationRow)
            .where(
                and_(
                    NotificationRow.id == notification_id,
                    NotificationRow.status == expected_status,
                    *criteria,
                )
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._db.session() as db:
            result = await db.execute(stmt)
            await db.commit()
        return result.rowcount == 1

    async def _transition(
        self,
        notification_id: str,
        target: NotificationStatus,
        values: dict[str, Any],
    ) -> Notification:
        current = await self._require(notification_id)
        ensure_transition(notification_id, current.status, target)
        won = await self._compare_and_swap(
            notification_id,
            current.status.value,
            {"status": target.value, **values, **self._cleared_claim(utcnow())},
        )
        if not won:
            raise InvalidStateError(
                notification_id, await self._status_of(notification_id), "concurrent modification"
            )
        return await self._require(notification_id)

    async def _finalize(
        self, claim: DispatchClaim, target: NotificationStatus, **values: Any
    ) -> Notification | None:
        notification_id = claim.notification.id
        ensure_transition(notification_id, NotificationStatus.PENDING_SEND, target)
        won = await self._compare_and_swap(
            notification_id,
            _PENDING,
            {"status": target.value, **values, **self._cleared_claim(utcnow())},
            NotificationRow.claim_token == claim.token,
        )
        if not won:
            return None
        return await self.get_by_id(notification_id)

    @staticmethod
    def _mutable_values(notification: Notification) -> dict[str, Any]:
        recipient = notification.recipient
        values: dict[str, Any] = {
            "notification_type": notification.notification_type.value,
            "title": notification.title,
            "body_template": notification.body_template,
            "subject_template": notification.subject_template,
            "context_name": notification.context_name,
            "context_parameters": notification.context_parameters,
            "send_after": ensure_utc(notification.send_after),
            "extra_params": notification.extra_params,
            "attachments": [a.model_dump() for a in notification.attachments],
            "updated_at": notification.updated_at,
        }
        if isinstance(recipient, RegisteredUser):
            values["user_id"] = recipient.user_id
        else:
            values["email_or_phone"] = recipient.email_or_phone
            values["first_name"] = recipient.first_name
            values["last_name"] = recipient.last_name
        return values

    @classmethod
    def _notification_to_row(cls, notification: Notification) -> NotificationRow:
        return NotificationRow(
            id=notification.id,
            status=notification.status.value,
            failure_reason=notification.failure_reason,
            context_used=notification.context_used,
            adapter_used=notification.adapter_used,
            sent_at=notification.sent_at,
            read_at=notification.read_at,
            created_at=notification.created_at,
            **cls._mutable_values(notification),
        )

    @staticmethod
    def _row_to_notification(row: NotificationRow) -> Notification:
        if row.user_id:
            recipient: RegisteredUser | OneOffRecipient = RegisteredUser(user_id=row.user_id)
        else:
            recipient = OneOffRecipient(
                email_or_phone=row.email_or_phone or "",
                first_name=row.first_name or "",
                last_name=row.last_name or "",
            )
        return Notification(
            id=row.id,
            recipient=recipient,
            notification_type=NotificationType(row.notification_type),
            title=row.title,
            body_template=row.body_template,
            subject_template=row.subject_template,
            context_name=row.context_name,
            context_parameters=row.context_parameters or {},
            send_after=ensure_utc(row.send_after),
            status=NotificationStatus(row.status),
            failure_reason=row.failure_reason,
            context_used=row.context_used,
            adapter_used=row.adapter_used,
            sent_at=ensure_utc(row.sent_at),
            read_at=ensure_utc(row.read_at),
            extra_params=row.extra_params,
            attachments=[AttachmentRef.model_validate(a) for a in row.attachments or []],
            created_at=ensure_utc(row.created_at),
            updated_at=ensure_utc(row.updated_at),
        )
