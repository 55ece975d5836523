"""Protocol for notification backends.

Both the in-memory ``NotificationStore`` and the SQL
``PostgresNotificationRepository`` satisfy this interface. Every status
change is a compare-and-swap against the stored row: that is the one
correctness requirement a backend must meet.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from herald.core.types import JsonObject
from herald.notifications.models import (
    DispatchClaim,
    Notification,
    NotificationPatch,
    NotificationSpec,
)


@runtime_checkable
class NotificationBackend(Protocol):
    """Durable CRUD, eligibility query and atomic status transitions."""

    async def create(self, spec: NotificationSpec | Mapping[str, Any]) -> Notification: ...

    async def get_by_id(self, notification_id: str) -> Notification | None: ...

    async def update(
        self, notification_id: str, patch: NotificationPatch | Mapping[str, Any]
    ) -> Notification: ...

    async def list_pending(self, now: datetime | None = None) -> list[Notification]: ...

    async def claim_for_dispatch(
        self, notification_id: str, now: datetime | None = None
    ) -> DispatchClaim | None: ...

    async def mark_sent(
        self,
        claim: DispatchClaim,
        context_used: JsonObject,
        adapter_used: str,
        sent_at: datetime | None = None,
    ) -> Notification | None: ...

    async def mark_failed(self, claim: DispatchClaim, reason: str) -> Notification | None: ...

    async def cancel(self, notification_id: str) -> Notification: ...

    async def mark_read(
        self, notification_id: str, read_at: datetime | None = None
    ) -> Notification: ...

    async def reschedule(
        self, notification_id: str, send_after: datetime | None = None
    ) -> Notification: ...

    async def list_for_user(self, user_id: str) -> list[Notification]: ...

    async def list_for_one_off_recipient(self, email_or_phone: str) -> list[Notification]: ...

    async def list_all(self) -> list[Notification]: ...
