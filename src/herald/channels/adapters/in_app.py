"""In-app adapter delivering into a per-recipient inbox."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from herald.channels.base import BaseChannelAdapter
from herald.channels.models import (
    DeliveryRecipient,
    DeliveryResult,
    RenderedPayload,
    ResolvedAttachment,
)
from herald.core.types import JsonObject, utcnow
from herald.notifications.models import NotificationType


class InboxMessage(BaseModel):
    notification_id: str
    recipient_key: str
    subject: str | None = None
    body: str
    attachments: list[str] = Field(default_factory=list)
    extra_params: JsonObject = Field(default_factory=dict)
    delivered_at: datetime = Field(default_factory=utcnow)


class InAppInbox:
    """In-memory inbox keyed by user id (or one-off email/phone)."""

    def __init__(self) -> None:
        self._messages: dict[str, list[InboxMessage]] = {}

    def deliver(self, message: InboxMessage) -> None:
        self._messages.setdefault(message.recipient_key, []).append(message)

    def list_for(self, recipient_key: str) -> list[InboxMessage]:
        return list(self._messages.get(recipient_key, []))

    @property
    def count(self) -> int:
        return sum(len(messages) for messages in self._messages.values())


class InAppAdapter(BaseChannelAdapter):
    """Delivers IN_APP notifications into an ``InAppInbox``.

    Reading a message is recorded on the notification itself via the
    engine's ``mark_read``.
    """

    default_key = "in_app"
    handles = frozenset({NotificationType.IN_APP})

    def __init__(self, inbox: InAppInbox | None = None, key: str | None = None) -> None:
        super().__init__(key=key)
        self._inbox = inbox if inbox is not None else InAppInbox()

    @property
    def inbox(self) -> InAppInbox:
        return self._inbox

    async def _do_send(
        self,
        payload: RenderedPayload,
        recipient: DeliveryRecipient,
        attachments: list[ResolvedAttachment],
        extra_params: JsonObject,
    ) -> DeliveryResult:
        recipient_key = recipient.inbox_key
        if recipient_key is None:
            return DeliveryResult.failed(self.key, "recipient has no inbox")
        self._inbox.deliver(
            InboxMessage(
                notification_id=payload.notification_id,
                recipient_key=recipient_key,
                subject=payload.subject or payload.title,
                body=payload.body,
                attachments=[a.file_id for a in attachments],
                extra_params=extra_params,
            )
        )
        return DeliveryResult.ok(self.key, provider_message_id=payload.notification_id)
