"""Channel delivery models."""

from __future__ import annotations

from pydantic import BaseModel, Field

from herald.core.types import JsonObject
from herald.notifications.models import NotificationType


class RenderedPayload(BaseModel):
    """A notification rendered and ready for transmission."""

    notification_id: str
    notification_type: NotificationType
    subject: str | None = None
    body: str
    title: str | None = None


class DeliveryRecipient(BaseModel):
    """Addressing information handed to an adapter.

    One-off recipients carry their ``email_or_phone`` in ``email`` or
    ``phone``; registered users are filled in from the user directory.
    """

    user_id: str | None = None
    email: str | None = None
    phone: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    device_tokens: list[str] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    @property
    def inbox_key(self) -> str | None:
        return self.user_id or self.email or self.phone


class ResolvedAttachment(BaseModel):
    """An attachment in transmittable form."""

    file_id: str
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"
    description: str | None = None


class DeliveryResult(BaseModel):
    """Outcome of a single adapter send; failures carry the error verbatim."""

    success: bool
    adapter: str
    error: str | None = None
    provider_message_id: str | None = None
    details: JsonObject = Field(default_factory=dict)

    @classmethod
    def ok(cls, adapter: str, provider_message_id: str | None = None, **details: object) -> DeliveryResult:
        return cls(
            success=True,
            adapter=adapter,
            provider_message_id=provider_message_id,
            details=dict(details),
        )

    @classmethod
    def failed(cls, adapter: str, error: str) -> DeliveryResult:
        return cls(success=False, adapter=adapter, error=error)
