"""Notification data models."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from herald.core.types import JsonObject, ensure_utc, utcnow


class NotificationType(StrEnum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    PUSH = "PUSH"
    IN_APP = "IN_APP"


class NotificationStatus(StrEnum):
    PENDING_SEND = "PENDING_SEND"
    SENT = "SENT"
    FAILED = "FAILED"
    READ = "READ"
    CANCELLED = "CANCELLED"


class RegisteredUser(BaseModel):
    """Recipient identified by a registered user id."""

    kind: Literal["user"] = "user"
    user_id: str


class OneOffRecipient(BaseModel):
    """Account-less recipient addressed by email or phone number."""

    kind: Literal["one_off"] = "one_off"
    email_or_phone: str
    first_name: str
    last_name: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


Recipient = Annotated[RegisteredUser | OneOffRecipient, Field(discriminator="kind")]


class AttachmentRef(BaseModel):
    """Reference to a stored file attached to a notification."""

    file_id: str
    description: str | None = None


class Notification(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    recipient: Recipient
    notification_type: NotificationType
    title: str | None = None
    body_template: str
    subject_template: str | None = None
    context_name: str
    context_parameters: JsonObject = Field(default_factory=dict)
    send_after: datetime | None = None
    status: NotificationStatus = NotificationStatus.PENDING_SEND
    failure_reason: str | None = None
    context_used: JsonObject | None = None
    adapter_used: str | None = None
    sent_at: datetime | None = None
    read_at: datetime | None = None
    extra_params: JsonObject | None = None
    attachments: list[AttachmentRef] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_one_off(self) -> bool:
        return isinstance(self.recipient, OneOffRecipient)

    def is_eligible(self, now: datetime) -> bool:
        """PENDING_SEND and ``send_after`` unset or already passed."""
        if self.status != NotificationStatus.PENDING_SEND:
            return False
        return self.send_after is None or ensure_utc(self.send_after) <= ensure_utc(now)


class NotificationSpec(BaseModel):
    """Creation request.

    Exactly one recipient mode must be populated: ``user_id``, or
    ``email_or_phone`` with ``first_name`` and ``last_name``. The mode is
    checked by the backend so that both creation paths report the same
    field-level errors.
    """

    user_id: str | None = None
    email_or_phone: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    notification_type: NotificationType
    title: str | None = None
    body_template: str
    subject_template: str | None = None
    context_name: str
    context_parameters: JsonObject = Field(default_factory=dict)
    send_after: datetime | None = None
    extra_params: JsonObject | None = None
    attachments: list[AttachmentRef] = Field(default_factory=list)


class NotificationPatch(BaseModel):
    """Partial update of a pending notification. Unset fields are untouched."""

    model_config = {"extra": "forbid"}

    user_id: str | None = None
    email_or_phone: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    notification_type: NotificationType | None = None
    title: str | None = None
    body_template: str | None = None
    subject_template: str | None = None
    context_name: str | None = None
    context_parameters: JsonObject | None = None
    send_after: datetime | None = None
    extra_params: JsonObject | None = None
    attachments: list[AttachmentRef] | None = None


class DispatchClaim(BaseModel):
    """A successful claim: the notification as it was claimed plus the token
    that must accompany the finalising transition."""

    notification: Notification
    token: str
    claimed_at: datetime


class DispatchOutcome(StrEnum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class DispatchResult(BaseModel):
    notification_id: str
    outcome: DispatchOutcome
    notification: Notification | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome != DispatchOutcome.FAILED

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.notification_id,
            "outcome": self.outcome,
            "reason": self.reason,
        }
