"""SQLAlchemy ORM models."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from herald.db.base import Base


def _jsonb() -> type:
    """Return JSONB for Postgres, plain JSON for SQLite."""
    return JSON().with_variant(PG_JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationRow(Base):
    """One notification.

    The recipient is stored as nullable columns: ``user_id`` for registered
    users, ``email_or_phone`` plus names for one-off recipients. Exactly one
    mode is populated. ``claim_token``/``claimed_at`` mark an in-flight
    dispatch and are cleared by every status transition.
    """

    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    email_or_phone: Mapped[str | None] = mapped_column(String(320), nullable=True)
    first_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    notification_type: Mapped[str] = mapped_column(String(16))
    title: Mapped[str | None] = mapped_column(String(512), nullable=True)
    body_template: Mapped[str] = mapped_column(Text)
    subject_template: Mapped[str | None] = mapped_column(Text, nullable=True)
    context_name: Mapped[str] = mapped_column(String(128))
    context_parameters: Mapped[dict] = mapped_column(_jsonb(), default=dict)
    send_after: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(16), default="PENDING_SEND")
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    context_used: Mapped[dict | None] = mapped_column(_jsonb(), nullable=True)
    adapter_used: Mapped[str | None] = mapped_column(String(64), nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    extra_params: Mapped[dict | None] = mapped_column(_jsonb(), nullable=True)
    attachments: Mapped[list] = mapped_column(_jsonb(), default=list)
    claim_token: Mapped[str | None] = mapped_column(String(64), nullable=True)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_notifications_status_send_after", "status", "send_after"),
        Index("ix_notifications_email_or_phone", "email_or_phone"),
        Index("ix_notifications_user_id", "user_id"),
    )
