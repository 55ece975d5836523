"""Initial schema: notifications table.

Revision ID: 0001
Revises:
Create Date: 2026-10-16

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _jsonb() -> sa.types.TypeEngine:
    return sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "notifications",
        sa.Column("id", sa.String(64), primary_key=True),
        # Recipient: user_id for registered users, email_or_phone + names for one-off
        sa.Column("user_id", sa.String(128), nullable=True),
        sa.Column("email_or_phone", sa.String(320), nullable=True),
        sa.Column("first_name", sa.String(128), nullable=True),
        sa.Column("last_name", sa.String(128), nullable=True),
        sa.Column("notification_type", sa.String(16), nullable=False),
        sa.Column("title", sa.String(512), nullable=True),
        sa.Column("body_template", sa.Text, nullable=False),
        sa.Column("subject_template", sa.Text, nullable=True),
        sa.Column("context_name", sa.String(128), nullable=False),
        sa.Column("context_parameters", _jsonb(), nullable=False),
        sa.Column("send_after", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING_SEND"),
        sa.Column("failure_reason", sa.Text, nullable=True),
        sa.Column("context_used", _jsonb(), nullable=True),
        sa.Column("adapter_used", sa.String(64), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("extra_params", _jsonb(), nullable=True),
        sa.Column("attachments", _jsonb(), nullable=False),
        sa.Column("claim_token", sa.String(64), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "(user_id IS NOT NULL AND email_or_phone IS NULL)"
            " OR (user_id IS NULL AND email_or_phone IS NOT NULL)",
            name="ck_notifications_one_recipient_mode",
        ),
    )
    op.create_index("ix_notifications_status_send_after", "notifications", ["status", "send_after"])
    op.create_index("ix_notifications_email_or_phone", "notifications", ["email_or_phone"])
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_index("ix_notifications_email_or_phone", table_name="notifications")
    op.drop_index("ix_notifications_status_send_after", table_name="notifications")
    op.drop_table("notifications")
