"""Core type definitions shared across Herald modules."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

JsonObject = dict[str, Any]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime.

    Naive datetimes are assumed to already be UTC (SQLite drops tzinfo on
    round-trip).
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
