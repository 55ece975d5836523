"""Event invitation context."""

from __future__ import annotations

import math
from datetime import date, datetime

from herald.core.types import JsonObject, ensure_utc, utcnow


def _parse_event_date(value: object) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return ensure_utc(datetime(value.year, value.month, value.day))
    if isinstance(value, str):
        return ensure_utc(datetime.fromisoformat(value))
    raise ValueError(f"event_date must be an ISO date string, got {type(value).__name__}")


class EventInvitationContext:
    def generate(self, params: JsonObject) -> JsonObject:
        missing = [k for k in ("event_name", "event_date", "event_location") if not params.get(k)]
        if missing:
            raise ValueError(f"missing parameter(s): {', '.join(missing)}")

        event_date = _parse_event_date(params["event_date"])
        seconds_left = (event_date - utcnow()).total_seconds()
        return {
            "event_name": params["event_name"],
            "event_date": f"{event_date:%B} {event_date.day}, {event_date.year}",
            "event_location": params["event_location"],
            "days_until_event": math.ceil(seconds_left / 86400),
        }
