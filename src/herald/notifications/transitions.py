"""The notification status state machine.

Every status write in every backend goes through ``ensure_transition`` so
that no code path can produce an edge outside this table.
"""

from __future__ import annotations

from herald.notifications.errors import InvalidStateError
from herald.notifications.models import NotificationStatus

ALLOWED_TRANSITIONS: dict[NotificationStatus, frozenset[NotificationStatus]] = {
    NotificationStatus.PENDING_SEND: frozenset(
        {NotificationStatus.SENT, NotificationStatus.FAILED, NotificationStatus.CANCELLED}
    ),
    NotificationStatus.SENT: frozenset({NotificationStatus.READ}),
    NotificationStatus.FAILED: frozenset({NotificationStatus.PENDING_SEND}),
    NotificationStatus.READ: frozenset(),
    NotificationStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


def can_transition(current: NotificationStatus, target: NotificationStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(
    notification_id: str,
    current: NotificationStatus,
    target: NotificationStatus,
) -> None:
    if not can_transition(current, target):
        raise InvalidStateError(
            notification_id, current, f"cannot transition to {target}"
        )
