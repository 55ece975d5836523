"""Error taxonomy for the notification lifecycle."""

from __future__ import annotations

from typing import Any


class NotificationError(Exception):
    """Base class for all notification errors."""


class ValidationError(NotificationError):
    """A create/update request was rejected before reaching the engine.

    ``errors`` maps field names to human-readable messages.
    """

    def __init__(self, message: str, errors: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.errors: dict[str, str] = errors or {}


class ImmutableFieldError(ValidationError):
    """An update tried to write a field only the engine may set."""


class NotFoundError(NotificationError):
    def __init__(self, notification_id: str) -> None:
        super().__init__(f"Notification {notification_id!r} not found")
        self.notification_id = notification_id


class InvalidStateError(NotificationError):
    """The requested operation is not permitted from the current status."""

    def __init__(self, notification_id: str, status: Any, detail: str = "") -> None:
        message = f"Notification {notification_id!r} is {status}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.notification_id = notification_id
        self.status = status


class RegistryFrozenError(NotificationError):
    """A registration was attempted on a registry after startup."""


class DispatchError(NotificationError):
    """A dispatch attempt failed; the notification transitions to FAILED.

    ``kind`` prefixes the failure reason persisted on the notification.
    """

    kind = "dispatch"

    def reason(self) -> str:
        return f"{self.kind}: {self}"


class NoAdapterError(DispatchError):
    kind = "no_adapter"


class UnknownContextError(DispatchError):
    kind = "unknown_context"


class ContextGenerationError(DispatchError):
    kind = "context_generation"


class RenderError(DispatchError):
    kind = "render"


class RecipientResolutionError(DispatchError):
    kind = "recipient"


class AttachmentError(DispatchError):
    kind = "attachment"


class AdapterError(DispatchError):
    kind = "adapter"


class DispatchTimeoutError(NotificationError):
    """A dispatch attempt exceeded the caller's timeout.

    The notification keeps whatever status the backend last recorded.
    """

    def __init__(self, notification_id: str, timeout: float) -> None:
        super().__init__(
            f"Dispatch of notification {notification_id!r} timed out after {timeout:.1f}s"
        )
        self.notification_id = notification_id
        self.timeout = timeout
