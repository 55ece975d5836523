"""Channel adapter Protocol and ABC implementation."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Protocol, runtime_checkable

from herald.channels.models import (
    DeliveryRecipient,
    DeliveryResult,
    RenderedPayload,
    ResolvedAttachment,
)
from herald.core.types import JsonObject
from herald.notifications.models import NotificationType

logger = logging.getLogger(__name__)


@runtime_checkable
class ChannelAdapter(Protocol):
    """Channel-specific transmission capability."""

    @property
    def key(self) -> str: ...

    @property
    def notification_types(self) -> frozenset[NotificationType]: ...

    def can_handle(self, notification_type: NotificationType) -> bool: ...

    async def send(
        self,
        payload: RenderedPayload,
        recipient: DeliveryRecipient,
        attachments: list[ResolvedAttachment],
        extra_params: JsonObject | None = None,
    ) -> DeliveryResult: ...


class BaseChannelAdapter(ABC):
    """Abstract base class for channel adapters.

    Declares the handled notification types and turns transport exceptions
    into failure results. Adapters never retry: one call, one attempt.
    """

    default_key: str = "adapter"
    handles: frozenset[NotificationType] = frozenset()

    def __init__(self, key: str | None = None, enabled: bool = True) -> None:
        self._key = key or self.default_key
        self._enabled = enabled

    @property
    def key(self) -> str:
        return self._key

    @property
    def notification_types(self) -> frozenset[NotificationType]:
        return self.handles

    @property
    def enabled(self) -> bool:
        return self._enabled

    def can_handle(self, notification_type: NotificationType) -> bool:
        return self._enabled and notification_type in self.handles

    @abstractmethod
    async def _do_send(
        self,
        payload: RenderedPayload,
        recipient: DeliveryRecipient,
        attachments: list[ResolvedAttachment],
        extra_params: JsonObject,
    ) -> DeliveryResult:
        """Transmit the payload. Subclasses implement this."""

    async def send(
        self,
        payload: RenderedPayload,
        recipient: DeliveryRecipient,
        attachments: list[ResolvedAttachment],
        extra_params: JsonObject | None = None,
    ) -> DeliveryResult:
        if not self.can_handle(payload.notification_type):
            return DeliveryResult.failed(
                self.key, f"{self.key} cannot handle {payload.notification_type} notifications"
            )
        try:
            return await self._do_send(payload, recipient, attachments, extra_params or {})
        except Exception as exc:
            logger.warning(
                "Adapter %s failed for notification %s: %s",
                self.key, payload.notification_id, exc,
            )
            return DeliveryResult.failed(self.key, f"{type(exc).__name__}: {exc}")
