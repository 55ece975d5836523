"""Adapter registry: ordered, first matching adapter wins."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from herald.channels.base import ChannelAdapter
from herald.notifications.errors import NoAdapterError
from herald.notifications.models import NotificationType


class AdapterRegistry:
    """Registry for channel adapters, kept in registration order."""

    def __init__(self, adapters: Iterable[ChannelAdapter] = ()) -> None:
        self._adapters: list[ChannelAdapter] = []
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: ChannelAdapter) -> None:
        """Register an adapter. Keys must be unique."""
        if self.get(adapter.key) is not None:
            raise ValueError(f"Adapter {adapter.key!r} is already registered")
        self._adapters.append(adapter)

    def get(self, key: str) -> ChannelAdapter | None:
        for adapter in self._adapters:
            if adapter.key == key:
                return adapter
        return None

    def resolve(self, notification_type: NotificationType) -> ChannelAdapter:
        """Return the first adapter able to handle ``notification_type``."""
        for adapter in self._adapters:
            if adapter.can_handle(notification_type):
                return adapter
        raise NoAdapterError(f"No adapter registered for {notification_type} notifications")

    def list_adapters(self) -> list[dict[str, Any]]:
        return [
            {"key": adapter.key, "notification_types": sorted(adapter.notification_types)}
            for adapter in self._adapters
        ]

    @property
    def adapter_keys(self) -> list[str]:
        return [adapter.key for adapter in self._adapters]
