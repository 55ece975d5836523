"""Mock channel adapter that records every send."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field

from herald.channels.base import BaseChannelAdapter
from herald.channels.models import (
    DeliveryRecipient,
    DeliveryResult,
    RenderedPayload,
    ResolvedAttachment,
)
from herald.core.types import JsonObject
from herald.notifications.models import NotificationType


@dataclass
class SentMessage:
    payload: RenderedPayload
    recipient: DeliveryRecipient
    attachments: list[ResolvedAttachment] = field(default_factory=list)
    extra_params: JsonObject = field(default_factory=dict)


class MockChannelAdapter(BaseChannelAdapter):
    """Adapter that records sends instead of transmitting them.

    ``fail_with`` makes every send report that failure; ``raise_with``
    makes it raise; ``delay`` holds each send open for that many seconds.
    """

    default_key = "mock"

    def __init__(
        self,
        notification_types: Iterable[NotificationType] = tuple(NotificationType),
        key: str | None = None,
        fail_with: str | None = None,
        raise_with: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        super().__init__(key=key)
        self.handles = frozenset(notification_types)
        self.fail_with = fail_with
        self.raise_with = raise_with
        self.delay = delay
        self.sent: list[SentMessage] = []
        self.calls = 0

    async def _do_send(
        self,
        payload: RenderedPayload,
        recipient: DeliveryRecipient,
        attachments: list[ResolvedAttachment],
        extra_params: JsonObject,
    ) -> DeliveryResult:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raise_with is not None:
            raise self.raise_with
        if self.fail_with is not None:
            return DeliveryResult.failed(self.key, self.fail_with)
        self.sent.append(
            SentMessage(
                payload=payload,
                recipient=recipient,
                attachments=list(attachments),
                extra_params=dict(extra_params),
            )
        )
        return DeliveryResult.ok(self.key, provider_message_id=f"mock-{len(self.sent)}")
