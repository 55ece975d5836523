"""Push adapter posting to an HTTP push gateway."""

from __future__ import annotations

import logging

import httpx

from herald.channels.base import BaseChannelAdapter
from herald.channels.models import (
    DeliveryRecipient,
    DeliveryResult,
    RenderedPayload,
    ResolvedAttachment,
)
from herald.core.config import PushConfig
from herald.core.types import JsonObject
from herald.notifications.models import NotificationType

logger = logging.getLogger(__name__)


class HttpPushAdapter(BaseChannelAdapter):
    """Sends PUSH notifications to a gateway that fans out to devices.

    The gateway addresses registered users by id and may also take explicit
    device tokens; ``extra_params`` is forwarded as the data payload.
    """

    default_key = "http_push"
    handles = frozenset({NotificationType.PUSH})

    def __init__(self, config: PushConfig, key: str | None = None) -> None:
        super().__init__(key=key, enabled=bool(config.gateway_url))
        self._config = config

    async def _do_send(
        self,
        payload: RenderedPayload,
        recipient: DeliveryRecipient,
        attachments: list[ResolvedAttachment],
        extra_params: JsonObject,
    ) -> DeliveryResult:
        if not recipient.user_id and not recipient.device_tokens:
            return DeliveryResult.failed(self.key, "recipient has no user id or device token")

        headers: dict[str, str] = {}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        body = {
            "user_id": recipient.user_id,
            "tokens": recipient.device_tokens,
            "title": payload.subject or payload.title or "",
            "body": payload.body,
            "data": extra_params,
            "reference": payload.notification_id,
        }

        async with httpx.AsyncClient(timeout=httpx.Timeout(self._config.timeout_seconds)) as client:
            resp = await client.post(self._config.gateway_url, json=body, headers=headers)
        if resp.status_code >= 400:
            return DeliveryResult.failed(
                self.key, f"Push gateway returned {resp.status_code}: {resp.text[:200]}"
            )

        logger.info("Push for notification %s accepted by gateway", payload.notification_id)
        return DeliveryResult.ok(self.key, status_code=resp.status_code)
