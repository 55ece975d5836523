"""SMS adapter posting to an HTTP SMS gateway."""

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
from herald.core.config import SMSConfig
from herald.core.types import JsonObject
from herald.notifications.models import NotificationType

logger = logging.getLogger(__name__)


class HttpSmsAdapter(BaseChannelAdapter):
    """Sends SMS notifications as ``POST {gateway_url}`` JSON requests.

    SMS carries no subject and no attachments; both are ignored.
    """

    default_key = "http_sms"
    handles = frozenset({NotificationType.SMS})

    def __init__(self, config: SMSConfig, key: str | None = None) -> None:
        super().__init__(key=key, enabled=bool(config.gateway_url))
        self._config = config

    async def _do_send(
        self,
        payload: RenderedPayload,
        recipient: DeliveryRecipient,
        attachments: list[ResolvedAttachment],
        extra_params: JsonObject,
    ) -> DeliveryResult:
        if not recipient.phone:
            return DeliveryResult.failed(self.key, "recipient has no phone number")

        headers: dict[str, str] = {}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        body = {
            "to": recipient.phone,
            "from": extra_params.get("sender_id") or self._config.sender_id,
            "body": payload.body,
            "reference": payload.notification_id,
        }

        async with httpx.AsyncClient(timeout=httpx.Timeout(self._config.timeout_seconds)) as client:
            resp = await client.post(self._config.gateway_url, json=body, headers=headers)
        if resp.status_code >= 400:
            return DeliveryResult.failed(
                self.key, f"SMS gateway returned {resp.status_code}: {resp.text[:200]}"
            )

        message_id = None
        if resp.headers.get("content-type", "").startswith("application/json"):
            data = resp.json()
            if isinstance(data, dict) and data.get("id") is not None:
                message_id = str(data["id"])
        logger.info("SMS for notification %s accepted by gateway", payload.notification_id)
        return DeliveryResult.ok(self.key, provider_message_id=message_id)
