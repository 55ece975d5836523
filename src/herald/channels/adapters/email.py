"""SMTP email adapter."""

from __future__ import annotations

import logging
from email.message import EmailMessage
from email.policy import default as default_policy
from email.utils import formataddr, make_msgid

import aiosmtplib

from herald.channels.base import BaseChannelAdapter
from herald.channels.models import (
    DeliveryRecipient,
    DeliveryResult,
    RenderedPayload,
    ResolvedAttachment,
)
from herald.core.config import SMTPConfig
from herald.core.types import JsonObject
from herald.notifications.models import NotificationType

logger = logging.getLogger(__name__)

_HTML_MARKERS = ("<html", "<body", "<p>", "<p ", "<div", "<table", "<br")


def _looks_like_html(body: str) -> bool:
    lowered = body.lower()
    return any(marker in lowered for marker in _HTML_MARKERS)


class SmtpEmailAdapter(BaseChannelAdapter):
    """Sends EMAIL notifications through an SMTP relay using aiosmtplib."""

    default_key = "smtp_email"
    handles = frozenset({NotificationType.EMAIL})

    def __init__(self, config: SMTPConfig, key: str | None = None) -> None:
        super().__init__(key=key, enabled=bool(config.host))
        self._config = config

    def build_message(
        self,
        payload: RenderedPayload,
        recipient: DeliveryRecipient,
        attachments: list[ResolvedAttachment],
        extra_params: JsonObject,
    ) -> EmailMessage:
        message = EmailMessage(policy=default_policy)
        message["From"] = str(extra_params.get("from_email") or self._config.from_email)
        message["To"] = formataddr((recipient.display_name, recipient.email or ""))
        message["Subject"] = payload.subject or payload.title or ""
        message["Message-ID"] = make_msgid(domain="herald")
        if extra_params.get("reply_to"):
            message["Reply-To"] = str(extra_params["reply_to"])

        if _looks_like_html(payload.body):
            message.set_content(payload.body, subtype="html", charset="utf-8")
        else:
            message.set_content(payload.body, charset="utf-8")

        for attachment in attachments:
            maintype, _, subtype = attachment.content_type.partition("/")
            message.add_attachment(
                attachment.content,
                maintype=maintype or "application",
                subtype=subtype or "octet-stream",
                filename=attachment.filename,
            )
        return message

    async def _do_send(
        self,
        payload: RenderedPayload,
        recipient: DeliveryRecipient,
        attachments: list[ResolvedAttachment],
        extra_params: JsonObject,
    ) -> DeliveryResult:
        if not recipient.email:
            return DeliveryResult.failed(self.key, "recipient has no email address")

        message = self.build_message(payload, recipient, attachments, extra_params)
        await aiosmtplib.send(
            message,
            hostname=self._config.host,
            port=self._config.port,
            username=self._config.username,
            password=self._config.password,
            start_tls=self._config.use_tls,
            timeout=self._config.timeout_seconds,
        )
        logger.info("Email for notification %s sent to %s", payload.notification_id, recipient.email)
        return DeliveryResult.ok(self.key, provider_message_id=message["Message-ID"])
