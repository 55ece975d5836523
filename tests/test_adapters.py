"""Tests for channel adapters and the adapter registry."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from herald.channels.adapters.email import SmtpEmailAdapter
from herald.channels.adapters.in_app import InAppAdapter, InAppInbox
from herald.channels.adapters.memory import MockChannelAdapter
from herald.channels.adapters.push import HttpPushAdapter
from herald.channels.adapters.sms import HttpSmsAdapter
from herald.channels.base import BaseChannelAdapter, ChannelAdapter
from herald.channels.models import DeliveryRecipient, RenderedPayload, ResolvedAttachment
from herald.channels.registry import AdapterRegistry
from herald.core.config import PushConfig, SMSConfig, SMTPConfig
from herald.notifications.errors import NoAdapterError
from herald.notifications.models import NotificationType

SMS_URL = "https://sms.example.com/v1/messages"
PUSH_URL = "https://push.example.com/v1/send"


def payload(notification_type: NotificationType, body: str = "Hello Ada") -> RenderedPayload:
    return RenderedPayload(
        notification_id="n-1",
        notification_type=notification_type,
        subject="Greetings",
        body=body,
    )


class TestAdapterRegistry:
    def test_first_registered_match_wins(self) -> None:
        first = MockChannelAdapter(notification_types=[NotificationType.EMAIL], key="first")
        second = MockChannelAdapter(notification_types=[NotificationType.EMAIL], key="second")
        registry = AdapterRegistry([first, second])
        assert registry.resolve(NotificationType.EMAIL) is first

    def test_skips_adapters_that_cannot_handle(self) -> None:
        sms = MockChannelAdapter(notification_types=[NotificationType.SMS], key="sms")
        email = MockChannelAdapter(notification_types=[NotificationType.EMAIL], key="email")
        registry = AdapterRegistry([sms, email])
        assert registry.resolve(NotificationType.EMAIL) is email

    def test_disabled_adapters_are_skipped(self) -> None:
        registry = AdapterRegistry([SmtpEmailAdapter(SMTPConfig(host=None))])
        with pytest.raises(NoAdapterError):
            registry.resolve(NotificationType.EMAIL)

    def test_no_match(self) -> None:
        with pytest.raises(NoAdapterError):
            AdapterRegistry().resolve(NotificationType.PUSH)

    def test_duplicate_key_rejected(self) -> None:
        registry = AdapterRegistry([MockChannelAdapter()])
        with pytest.raises(ValueError):
            registry.register(MockChannelAdapter())

    def test_keys_and_listing(self) -> None:
        registry = AdapterRegistry([MockChannelAdapter(), InAppAdapter()])
        assert registry.adapter_keys == ["mock", "in_app"]
        assert registry.get("in_app") is not None
        assert registry.get("nope") is None
        assert [a["key"] for a in registry.list_adapters()] == ["mock", "in_app"]

    def test_adapters_satisfy_protocol(self) -> None:
        for adapter in (
            MockChannelAdapter(),
            InAppAdapter(),
            SmtpEmailAdapter(SMTPConfig(host="smtp.example.com")),
            HttpSmsAdapter(SMSConfig(gateway_url=SMS_URL)),
            HttpPushAdapter(PushConfig(gateway_url=PUSH_URL)),
        ):
            assert isinstance(adapter, ChannelAdapter)


class TestBaseChannelAdapter:
    async def test_exception_becomes_failure(self) -> None:
        adapter = MockChannelAdapter(raise_with=RuntimeError("kaboom"))
        result = await adapter.send(payload(NotificationType.EMAIL), DeliveryRecipient(), [])
        assert not result.success
        assert result.error == "RuntimeError: kaboom"
        assert result.adapter == "mock"

    async def test_unhandled_type_is_a_failure(self) -> None:
        adapter = MockChannelAdapter(notification_types=[NotificationType.SMS])
        result = await adapter.send(payload(NotificationType.EMAIL), DeliveryRecipient(), [])
        assert not result.success
        assert adapter.calls == 0

    def test_abstract(self) -> None:
        with pytest.raises(TypeError):
            BaseChannelAdapter()  # type: ignore[abstract]


class TestSmtpEmailAdapter:
    def setup_method(self) -> None:
        self.config = SMTPConfig(
            host="smtp.example.com",
            port=2525,
            username="herald",
            password="secret",
            from_email="noreply@example.com",
        )
        self.adapter = SmtpEmailAdapter(self.config)
        self.recipient = DeliveryRecipient(email="ada@example.com", first_name="Ada", last_name="Lovelace")

    async def test_send(self, monkeypatch: pytest.MonkeyPatch) -> None:
        send = AsyncMock(return_value=({}, "OK"))
        monkeypatch.setattr("herald.channels.adapters.email.aiosmtplib.send", send)

        result = await self.adapter.send(payload(NotificationType.EMAIL), self.recipient, [])

        assert result.success
        assert result.adapter == "smtp_email"
        message = send.await_args.args[0]
        assert message["To"] == "Ada Lovelace <ada@example.com>"
        assert message["From"] == "noreply@example.com"
        assert message["Subject"] == "Greetings"
        assert result.provider_message_id == message["Message-ID"]
        kwargs = send.await_args.kwargs
        assert kwargs["hostname"] == "smtp.example.com"
        assert kwargs["port"] == 2525
        assert kwargs["username"] == "herald"

    async def test_smtp_error_is_failure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        send = AsyncMock(side_effect=ConnectionRefusedError("relay refused"))
        monkeypatch.setattr("herald.channels.adapters.email.aiosmtplib.send", send)

        result = await self.adapter.send(payload(NotificationType.EMAIL), self.recipient, [])

        assert not result.success
        assert "relay refused" in result.error

    async def test_requires_email(self) -> None:
        result = await self.adapter.send(
            payload(NotificationType.EMAIL), DeliveryRecipient(user_id="u1"), []
        )
        assert not result.success
        assert "no email" in result.error

    def test_message_with_html_and_attachment(self) -> None:
        attachment = ResolvedAttachment(
            file_id="f1", filename="agenda.pdf", content=b"%PDF-1.4", content_type="application/pdf"
        )
        message = self.adapter.build_message(
            payload(NotificationType.EMAIL, body="<p>Hello</p>"),
            self.recipient,
            [attachment],
            {"reply_to": "events@example.com"},
        )
        assert message["Reply-To"] == "events@example.com"
        assert message.get_body(("html",)) is not None
        attachments = list(message.iter_attachments())
        assert attachments[0].get_filename() == "agenda.pdf"
        assert attachments[0].get_content_type() == "application/pdf"

    def test_disabled_without_host(self) -> None:
        assert not SmtpEmailAdapter(SMTPConfig(host=None)).can_handle(NotificationType.EMAIL)


class TestHttpSmsAdapter:
    def setup_method(self) -> None:
        self.adapter = HttpSmsAdapter(SMSConfig(gateway_url=SMS_URL, api_key="k-123", sender_id="Acme"))
        self.recipient = DeliveryRecipient(phone="+15551234567")

    async def test_send(self, httpx_mock) -> None:
        httpx_mock.add_response(url=SMS_URL, method="POST", json={"id": "sms-42"})

        result = await self.adapter.send(payload(NotificationType.SMS), self.recipient, [])

        assert result.success
        assert result.provider_message_id == "sms-42"
        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "Bearer k-123"
        assert json.loads(request.content) == {
            "to": "+15551234567",
            "from": "Acme",
            "body": "Hello Ada",
            "reference": "n-1",
        }

    async def test_gateway_error(self, httpx_mock) -> None:
        httpx_mock.add_response(url=SMS_URL, method="POST", status_code=422, text="invalid number")

        result = await self.adapter.send(payload(NotificationType.SMS), self.recipient, [])

        assert not result.success
        assert result.error == "SMS gateway returned 422: invalid number"

    async def test_connection_error(self, httpx_mock) -> None:
        httpx_mock.add_exception(httpx.ConnectError("connection refused"))

        result = await self.adapter.send(payload(NotificationType.SMS), self.recipient, [])

        assert not result.success
        assert result.error.startswith("ConnectError")

    async def test_requires_phone(self) -> None:
        result = await self.adapter.send(
            payload(NotificationType.SMS), DeliveryRecipient(email="a@example.com"), []
        )
        assert not result.success


class TestHttpPushAdapter:
    def setup_method(self) -> None:
        self.adapter = HttpPushAdapter(PushConfig(gateway_url=PUSH_URL))

    async def test_send(self, httpx_mock) -> None:
        httpx_mock.add_response(url=PUSH_URL, method="POST", status_code=202)

        result = await self.adapter.send(
            payload(NotificationType.PUSH),
            DeliveryRecipient(user_id="u1", device_tokens=["tok-1"]),
            [],
            {"deep_link": "app://inbox"},
        )

        assert result.success
        assert result.details == {"status_code": 202}
        sent = json.loads(httpx_mock.get_request().content)
        assert sent["user_id"] == "u1"
        assert sent["tokens"] == ["tok-1"]
        assert sent["title"] == "Greetings"
        assert sent["data"] == {"deep_link": "app://inbox"}

    async def test_gateway_error(self, httpx_mock) -> None:
        httpx_mock.add_response(url=PUSH_URL, method="POST", status_code=503, text="unavailable")
        result = await self.adapter.send(payload(NotificationType.PUSH), DeliveryRecipient(user_id="u1"), [])
        assert not result.success
        assert "503" in result.error

    async def test_requires_target(self) -> None:
        result = await self.adapter.send(
            payload(NotificationType.PUSH), DeliveryRecipient(email="a@example.com"), []
        )
        assert not result.success


class TestInAppAdapter:
    async def test_delivers_to_inbox(self) -> None:
        inbox = InAppInbox()
        adapter = InAppAdapter(inbox=inbox)

        result = await adapter.send(payload(NotificationType.IN_APP), DeliveryRecipient(user_id="u1"), [])

        assert result.success
        assert result.provider_message_id == "n-1"
        messages = inbox.list_for("u1")
        assert len(messages) == 1
        assert messages[0].body == "Hello Ada"
        assert inbox.count == 1
        assert inbox.list_for("u2") == []

    async def test_only_handles_in_app(self) -> None:
        adapter = InAppAdapter()
        assert adapter.can_handle(NotificationType.IN_APP)
        assert not adapter.can_handle(NotificationType.EMAIL)
