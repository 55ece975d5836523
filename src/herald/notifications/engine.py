"""Notification lifecycle engine.

Orchestrates a dispatch attempt: claim, pick adapter, resolve context,
render, resolve attachments, send, then persist SENT or FAILED. Each attempt
is a single unit with no internal retry. Retrying a FAILED notification is
an explicit ``reschedule``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from herald.channels.models import RenderedPayload, ResolvedAttachment
from herald.channels.registry import AdapterRegistry
from herald.core.types import JsonObject, utcnow
from herald.notifications.attachments import AttachmentResolver
from herald.notifications.context import ContextRegistry
from herald.notifications.errors import (
    AdapterError,
    AttachmentError,
    DispatchError,
    DispatchTimeoutError,
    InvalidStateError,
    NotFoundError,
    RenderError,
    ValidationError,
)
from herald.notifications.models import (
    DispatchClaim,
    DispatchOutcome,
    DispatchResult,
    Notification,
    NotificationPatch,
    NotificationSpec,
    NotificationStatus,
)
from herald.notifications.queue import QueueService
from herald.notifications.recipients import UserDirectory, resolve_recipient
from herald.notifications.renderer import TemplateRenderer
from herald.notifications.validation import parse_spec
from herald.repositories.protocols import NotificationBackend

logger = logging.getLogger(__name__)


def _json_safe(data: JsonObject) -> JsonObject:
    return json.loads(json.dumps(data, default=str))


class NotificationEngine:
    """Creates notifications and drives them through their lifecycle.

    Args:
        backend: Notification storage with atomic status transitions.
        adapters: Channel adapters; first match per notification type wins.
        contexts: Context generators, looked up by ``context_name``.
        renderer: Renders subject and body templates.
        attachments: Resolves attachment references at dispatch time.
        directory: Contact lookup for registered-user recipients.
        send_on_create: Dispatch right after creation when already due.
        dispatch_timeout: Default bound, in seconds, for one dispatch attempt.
    """

    def __init__(
        self,
        backend: NotificationBackend,
        adapters: AdapterRegistry,
        contexts: ContextRegistry,
        renderer: TemplateRenderer,
        attachments: AttachmentResolver | None = None,
        directory: UserDirectory | None = None,
        send_on_create: bool = True,
        dispatch_timeout: float | None = None,
    ) -> None:
        self._backend = backend
        self._adapters = adapters
        self._contexts = contexts
        self._renderer = renderer
        self._attachments = attachments
        self._directory = directory
        self._send_on_create = send_on_create
        self._dispatch_timeout = dispatch_timeout
        self._queue: QueueService | None = None

    @property
    def backend(self) -> NotificationBackend:
        return self._backend

    @property
    def adapters(self) -> AdapterRegistry:
        return self._adapters

    @property
    def contexts(self) -> ContextRegistry:
        return self._contexts

    @property
    def queue_service(self) -> QueueService | None:
        return self._queue

    def register_queue_service(self, queue: QueueService) -> None:
        self._queue = queue

    # -- creation and updates ----------------------------------------------

    async def create_notification(
        self, spec: NotificationSpec | Mapping[str, Any]
    ) -> Notification:
        """Create a notification addressed to a registered user."""
        spec = parse_spec(spec)
        if spec.email_or_phone and not spec.user_id:
            raise ValidationError(
                "One-off recipients must use create_one_off_notification",
                {"user_id": "required for registered-user notifications"},
            )
        notification = await self._backend.create(spec)
        logger.info(
            "Created %s notification %s for user %s",
            notification.notification_type, notification.id, spec.user_id,
        )
        return await self._trigger_if_due(notification, allow_inline=True)

    async def create_one_off_notification(
        self, spec: NotificationSpec | Mapping[str, Any]
    ) -> Notification:
        """Create a notification for an account-less email/phone recipient."""
        spec = parse_spec(spec)
        if spec.user_id and not spec.email_or_phone:
            raise ValidationError(
                "Registered users must use create_notification",
                {"email_or_phone": "required for one-off notifications"},
            )
        notification = await self._backend.create(spec)
        logger.info(
            "Created one-off %s notification %s",
            notification.notification_type, notification.id,
        )
        return await self._trigger_if_due(notification, allow_inline=True)

    async def update_notification(
        self,
        notification_id: str,
        patch: NotificationPatch | Mapping[str, Any],
    ) -> Notification:
        return await self._backend.update(notification_id, patch)

    async def update_one_off_notification(
        self,
        notification_id: str,
        patch: NotificationPatch | Mapping[str, Any],
    ) -> Notification:
        notification = await self.get_notification(notification_id)
        if not notification.is_one_off:
            raise ValidationError(
                f"Notification {notification_id!r} is not a one-off notification",
                {"id": "not a one-off notification"},
            )
        updated = await self._backend.update(notification_id, patch)
        logger.info("Updated one-off notification %s", notification_id)
        return updated

    # -- queries -----------------------------------------------------------

    async def get_notification(self, notification_id: str) -> Notification:
        notification = await self._backend.get_by_id(notification_id)
        if notification is None:
            raise NotFoundError(notification_id)
        return notification

    async def get_pending_notifications(self, now: datetime | None = None) -> list[Notification]:
        return await self._backend.list_pending(now or utcnow())

    async def list_user_notifications(self, user_id: str) -> list[Notification]:
        return await self._backend.list_for_user(user_id)

    async def list_one_off_notifications(self, email_or_phone: str) -> list[Notification]:
        return await self._backend.list_for_one_off_recipient(email_or_phone)

    # -- explicit transitions ----------------------------------------------

    async def cancel(self, notification_id: str) -> Notification:
        """Cancel a pending notification.

        Only honoured before a dispatch attempt has claimed it; cancelling an
        in-flight notification raises ``InvalidStateError``.
        """
        notification = await self._backend.cancel(notification_id)
        logger.info("Cancelled notification %s", notification_id)
        return notification

    async def mark_read(self, notification_id: str) -> Notification:
        notification = await self._backend.mark_read(notification_id, utcnow())
        logger.info("Notification %s marked read", notification_id)
        return notification

    async def reschedule(
        self, notification_id: str, send_after: datetime | None = None
    ) -> Notification:
        """Move a FAILED notification back to PENDING_SEND."""
        notification = await self._backend.reschedule(notification_id, send_after)
        logger.info("Rescheduled notification %s (send_after=%s)", notification_id, notification.send_after)
        return await self._trigger_if_due(notification, allow_inline=False)

    # -- dispatch ----------------------------------------------------------

    async def send(
        self, notification_id: str, *, timeout: float | None = None
    ) -> DispatchResult:
        """Run one dispatch attempt for ``notification_id``.

        Raises ``NotFoundError`` for unknown ids and ``DispatchTimeoutError``
        when the attempt outlives ``timeout``. Every other outcome is
        reported in the returned ``DispatchResult``: a notification that is
        not PENDING_SEND, or is already claimed by another worker, yields
        ``SKIPPED`` with no side effects.
        """
        timeout = timeout if timeout is not None else self._dispatch_timeout
        if timeout is None:
            return await self._dispatch(notification_id)
        try:
            return await asyncio.wait_for(self._dispatch(notification_id), timeout)
        except asyncio.TimeoutError:
            logger.warning("Dispatch of notification %s timed out after %.1fs", notification_id, timeout)
            raise DispatchTimeoutError(notification_id, timeout) from None

    async def delayed_send(
        self, notification_id: str, *, timeout: float | None = None
    ) -> DispatchResult:
        """Queue/poller entry point; same contract as ``send``."""
        return await self.send(notification_id, timeout=timeout)

    async def _dispatch(self, notification_id: str) -> DispatchResult:
        notification = await self._backend.get_by_id(notification_id)
        if notification is None:
            raise NotFoundError(notification_id)

        try:
            self._ensure_pending(notification)
        except InvalidStateError as exc:
            logger.info("Skipping dispatch: %s", exc)
            return DispatchResult(
                notification_id=notification_id,
                outcome=DispatchOutcome.SKIPPED,
                notification=notification,
                reason=str(exc),
            )

        claim = await self._backend.claim_for_dispatch(notification_id)
        if claim is None:
            logger.info("Notification %s is already claimed; skipping", notification_id)
            return DispatchResult(
                notification_id=notification_id,
                outcome=DispatchOutcome.SKIPPED,
                notification=await self._backend.get_by_id(notification_id),
                reason="already claimed",
            )
        return await self._deliver(claim)

    @staticmethod
    def _ensure_pending(notification: Notification) -> None:
        if notification.status != NotificationStatus.PENDING_SEND:
            raise InvalidStateError(notification.id, notification.status, "not pending dispatch")

    async def _deliver(self, claim: DispatchClaim) -> DispatchResult:
        notification = claim.notification
        try:
            adapter = self._adapters.resolve(notification.notification_type)
            context = await self._contexts.generate(
                notification.context_name, notification.context_parameters
            )
            payload = await self._render(notification, context)
            attachments = await self._resolve_attachments(notification)
            recipient = await resolve_recipient(notification.recipient, self._directory)
            result = await adapter.send(payload, recipient, attachments, notification.extra_params)
            if not result.success:
                raise AdapterError(result.error or f"{adapter.key} reported a failure")
        except DispatchError as exc:
            return await self._fail(claim, exc.reason())
        except Exception as exc:
            logger.exception("Unexpected error dispatching notification %s", notification.id)
            return await self._fail(claim, f"unexpected: {type(exc).__name__}: {exc}")

        updated = await self._backend.mark_sent(
            claim,
            context_used=_json_safe(context),
            adapter_used=adapter.key,
            sent_at=utcnow(),
        )
        if updated is None:
            logger.warning("Claim on notification %s was lost before it could be marked sent", notification.id)
            return DispatchResult(
                notification_id=notification.id,
                outcome=DispatchOutcome.SKIPPED,
                reason="claim lost",
            )
        logger.info("Notification %s sent via %s", notification.id, adapter.key)
        return DispatchResult(
            notification_id=notification.id,
            outcome=DispatchOutcome.SENT,
            notification=updated,
        )

    async def _fail(self, claim: DispatchClaim, reason: str) -> DispatchResult:
        notification_id = claim.notification.id
        logger.warning("Notification %s failed: %s", notification_id, reason)
        updated = await self._backend.mark_failed(claim, reason)
        if updated is None:
            logger.warning("Claim on notification %s was lost before it could be marked failed", notification_id)
            return DispatchResult(
                notification_id=notification_id,
                outcome=DispatchOutcome.SKIPPED,
                reason="claim lost",
            )
        return DispatchResult(
            notification_id=notification_id,
            outcome=DispatchOutcome.FAILED,
            notification=updated,
            reason=reason,
        )

    async def _render(self, notification: Notification, context: JsonObject) -> RenderedPayload:
        try:
            subject = None
            if notification.subject_template:
                subject = await self._renderer.render(notification.subject_template, context)
            body = await self._renderer.render(notification.body_template, context)
        except RenderError:
            raise
        except Exception as exc:
            raise RenderError(str(exc)) from exc
        return RenderedPayload(
            notification_id=notification.id,
            notification_type=notification.notification_type,
            subject=subject,
            body=body,
            title=notification.title,
        )

    async def _resolve_attachments(self, notification: Notification) -> list[ResolvedAttachment]:
        if not notification.attachments:
            return []
        if self._attachments is None:
            raise AttachmentError("no attachment resolver configured")
        try:
            return await self._attachments.resolve(notification.attachments)
        except AttachmentError:
            raise
        except Exception as exc:
            raise AttachmentError(str(exc)) from exc

    async def _trigger_if_due(self, notification: Notification, *, allow_inline: bool) -> Notification:
        """Hand a due notification to the queue, or dispatch it inline.

        Without a queue service, notifications that are not dispatched here
        are left to the poller.
        """
        if not self._send_on_create or not notification.is_eligible(utcnow()):
            return notification

        if self._queue is not None:
            try:
                await self._queue.enqueue(notification.id)
            except Exception:
                logger.exception(
                    "Failed to enqueue notification %s; the poller will pick it up",
                    notification.id,
                )
            return notification

        if not allow_inline:
            return notification
        try:
            result = await self.send(notification.id)
        except DispatchTimeoutError:
            logger.warning(
                "Inline dispatch of notification %s timed out; it stays pending for the poller",
                notification.id,
            )
            return await self._backend.get_by_id(notification.id) or notification
        return result.notification or notification
