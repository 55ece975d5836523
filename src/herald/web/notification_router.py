"""FastAPI router for notification endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from herald.notifications.engine import NotificationEngine
from herald.notifications.errors import (
    DispatchTimeoutError,
    InvalidStateError,
    NotFoundError,
    NotificationError,
    ValidationError,
)
from herald.notifications.models import AttachmentRef, Notification, NotificationType

router = APIRouter()


class _NotificationFields(BaseModel):
    notification_type: NotificationType
    title: str | None = None
    body_template: str
    subject_template: str | None = None
    context_name: str
    context_parameters: dict[str, Any] = Field(default_factory=dict)
    send_after: datetime | None = None
    extra_params: dict[str, Any] | None = None
    attachments: list[AttachmentRef] = Field(default_factory=list)


class CreateNotificationRequest(_NotificationFields):
    """Request body for a registered-user notification."""

    user_id: str


class CreateOneOffNotificationRequest(_NotificationFields):
    """Request body for a one-off (account-less) notification."""

    email_or_phone: str
    first_name: str
    last_name: str


class RescheduleRequest(BaseModel):
    send_after: datetime | None = None


def _engine(request: Request) -> NotificationEngine:
    engine = getattr(request.app.state, "notification_engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Notification engine not available")
    return engine


def _http_error(exc: NotificationError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=422, detail={"message": str(exc), "errors": exc.errors})
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidStateError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, DispatchTimeoutError):
        return HTTPException(status_code=504, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def _serialize(notification: Notification) -> dict[str, Any]:
    return notification.model_dump(mode="json")


@router.post("/api/notifications", status_code=201)
async def create_notification(body: CreateNotificationRequest, request: Request) -> dict[str, Any]:
    """Create a notification for a registered user."""
    engine = _engine(request)
    try:
        notification = await engine.create_notification(body.model_dump())
    except NotificationError as exc:
        raise _http_error(exc) from exc
    return _serialize(notification)


@router.post("/api/notifications/one-off", status_code=201)
async def create_one_off_notification(
    body: CreateOneOffNotificationRequest, request: Request
) -> dict[str, Any]:
    """Create a notification for an email address or phone number without an account."""
    engine = _engine(request)
    try:
        notification = await engine.create_one_off_notification(body.model_dump())
    except NotificationError as exc:
        raise _http_error(exc) from exc
    return _serialize(notification)


@router.patch("/api/notifications/one-off/{notification_id}")
async def update_one_off_notification(
    notification_id: str, body: dict[str, Any], request: Request
) -> dict[str, Any]:
    engine = _engine(request)
    try:
        notification = await engine.update_one_off_notification(notification_id, body)
    except NotificationError as exc:
        raise _http_error(exc) from exc
    return _serialize(notification)


@router.get("/api/notifications/pending")
async def list_pending(request: Request) -> list[dict[str, Any]]:
    """Notifications that are due for dispatch right now."""
    engine = _engine(request)
    return [_serialize(n) for n in await engine.get_pending_notifications()]


@router.get("/api/notifications")
async def list_notifications(
    request: Request,
    user_id: str | None = None,
    email_or_phone: str | None = None,
) -> list[dict[str, Any]]:
    """List notifications for a registered user or a one-off recipient."""
    engine = _engine(request)
    if user_id and email_or_phone:
        raise HTTPException(status_code=422, detail="Pass either user_id or email_or_phone, not both")
    if user_id:
        notifications = await engine.list_user_notifications(user_id)
    elif email_or_phone:
        notifications = await engine.list_one_off_notifications(email_or_phone)
    else:
        raise HTTPException(status_code=422, detail="user_id or email_or_phone is required")
    return [_serialize(n) for n in notifications]


@router.get("/api/notifications/{notification_id}")
async def get_notification(notification_id: str, request: Request) -> dict[str, Any]:
    engine = _engine(request)
    try:
        notification = await engine.get_notification(notification_id)
    except NotificationError as exc:
        raise _http_error(exc) from exc
    return _serialize(notification)


@router.patch("/api/notifications/{notification_id}")
async def update_notification(
    notification_id: str, body: dict[str, Any], request: Request
) -> dict[str, Any]:
    """Patch a pending notification. Engine-owned fields are rejected with 422."""
    engine = _engine(request)
    try:
        notification = await engine.update_notification(notification_id, body)
    except NotificationError as exc:
        raise _http_error(exc) from exc
    return _serialize(notification)


@router.post("/api/notifications/{notification_id}/send")
async def send_notification(notification_id: str, request: Request) -> dict[str, Any]:
    """Run one dispatch attempt now. Skipped and failed attempts are reported, not raised."""
    engine = _engine(request)
    try:
        result = await engine.send(notification_id)
    except NotificationError as exc:
        raise _http_error(exc) from exc
    return result.model_dump(mode="json")


@router.post("/api/notifications/{notification_id}/cancel")
async def cancel_notification(notification_id: str, request: Request) -> dict[str, Any]:
    engine = _engine(request)
    try:
        notification = await engine.cancel(notification_id)
    except NotificationError as exc:
        raise _http_error(exc) from exc
    return _serialize(notification)


@router.post("/api/notifications/{notification_id}/read")
async def mark_notification_read(notification_id: str, request: Request) -> dict[str, Any]:
    engine = _engine(request)
    try:
        notification = await engine.mark_read(notification_id)
    except NotificationError as exc:
        raise _http_error(exc) from exc
    return _serialize(notification)


@router.post("/api/notifications/{notification_id}/reschedule")
async def reschedule_notification(
    notification_id: str, request: Request, body: RescheduleRequest | None = None
) -> dict[str, Any]:
    """Move a FAILED notification back to PENDING_SEND, optionally with a new send time."""
    engine = _engine(request)
    send_after = body.send_after if body else None
    try:
        notification = await engine.reschedule(notification_id, send_after)
    except NotificationError as exc:
        raise _http_error(exc) from exc
    return _serialize(notification)


@router.get("/api/inbox/{recipient_key}")
async def list_inbox(recipient_key: str, request: Request) -> list[dict[str, Any]]:
    """In-app messages delivered to a user id (or one-off email/phone)."""
    inbox = getattr(request.app.state, "inbox", None)
    if inbox is None:
        raise HTTPException(status_code=503, detail="In-app inbox not available")
    return [m.model_dump(mode="json") for m in inbox.list_for(recipient_key)]
