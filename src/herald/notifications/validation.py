"""Validation shared by every notification backend.

Backends call ``new_notification`` on create and ``apply_patch`` on update,
so recipient-mode and immutable-field rules are enforced identically for
the in-memory store and the SQL repository.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from herald.core.types import ensure_utc, utcnow
from herald.notifications.errors import ImmutableFieldError, ValidationError
from herald.notifications.models import (
    Notification,
    NotificationPatch,
    NotificationSpec,
    OneOffRecipient,
    RegisteredUser,
)

IMMUTABLE_FIELDS = frozenset(
    {
        "id",
        "recipient",
        "status",
        "failure_reason",
        "context_used",
        "adapter_used",
        "sent_at",
        "read_at",
        "created_at",
        "updated_at",
    }
)

_ONE_OFF_FIELDS = ("email_or_phone", "first_name", "last_name")
_REQUIRED_TEXT_FIELDS = ("body_template", "context_name")
_NON_NULL_FIELDS = ("attachments", "context_parameters")


def _field_errors(exc: PydanticValidationError) -> dict[str, str]:
    errors: dict[str, str] = {}
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"]) or "__root__"
        errors[field] = err["msg"]
    return errors


def build_recipient(
    user_id: str | None,
    email_or_phone: str | None,
    first_name: str | None,
    last_name: str | None,
) -> RegisteredUser | OneOffRecipient:
    """Resolve the flat recipient fields into exactly one recipient mode."""
    has_user = bool(user_id)
    has_contact = bool(email_or_phone)

    if has_user and has_contact:
        raise ValidationError(
            "Recipient must be a registered user or a one-off contact, not both",
            {
                "user_id": "cannot be combined with email_or_phone",
                "email_or_phone": "cannot be combined with user_id",
            },
        )
    if not has_user and not has_contact:
        raise ValidationError(
            "A recipient is required",
            {"user_id": "either user_id or email_or_phone is required"},
        )

    if has_user:
        extra = {
            name: "only allowed for one-off recipients"
            for name, value in (("first_name", first_name), ("last_name", last_name))
            if value
        }
        if extra:
            raise ValidationError("Registered-user recipients take no contact names", extra)
        return RegisteredUser(user_id=user_id)

    missing = {
        name: "required for one-off recipients"
        for name, value in (("first_name", first_name), ("last_name", last_name))
        if not value
    }
    if missing:
        raise ValidationError("Incomplete one-off recipient", missing)
    return OneOffRecipient(
        email_or_phone=email_or_phone,
        first_name=first_name,
        last_name=last_name,
    )


def parse_spec(spec: NotificationSpec | Mapping[str, Any]) -> NotificationSpec:
    if isinstance(spec, NotificationSpec):
        return spec
    try:
        return NotificationSpec.model_validate(dict(spec))
    except PydanticValidationError as exc:
        raise ValidationError("Invalid notification", _field_errors(exc)) from exc


def new_notification(spec: NotificationSpec | Mapping[str, Any]) -> Notification:
    """Validate a creation request and build the PENDING_SEND notification."""
    spec = parse_spec(spec)

    errors = {
        name: "must not be empty"
        for name in _REQUIRED_TEXT_FIELDS
        if not getattr(spec, name).strip()
    }
    if errors:
        raise ValidationError("Invalid notification", errors)

    recipient = build_recipient(
        spec.user_id, spec.email_or_phone, spec.first_name, spec.last_name
    )
    now = utcnow()
    return Notification(
        recipient=recipient,
        notification_type=spec.notification_type,
        title=spec.title,
        body_template=spec.body_template,
        subject_template=spec.subject_template,
        context_name=spec.context_name,
        context_parameters=dict(spec.context_parameters),
        send_after=ensure_utc(spec.send_after),
        extra_params=spec.extra_params,
        attachments=list(spec.attachments),
        created_at=now,
        updated_at=now,
    )


def apply_patch(
    notification: Notification,
    patch: NotificationPatch | Mapping[str, Any],
) -> Notification:
    """Return a copy of ``notification`` with ``patch`` applied.

    Raises ``ImmutableFieldError`` for engine-owned fields and
    ``ValidationError`` for anything that would change the recipient mode.
    """
    if isinstance(patch, NotificationPatch):
        parsed = patch
    else:
        raw = dict(patch)
        immutable = sorted(IMMUTABLE_FIELDS & raw.keys())
        if immutable:
            raise ImmutableFieldError(
                f"Fields cannot be updated directly: {', '.join(immutable)}",
                {name: "cannot be set directly" for name in immutable},
            )
        try:
            parsed = NotificationPatch.model_validate(raw)
        except PydanticValidationError as exc:
            raise ValidationError("Invalid notification update", _field_errors(exc)) from exc

    changes: dict[str, Any] = {name: getattr(parsed, name) for name in parsed.model_fields_set}

    errors = {
        name: "must not be empty"
        for name in (*_REQUIRED_TEXT_FIELDS, "notification_type")
        if name in changes and not changes[name]
    }
    errors.update(
        {name: "must not be null" for name in _NON_NULL_FIELDS if name in changes and changes[name] is None}
    )
    if errors:
        raise ValidationError("Invalid notification update", errors)

    update: dict[str, Any] = {}
    recipient_changes = {name: changes.pop(name) for name in ("user_id", *_ONE_OFF_FIELDS) if name in changes}
    if recipient_changes:
        update["recipient"] = _patched_recipient(notification, recipient_changes)

    if "send_after" in changes:
        changes["send_after"] = ensure_utc(changes["send_after"])
    update.update(changes)
    update["updated_at"] = utcnow()
    return notification.model_copy(update=update)


def _patched_recipient(
    notification: Notification, changes: dict[str, Any]
) -> RegisteredUser | OneOffRecipient:
    current = notification.recipient
    if isinstance(current, RegisteredUser):
        mixed = [name for name in _ONE_OFF_FIELDS if name in changes]
        if mixed:
            raise ValidationError(
                "Recipient mode is fixed at creation",
                {name: "not allowed for registered-user notifications" for name in mixed},
            )
        return build_recipient(changes.get("user_id"), None, None, None)

    if "user_id" in changes:
        raise ValidationError(
            "Recipient mode is fixed at creation",
            {"user_id": "not allowed for one-off notifications"},
        )
    return build_recipient(
        None,
        changes.get("email_or_phone", current.email_or_phone),
        changes.get("first_name", current.first_name),
        changes.get("last_name", current.last_name),
    )
