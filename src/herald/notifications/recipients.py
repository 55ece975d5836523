"""Turning a notification's recipient into addressing information."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from herald.channels.models import DeliveryRecipient
from herald.notifications.errors import RecipientResolutionError
from herald.notifications.models import OneOffRecipient, RegisteredUser
from herald.repositories import resolve


@runtime_checkable
class UserDirectory(Protocol):
    """Looks up contact details for registered users (sync or async)."""

    def get_contact(self, user_id: str) -> DeliveryRecipient | None: ...


class InMemoryUserDirectory:
    def __init__(self) -> None:
        self._contacts: dict[str, DeliveryRecipient] = {}

    def add(self, contact: DeliveryRecipient) -> None:
        if not contact.user_id:
            raise ValueError("Directory contacts need a user_id")
        self._contacts[contact.user_id] = contact

    def get_contact(self, user_id: str) -> DeliveryRecipient | None:
        return self._contacts.get(user_id)


def one_off_contact(recipient: OneOffRecipient) -> DeliveryRecipient:
    """Addresses containing ``@`` are emails; anything else is a phone number."""
    address = recipient.email_or_phone.strip()
    is_email = "@" in address
    return DeliveryRecipient(
        email=address if is_email else None,
        phone=None if is_email else address,
        first_name=recipient.first_name,
        last_name=recipient.last_name,
    )


async def resolve_recipient(
    recipient: RegisteredUser | OneOffRecipient,
    directory: UserDirectory | None,
) -> DeliveryRecipient:
    if isinstance(recipient, OneOffRecipient):
        return one_off_contact(recipient)

    if directory is None:
        return DeliveryRecipient(user_id=recipient.user_id)
    try:
        contact = await resolve(directory.get_contact(recipient.user_id))
    except Exception as exc:
        raise RecipientResolutionError(f"user {recipient.user_id}: {exc}") from exc
    if contact is None:
        raise RecipientResolutionError(f"Unknown user {recipient.user_id!r}")
    return contact.model_copy(update={"user_id": recipient.user_id})
