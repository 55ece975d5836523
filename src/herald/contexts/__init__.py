"""Built-in context generators."""

from __future__ import annotations

from herald.contexts.event_invitation import EventInvitationContext
from herald.contexts.prospect_welcome import ProspectWelcomeContext
from herald.notifications.context import ContextRegistry


def default_context_registry(contact_email: str = "hello@example.com") -> ContextRegistry:
    """Registry pre-populated with the built-in generators (not frozen)."""
    return ContextRegistry(
        {
            "prospect_welcome": ProspectWelcomeContext(contact_email=contact_email),
            "event_invitation": EventInvitationContext(),
        }
    )


__all__ = ["EventInvitationContext", "ProspectWelcomeContext", "default_context_registry"]
