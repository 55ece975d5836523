"""Welcome message context for prospects who have not signed up yet."""

from __future__ import annotations

from herald.core.types import JsonObject, utcnow


class ProspectWelcomeContext:
    """Builds ``company_name``, ``product_name``, ``contact_email`` and ``current_year``.

    ``company_name`` is required; ``product_name`` falls back to the
    configured default.
    """

    def __init__(self, contact_email: str = "hello@example.com", default_product: str = "Herald") -> None:
        self._contact_email = contact_email
        self._default_product = default_product

    def generate(self, params: JsonObject) -> JsonObject:
        company_name = params.get("company_name")
        if not company_name:
            raise ValueError("company_name is required")
        return {
            "company_name": company_name,
            "product_name": params.get("product_name") or self._default_product,
            "contact_email": self._contact_email,
            "current_year": utcnow().year,
        }
