"""Payment-confirmation handling: turns a confirmed checkout into a ledger credit."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from resume_forge.ledger.models import CreditResult
from resume_forge.ledger.repository import LedgerRepository
from resume_forge.storage.database import Database, UserContext

logger = logging.getLogger(__name__)

CONFIRMED_EVENT_TYPES = frozenset({"checkout.session.completed", "payment_intent.succeeded"})


@dataclass(frozen=True, slots=True)
class TokenPackage:
    package_id: str
    tokens: int
    price_usd: float


TOKEN_PACKAGES: dict[str, TokenPackage] = {
    "starter": TokenPackage(package_id="starter", tokens=100, price_usd=4.99),
    "pro": TokenPackage(package_id="pro", tokens=250, price_usd=9.99),
    "premium": TokenPackage(package_id="premium", tokens=500, price_usd=14.99),
}


@dataclass(slots=True)
class PaymentConfirmation:
    """Normalized confirmed payment, keyed by the provider's payment reference."""

    reference: str
    user_id: str
    tokens: int
    package_id: str | None = None
    amount_usd: float | None = None

    @classmethod
    def from_event(cls, event: Mapping[str, Any]) -> PaymentConfirmation | None:
        """Parse a webhook-style event; returns None for event types we ignore."""

        event_type = event.get("type")
        if event_type not in CONFIRMED_EVENT_TYPES:
            return None

        data = event.get("data")
        payload = data.get("object") if isinstance(data, Mapping) else None
        if not isinstance(payload, Mapping):
            raise ValueError(f"Payment event {event_type} has no data.object payload.")

        reference = payload.get("id")
        metadata = payload.get("metadata")
        if not isinstance(reference, str) or not reference:
            raise ValueError("Payment event is missing the payment reference id.")
        if not isinstance(metadata, Mapping):
            raise ValueError(f"Payment {reference} is missing metadata.")

        user_id = metadata.get("uid") or metadata.get("userId")
        if not isinstance(user_id, str) or not user_id:
            raise ValueError(f"Payment {reference} metadata has no user id.")

        package_id = metadata.get("packageId")
        tokens = _parse_tokens(metadata.get("tokens"), package_id=package_id)
        amount_total = payload.get("amount_total")
        return cls(
            reference=reference,
            user_id=user_id,
            tokens=tokens,
            package_id=package_id if isinstance(package_id, str) else None,
            amount_usd=amount_total / 100 if isinstance(amount_total, int) else None,
        )


def handle_payment_confirmation(
    database: Database,
    confirmation: PaymentConfirmation,
) -> CreditResult:
    """Credit the purchased tokens; duplicate deliveries are no-ops."""

    context = UserContext(user_id=confirmation.user_id, user_name=confirmation.user_id)
    database.ensure_user(context)
    ledger = LedgerRepository(database, context=context)
    description = (
        f"Purchased {confirmation.package_id} package"
        if confirmation.package_id
        else f"Purchased {confirmation.tokens} tokens"
    )
    result = ledger.credit(
        amount=confirmation.tokens,
        external_ref=confirmation.reference,
        description=description,
        resource_id=confirmation.package_id,
    )
    if not result.applied:
        logger.info("Payment %s was already processed", confirmation.reference)
    return result


def _parse_tokens(raw: object, *, package_id: object) -> int:
    if isinstance(raw, int) and raw > 0:
        return raw
    if isinstance(raw, str) and raw.strip().isdigit() and int(raw) > 0:
        return int(raw)
    if isinstance(package_id, str) and package_id in TOKEN_PACKAGES:
        return TOKEN_PACKAGES[package_id].tokens
    raise ValueError(f"Cannot determine purchased token amount (tokens={raw!r}).")
