"""
Checkout Session Initiator (Stripe Checkout).

Stateless: validates the request, makes one call to Stripe, returns the
session id. Stripe owns the session lifecycle; nothing is persisted here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import stripe

from donorhub.errors import CheckoutSessionError, InvalidCheckoutRequest

log = logging.getLogger(__name__)

ONE_TIME = "one-time"
RECURRING = "recurring"
DONATION_TYPES = (ONE_TIME, RECURRING)

GENERIC_FAILURE = "Failed to create checkout session"
DEFAULT_ORIGIN = "http://localhost:5173"


def _parse_amount(raw: Any) -> Optional[int]:
    if isinstance(raw, bool) or raw is None:
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if raw.is_integer() else None
    s = str(raw).strip()
    return int(s) if s.isdigit() else None


def _safe_currency(raw: Any) -> Optional[str]:
    c = str(raw or "").lower().strip()
    if len(c) == 3 and c.isalpha():
        return c
    return None


@dataclass(frozen=True)
class CheckoutRequest:
    amount_cents: int
    currency: str
    donation_type: str

    @property
    def recurring(self) -> bool:
        return self.donation_type == RECURRING

    @classmethod
    def from_payload(cls, data: Mapping[str, Any], config: Mapping[str, Any]) -> "CheckoutRequest":
        amount = _parse_amount(data.get("amount"))
        lo = int(config.get("MIN_DONATION_CENTS") or 1)
        hi = int(config.get("MAX_DONATION_CENTS") or 0)
        if amount is None or amount <= 0 or amount < lo or (hi and amount > hi):
            raise InvalidCheckoutRequest("Invalid amount")

        raw_currency = data.get("currency")
        if raw_currency in (None, ""):
            currency = str(config.get("DEFAULT_CURRENCY") or "usd").lower()
        else:
            currency = _safe_currency(raw_currency)
            if currency is None:
                raise InvalidCheckoutRequest("Invalid currency")

        donation_type = str(data.get("donationType") or ONE_TIME).strip().lower()
        if donation_type not in DONATION_TYPES:
            raise InvalidCheckoutRequest("Invalid donationType")

        return cls(amount_cents=amount, currency=currency, donation_type=donation_type)


def session_params(req: CheckoutRequest, origin: str, config: Mapping[str, Any]) -> Dict[str, Any]:
    if req.recurring:
        name = config.get("CHECKOUT_RECURRING_PRODUCT_NAME") or "Monthly Donation"
        description = config.get("CHECKOUT_RECURRING_PRODUCT_DESCRIPTION")
    else:
        name = config.get("CHECKOUT_PRODUCT_NAME") or "Donation"
        description = config.get("CHECKOUT_PRODUCT_DESCRIPTION")

    product: Dict[str, Any] = {"name": name}
    if description:
        product["description"] = description

    price_data: Dict[str, Any] = {
        "currency": req.currency,
        "product_data": product,
        "unit_amount": req.amount_cents,
    }
    if req.recurring:
        price_data["recurring"] = {"interval": "month"}

    base = (origin or DEFAULT_ORIGIN).rstrip("/")
    return {
        "payment_method_types": ["card"],
        "mode": "subscription" if req.recurring else "payment",
        "success_url": f"{base}/donate?success=true",
        "cancel_url": f"{base}/donate?canceled=true",
        "metadata": {"donation_type": req.donation_type},
        "line_items": [{"price_data": price_data, "quantity": 1}],
    }


def create_checkout_session(req: CheckoutRequest, origin: str, config: Mapping[str, Any]) -> Dict[str, str]:
    """One outbound call; any provider problem becomes CheckoutSessionError."""
    api_key = str(config.get("STRIPE_SECRET_KEY") or "").strip()
    if not api_key:
        log.error("Checkout unavailable: STRIPE_SECRET_KEY is not configured")
        raise CheckoutSessionError(GENERIC_FAILURE)

    try:
        session = stripe.checkout.Session.create(api_key=api_key, **session_params(req, origin, config))
    except stripe.StripeError as e:
        log.error("Stripe checkout session creation failed: %s", getattr(e, "user_message", None) or e)
        raise CheckoutSessionError(GENERIC_FAILURE) from e

    log.info(
        "Checkout session %s created (%s %s, %s)",
        session["id"],
        req.amount_cents,
        req.currency,
        req.donation_type,
    )
    return {"sessionId": session["id"], "url": session.get("url") or ""}
