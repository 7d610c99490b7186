"""Stripe webhook ingestor: event envelope {id, type, data: {object}}."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Tuple

from donorhub.errors import MalformedPayload
from donorhub.models import DonationStatus, Frequency

from .ingest import IngestOutcome, WebhookIngestor, parse_timestamp
from .signatures import verify_stripe_signature
from .store import (
    TransitionResult,
    minor_units,
    set_monthly_donor,
    transition_donation,
    upsert_donation,
    upsert_donor,
)

log = logging.getLogger(__name__)

SOURCE = "stripe"


def payment_key(obj: Dict[str, Any]) -> str:
    """
    Canonical donation key for a Stripe object.

    Charges and disputes point at their PaymentIntent, so payment_intent.*,
    charge.* and charge.dispute.* events for one payment share a row.
    """
    return str(obj.get("payment_intent") or obj.get("charge") or obj.get("id") or "")


def _split_name(full: Any) -> Tuple[Optional[str], Optional[str]]:
    parts = str(full or "").split()
    if not parts:
        return None, None
    return parts[0], (" ".join(parts[1:]) or None)


def _payment_method(obj: Dict[str, Any]) -> str:
    types = obj.get("payment_method_types") or []
    if types:
        return str(types[0])
    details = obj.get("payment_method_details") or {}
    return str(details.get("type") or "card")


class StripeIngestor(WebhookIngestor):
    source = SOURCE
    secret_key = "STRIPE_WEBHOOK_SECRET"

    def verify(self, payload: bytes, signature: str, secret: str) -> bool:
        tolerance = int(self.config.get("STRIPE_WEBHOOK_TOLERANCE") or 300)
        return verify_stripe_signature(payload, signature, secret, tolerance=tolerance)

    def describe(self, event: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
        return event.get("type"), event.get("id")

    def handle(self, event: Dict[str, Any]) -> IngestOutcome:
        etype = str(event.get("type") or "").strip().lower()
        if not etype:
            raise MalformedPayload("Stripe event must carry a type")

        handler = self._handlers().get(etype)
        if handler is None:
            log.info("Unhandled Stripe event type: %s", etype)
            return IngestOutcome(processed=False)

        data = event.get("data")
        obj = data.get("object") if isinstance(data, dict) else None
        if not isinstance(obj, dict):
            raise MalformedPayload(f"Stripe {etype} event must carry data.object")
        return handler(event, obj)

    def _handlers(self) -> Dict[str, Callable[[Dict[str, Any], Dict[str, Any]], IngestOutcome]]:
        return {
            "payment_intent.succeeded": self._payment_succeeded,
            "charge.succeeded": self._payment_succeeded,
            "payment_intent.payment_failed": self._payment_failed,
            "charge.failed": self._payment_failed,
            "charge.dispute.created": self._dispute_created,
            "customer.subscription.created": self._subscription_changed,
            "customer.subscription.updated": self._subscription_changed,
            "invoice.payment_failed": self._invoice_failed,
        }

    # ---- handlers -------------------------------------------------------
    def _payment_succeeded(self, event: Dict[str, Any], obj: Dict[str, Any]) -> IngestOutcome:
        md = obj.get("metadata") or {}
        billing = obj.get("billing_details") or {}

        email = md.get("email") or obj.get("receipt_email") or billing.get("email")
        if not email:
            log.info("Stripe %s %s carries no donor email; skipping", event.get("type"), obj.get("id"))
            return IngestOutcome(processed=True)

        first, last = md.get("first_name"), md.get("last_name")
        if not first:
            first, last = _split_name(billing.get("name"))

        frequency = str(md.get("frequency") or Frequency.ONE_TIME.value)
        referral_code = md.get("referral_code")
        key = payment_key(obj)

        donor = upsert_donor(
            email,
            first_name=first,
            last_name=last,
            phone=billing.get("phone"),
            country=(billing.get("address") or {}).get("country"),
            referred_by=referral_code,
            is_monthly_donor=frequency != Frequency.ONE_TIME.value,
        )
        result = upsert_donation(
            donor_id=donor.id,
            external_source=SOURCE,
            external_id=key,
            amount_cents=minor_units(obj.get("amount")),
            currency=str(obj.get("currency") or "usd"),
            status=DonationStatus.SUCCEEDED,
            frequency=frequency,
            method=_payment_method(obj),
            campaign=md.get("campaign"),
            referral_code=referral_code,
            donated_at=parse_timestamp(obj.get("created")),
            details={
                "stripe_payment_intent": key,
                "stripe_object": obj.get("id"),
                "stripe_event": event.get("id"),
            },
        )
        self.attribute_referral(donor, result.donation, referral_code)

        return IngestOutcome(
            processed=True,
            changed=result.applied,
            body={"donor_id": donor.id, "donation_id": result.donation.id},
        )

    def _payment_failed(self, event: Dict[str, Any], obj: Dict[str, Any]) -> IngestOutcome:
        reason = (obj.get("last_payment_error") or {}).get("message") or obj.get("failure_message")
        result = transition_donation(SOURCE, payment_key(obj), DonationStatus.FAILED, reason=reason)
        # TODO: hand off to the payment recovery email workflow once it exists
        return IngestOutcome(processed=True, changed=result is TransitionResult.APPLIED)

    def _dispute_created(self, event: Dict[str, Any], obj: Dict[str, Any]) -> IngestOutcome:
        key = payment_key(obj)
        result = transition_donation(SOURCE, key, DonationStatus.DISPUTED, reason=obj.get("reason"))
        if result is TransitionResult.APPLIED:
            log.warning("Donation stripe:%s disputed (%s)", key, obj.get("reason") or "no reason given")
        return IngestOutcome(processed=True, changed=result is TransitionResult.APPLIED)

    def _subscription_changed(self, event: Dict[str, Any], obj: Dict[str, Any]) -> IngestOutcome:
        email = (obj.get("metadata") or {}).get("email")
        if not email:
            log.info("Stripe subscription %s has no metadata.email; skipping", obj.get("id"))
            return IngestOutcome(processed=True)

        active = str(obj.get("status") or "").lower() == "active"
        if not set_monthly_donor(email, active):
            log.info("Stripe subscription %s for unknown donor", obj.get("id"))
        return IngestOutcome(processed=True)

    def _invoice_failed(self, event: Dict[str, Any], obj: Dict[str, Any]) -> IngestOutcome:
        log.warning("Invoice payment failed: %s", obj.get("id"))
        pi = obj.get("payment_intent")
        if not pi:
            return IngestOutcome(processed=True)
        result = transition_donation(SOURCE, str(pi), DonationStatus.FAILED, reason="invoice payment failed")
        return IngestOutcome(processed=True, changed=result is TransitionResult.APPLIED)
