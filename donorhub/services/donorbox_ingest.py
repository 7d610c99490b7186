"""Donorbox webhook ingestor: body {donation: {id, donor, amount, ...}}.

Donorbox reports `amount` in major units (dollars), unlike Stripe.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from donorhub.errors import MalformedPayload, MissingDonorIdentity
from donorhub.models import DonationStatus, Frequency

from .ingest import IngestOutcome, WebhookIngestor, parse_timestamp, truthy
from .signatures import verify_hmac_signature
from .store import dollars_to_cents, upsert_donation, upsert_donor

log = logging.getLogger(__name__)

SOURCE = "donorbox"
EVENT_TYPE = "donation.created"

_STATUS_MAP = {
    "paid": DonationStatus.SUCCEEDED,
    "succeeded": DonationStatus.SUCCEEDED,
    "failed": DonationStatus.FAILED,
    "refunded": DonationStatus.DISPUTED,
    "disputed": DonationStatus.DISPUTED,
}


def donorbox_status(raw: Any) -> DonationStatus:
    return _STATUS_MAP.get(str(raw or "").strip().lower(), DonationStatus.PENDING)


class DonorboxIngestor(WebhookIngestor):
    source = SOURCE
    secret_key = "DONORBOX_WEBHOOK_SECRET"

    def verify(self, payload: bytes, signature: str, secret: str) -> bool:
        return verify_hmac_signature(secret, payload, signature)

    def describe(self, event: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
        donation = event.get("donation") if isinstance(event.get("donation"), dict) else {}
        return EVENT_TYPE, donation.get("id")

    def handle(self, event: Dict[str, Any]) -> IngestOutcome:
        donation = event.get("donation")
        if not isinstance(donation, dict):
            raise MalformedPayload("donation is required")

        donor_in = donation.get("donor") if isinstance(donation.get("donor"), dict) else {}
        if not donor_in.get("email"):
            raise MissingDonorIdentity("donation.donor.email is required")

        external_id = str(donation.get("id") or "").strip()
        if not external_id:
            raise MalformedPayload("donation.id is required")

        amount_cents = dollars_to_cents(donation.get("amount"))
        recurring = truthy(donation.get("recurring"))
        frequency = str(donation.get("frequency") or Frequency.MONTHLY.value) if recurring else Frequency.ONE_TIME.value
        referral_code = donation.get("referral_code")
        campaign = donation.get("campaign")
        if isinstance(campaign, dict):
            campaign = campaign.get("name")

        donor = upsert_donor(
            donor_in.get("email"),
            first_name=donor_in.get("first_name"),
            last_name=donor_in.get("last_name"),
            phone=donor_in.get("phone"),
            country=donor_in.get("country"),
            referred_by=referral_code,
            consent_source="donorbox_donation",
            is_monthly_donor=recurring,
        )
        result = upsert_donation(
            donor_id=donor.id,
            external_source=SOURCE,
            external_id=external_id,
            amount_cents=amount_cents,
            currency=str(donation.get("currency") or "usd"),
            status=donorbox_status(donation.get("status")),
            frequency=frequency,
            method=donation.get("payment_method"),
            campaign=campaign,
            referral_code=referral_code,
            donated_at=parse_timestamp(donation.get("donation_date")),
            details={
                k: donation.get(k)
                for k in ("utm_source", "utm_campaign", "status")
                if donation.get(k) is not None
            },
        )
        self.attribute_referral(donor, result.donation, referral_code)

        return IngestOutcome(
            processed=True,
            changed=result.applied,
            body={
                "donor_id": donor.id,
                "donation_id": result.donation.id,
                "status": result.donation.status,
            },
        )
