"""
Generic webhook ingestion pipeline.

    audit  -> verify signature -> parse -> provider handler -> rollup -> processed

The audit row is committed before anything else so every delivery is on
record, including ones that fail verification or parsing. Provider writes
and the "processed" mark share one transaction; on failure it is rolled back
and the error is stamped on the audit row so the provider can retry.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple

from sqlalchemy import select, update

from donorhub.errors import InvalidSignature, MalformedPayload
from donorhub.extensions import db, tx_commit
from donorhub.models import Donation, DonationStatus, Donor, WebhookLog
from donorhub.models.mixins import utcnow

from .metrics import refresh_rollup
from .store import record_referral

log = logging.getLogger(__name__)


@dataclass
class IngestOutcome:
    processed: bool = True
    changed: bool = False
    body: Dict[str, Any] = field(default_factory=dict)


def parse_timestamp(raw: Any) -> Optional[datetime]:
    """Epoch seconds or ISO-8601 (with or without a trailing Z)."""
    if raw in (None, ""):
        return None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return datetime.fromtimestamp(raw, tz=timezone.utc)
    s = str(raw).strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        log.warning("Unparseable timestamp %r; using processing time", raw)
        return None


def truthy(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    return str(v or "").strip().lower() in {"1", "true", "yes", "on", "y"}


class WebhookIngestor:
    """Base class; subclasses set `source` and implement the hooks below."""

    source: str = ""
    secret_key: str = ""

    def __init__(self, config: Mapping[str, Any]):
        self.config = config

    # ---- provider hooks -------------------------------------------------
    def verify(self, payload: bytes, signature: str, secret: str) -> bool:
        raise NotImplementedError

    def describe(self, event: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
        """(event_type, external_event_id) for the audit row."""
        raise NotImplementedError

    def handle(self, event: Dict[str, Any]) -> IngestOutcome:
        raise NotImplementedError

    # ---- pipeline -------------------------------------------------------
    def ingest(self, payload: bytes, signature: Optional[str]) -> IngestOutcome:
        entry = self._audit(payload, signature)
        entry_id = entry.id

        try:
            entry.verified = self._check_signature(payload, signature or "")
            tx_commit()
            event = self._parse(payload)
            outcome = self.handle(event)
            if outcome.changed:
                refresh_rollup()
            if outcome.processed:
                db.session.execute(
                    update(WebhookLog)
                    .where(WebhookLog.id == entry_id)
                    .values(processed=True, processed_at=utcnow())
                )
            tx_commit()
        except Exception as e:
            db.session.rollback()
            self._record_error(entry_id, e)
            raise

        return outcome

    def _audit(self, payload: bytes, signature: Optional[str]) -> WebhookLog:
        event_type, event_id = None, None
        try:
            peek = json.loads(payload.decode("utf-8"))
            if isinstance(peek, dict):
                event_type, event_id = self.describe(peek)
        except (UnicodeDecodeError, ValueError):
            pass

        entry = WebhookLog(
            source=self.source,
            event_type=(event_type or "")[:120] or None,
            external_event_id=(str(event_id)[:120] if event_id else None),
            payload=payload.decode("utf-8", errors="replace"),
            signature=(signature or "")[:500] or None,
            verified=False,
        )
        db.session.add(entry)
        tx_commit()
        return entry

    def _check_signature(self, payload: bytes, signature: str) -> bool:
        secret = str(self.config.get(self.secret_key) or "")
        if not secret:
            if self.config.get("REQUIRE_WEBHOOK_SIGNATURES"):
                log.error("%s webhook rejected: %s is not configured", self.source, self.secret_key)
                raise InvalidSignature("Invalid signature")
            log.warning("%s webhook secret unset; accepting unverified payload", self.source)
            return False

        if not self.verify(payload, signature, secret):
            log.warning("Invalid %s webhook signature", self.source)
            raise InvalidSignature("Invalid signature")
        return True

    @staticmethod
    def _parse(payload: bytes) -> Dict[str, Any]:
        try:
            event = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            raise MalformedPayload("invalid JSON") from None
        if not isinstance(event, dict):
            raise MalformedPayload("JSON object expected")
        return event

    @staticmethod
    def _record_error(entry_id: int, err: Exception) -> None:
        try:
            db.session.execute(
                update(WebhookLog).where(WebhookLog.id == entry_id).values(error=str(err)[:500] or type(err).__name__)
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            log.exception("Failed to record webhook error on log %s", entry_id)

    # ---- shared steps ---------------------------------------------------
    def attribute_referral(self, donor: Donor, donation: Donation, code: Optional[str]) -> bool:
        """Insert-once referral row, only for the donor's first conversion."""
        code = (code or "").strip()
        if not code or donation.status != DonationStatus.SUCCEEDED.value:
            return False
        if donor.referral_code and donor.referral_code == code:
            log.info("Ignoring self-referral for donor %s", donor.id)
            return False
        if _converted_before(donor.id, donation.id):
            log.info("Donor %s already converted; not crediting referral %s", donor.id, code)
            return False
        created = record_referral(
            referrer_code=code,
            referred_email=donor.email,
            referred_donor_id=donor.id,
            first_donation_id=donation.id,
            conversion_date=donation.donated_at,
        )
        if created:
            log.info("Referral %s attributed to donor %s", code, donor.id)
        return created


def _converted_before(donor_id: int, donation_id: int) -> bool:
    """True when another of the donor's donations already converted (succeeded, possibly since disputed)."""
    other = db.session.scalar(
        select(Donation.id)
        .where(
            Donation.donor_id == donor_id,
            Donation.id != donation_id,
            Donation.status.in_([DonationStatus.SUCCEEDED.value, DonationStatus.DISPUTED.value]),
        )
        .limit(1)
    )
    return other is not None
