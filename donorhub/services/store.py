"""
Store primitives for donors, donations and referrals.

Every write here is a single keyed statement (INSERT ... ON CONFLICT, or a
guarded UPDATE) so concurrent deliveries of the same provider event converge
on one row without read-then-write races. Callers own the transaction.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite

from donorhub.errors import MalformedPayload, MissingDonorIdentity
from donorhub.extensions import db
from donorhub.models import Donation, DonationStatus, Donor, Referral
from donorhub.models.donation import states_that_may_become
from donorhub.models.donor import normalize_email
from donorhub.models.mixins import as_naive_utc, utcnow

log = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def dialect_insert(table):
    dialect = db.engine.dialect.name
    try:
        return _DIALECT_INSERTS[dialect](table)
    except KeyError:
        raise RuntimeError(f"Unsupported database dialect for upserts: {dialect}") from None


def _clean(v: Any, limit: int) -> Optional[str]:
    s = str(v).strip() if v is not None else ""
    return s[:limit] if s else None


# ----------------------------
# Money
# ----------------------------
def dollars_to_cents(raw: Any) -> int:
    """25.00 / "25.00" / 25 -> 2500, half-up on fractional cents."""
    if isinstance(raw, bool) or raw is None:
        raise MalformedPayload("amount must be a number")
    try:
        dollars = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise MalformedPayload("amount must be a number") from None
    if not dollars.is_finite():
        raise MalformedPayload("amount must be a number")
    cents = int((dollars * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents < 0:
        raise MalformedPayload("amount must not be negative")
    return cents


def minor_units(raw: Any) -> int:
    """Provider amounts already in minor units (Stripe)."""
    if isinstance(raw, bool) or raw is None:
        raise MalformedPayload("amount is required")
    try:
        cents = int(str(raw).strip())
    except ValueError:
        raise MalformedPayload("amount must be an integer of minor units") from None
    if cents < 0:
        raise MalformedPayload("amount must not be negative")
    return cents


# ----------------------------
# Donors
# ----------------------------
def upsert_donor(
    email: Any,
    *,
    first_name: Any = None,
    last_name: Any = None,
    phone: Any = None,
    country: Any = None,
    referred_by: Any = None,
    consent_source: Optional[str] = None,
    is_monthly_donor: bool = False,
) -> Donor:
    """
    Insert-or-update keyed on email.

    New non-empty values replace stored ones; `referred_by` and consent are
    first-write-wins; `is_monthly_donor` only turns on here (subscription
    events turn it off via set_monthly_donor()).
    """
    email = normalize_email(email)
    if not email or "@" not in email:
        raise MissingDonorIdentity("Donor email is required")

    now = utcnow()
    t = Donor.__table__
    stmt = dialect_insert(t).values(
        email=email,
        first_name=_clean(first_name, 120),
        last_name=_clean(last_name, 120),
        phone=_clean(phone, 40),
        country=_clean(country, 80),
        referred_by=_clean(referred_by, 64),
        consent_email=bool(consent_source),
        consent_timestamp=now if consent_source else None,
        consent_source=_clean(consent_source, 60),
        is_monthly_donor=bool(is_monthly_donor),
        created_at=now,
        updated_at=now,
    )
    ex = stmt.excluded
    stmt = stmt.on_conflict_do_update(
        index_elements=[t.c.email],
        set_={
            "first_name": func.coalesce(ex.first_name, t.c.first_name),
            "last_name": func.coalesce(ex.last_name, t.c.last_name),
            "phone": func.coalesce(ex.phone, t.c.phone),
            "country": func.coalesce(ex.country, t.c.country),
            "referred_by": func.coalesce(t.c.referred_by, ex.referred_by),
            "consent_email": or_(t.c.consent_email, ex.consent_email),
            "consent_timestamp": func.coalesce(t.c.consent_timestamp, ex.consent_timestamp),
            "consent_source": func.coalesce(t.c.consent_source, ex.consent_source),
            "is_monthly_donor": or_(t.c.is_monthly_donor, ex.is_monthly_donor),
            "updated_at": now,
        },
    )
    db.session.execute(stmt)
    return db.session.execute(
        select(Donor).where(Donor.email == email).execution_options(populate_existing=True)
    ).scalar_one()


def set_monthly_donor(email: Any, active: bool) -> bool:
    """Returns False when no donor has that email."""
    email = normalize_email(email)
    if not email:
        return False
    t = Donor.__table__
    res = db.session.execute(
        update(t).where(t.c.email == email).values(is_monthly_donor=bool(active), updated_at=utcnow())
    )
    return bool(res.rowcount)


# ----------------------------
# Donations
# ----------------------------
@dataclass(frozen=True)
class DonationUpsert:
    donation: Donation
    applied: bool


class TransitionResult(str, enum.Enum):
    APPLIED = "applied"
    MISSING = "missing"
    REJECTED = "rejected"


def upsert_donation(
    *,
    donor_id: int,
    external_source: str,
    external_id: str,
    amount_cents: int,
    currency: str,
    status: DonationStatus | str,
    frequency: str = "one_time",
    method: Optional[str] = None,
    campaign: Optional[str] = None,
    referral_code: Optional[str] = None,
    donated_at: Optional[datetime] = None,
    status_reason: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> DonationUpsert:
    """
    Insert-or-update keyed on (external_source, external_id).

    The conflict update only fires when the stored status may legally move to
    `status`; otherwise the row is left as-is and `applied` is False.
    """
    status = DonationStatus(status)
    external_id = _clean(external_id, 120) or ""
    if not external_id:
        raise MalformedPayload("external id is required")
    if int(amount_cents) < 0:
        raise MalformedPayload("amount must not be negative")

    now = utcnow()
    t = Donation.__table__
    stmt = dialect_insert(t).values(
        donor_id=int(donor_id),
        external_source=external_source,
        external_id=external_id,
        amount_cents=int(amount_cents),
        currency=(currency or "usd").strip().upper()[:3],
        frequency=_clean(frequency, 20) or "one_time",
        status=status.value,
        status_reason=_clean(status_reason, 500),
        method=_clean(method, 60),
        campaign=_clean(campaign, 120),
        referral_code=_clean(referral_code, 64),
        donated_at=as_naive_utc(donated_at) if donated_at else now,
        processed_at=now,
        metadata=details or {},
        created_at=now,
        updated_at=now,
    )
    ex = stmt.excluded
    stmt = stmt.on_conflict_do_update(
        index_elements=[t.c.external_source, t.c.external_id],
        set_={
            "amount_cents": ex.amount_cents,
            "currency": ex.currency,
            "frequency": ex.frequency,
            "status": ex.status,
            "status_reason": func.coalesce(ex.status_reason, t.c.status_reason),
            "method": func.coalesce(ex.method, t.c.method),
            "campaign": func.coalesce(ex.campaign, t.c.campaign),
            "referral_code": func.coalesce(t.c.referral_code, ex.referral_code),
            "processed_at": ex.processed_at,
            "metadata": ex["metadata"],
            "updated_at": now,
        },
        where=t.c.status.in_(sorted(states_that_may_become(status))),
    )
    db.session.execute(stmt)

    donation = db.session.execute(
        select(Donation)
        .where(Donation.external_source == external_source, Donation.external_id == external_id)
        .execution_options(populate_existing=True)
    ).scalar_one()

    applied = donation.status == status.value
    if not applied:
        log.warning(
            "Rejected donation status transition %s -> %s for %s:%s",
            donation.status,
            status.value,
            external_source,
            external_id,
        )
    return DonationUpsert(donation=donation, applied=applied)


def transition_donation(
    external_source: str,
    external_id: str,
    status: DonationStatus | str,
    *,
    reason: Optional[str] = None,
) -> TransitionResult:
    """Guarded status update for events that only carry the provider id."""
    status = DonationStatus(status)
    external_id = _clean(external_id, 120) or ""
    if not external_id:
        return TransitionResult.MISSING

    t = Donation.__table__
    key = (t.c.external_source == external_source, t.c.external_id == external_id)
    now = utcnow()
    res = db.session.execute(
        update(t)
        .where(*key, t.c.status.in_(sorted(states_that_may_become(status))))
        .values(
            status=status.value,
            status_reason=func.coalesce(_clean(reason, 500), t.c.status_reason),
            processed_at=now,
            updated_at=now,
        )
    )
    if res.rowcount:
        return TransitionResult.APPLIED

    current = db.session.execute(select(t.c.status).where(*key)).scalar_one_or_none()
    if current is None:
        log.info("No donation %s:%s for %s transition", external_source, external_id, status.value)
        return TransitionResult.MISSING

    log.warning(
        "Rejected donation status transition %s -> %s for %s:%s",
        current,
        status.value,
        external_source,
        external_id,
    )
    return TransitionResult.REJECTED


# ----------------------------
# Referrals
# ----------------------------
def record_referral(
    *,
    referrer_code: Any,
    referred_email: Any,
    referred_donor_id: int,
    first_donation_id: Optional[int],
    conversion_date: Optional[datetime] = None,
) -> bool:
    """Insert-if-absent on (referrer_code, referred_email). True when a row was created."""
    code = _clean(referrer_code, 64)
    email = normalize_email(referred_email)
    if not code or not email:
        return False

    t = Referral.__table__
    stmt = (
        dialect_insert(t)
        .values(
            referrer_code=code,
            referred_email=email,
            referred_donor_id=int(referred_donor_id),
            converted=True,
            first_donation_id=first_donation_id,
            conversion_date=as_naive_utc(conversion_date) if conversion_date else utcnow(),
            created_at=utcnow(),
        )
        .on_conflict_do_nothing(index_elements=[t.c.referrer_code, t.c.referred_email])
    )
    return bool(db.session.execute(stmt).rowcount)
