from __future__ import annotations

# -----------------------------------------------------------------------------
# Donation Model
# Cents-based, keyed by (external_source, external_id), owned by a Donor.
# Status moves are constrained by ALLOWED_TRANSITIONS.
# -----------------------------------------------------------------------------
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Optional

from sqlalchemy import CheckConstraint, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from donorhub.extensions import db

from .mixins import TimestampMixin, utcnow

if TYPE_CHECKING:
    from .donor import Donor


class DonationStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    DISPUTED = "disputed"


class Frequency(str, Enum):
    ONE_TIME = "one_time"
    MONTHLY = "monthly"


ALLOWED_TRANSITIONS: Dict[DonationStatus, FrozenSet[DonationStatus]] = {
    DonationStatus.PENDING: frozenset({DonationStatus.SUCCEEDED, DonationStatus.FAILED}),
    DonationStatus.FAILED: frozenset({DonationStatus.SUCCEEDED, DonationStatus.PENDING}),
    DonationStatus.SUCCEEDED: frozenset({DonationStatus.DISPUTED}),
    DonationStatus.DISPUTED: frozenset(),
}


def can_transition(current: DonationStatus | str, target: DonationStatus | str) -> bool:
    current, target = DonationStatus(current), DonationStatus(target)
    return current == target or target in ALLOWED_TRANSITIONS[current]


def states_that_may_become(target: DonationStatus | str) -> FrozenSet[str]:
    """Every status a row may currently hold for a move to `target` to be valid."""
    target = DonationStatus(target)
    return frozenset(
        s.value for s in DonationStatus if s == target or target in ALLOWED_TRANSITIONS[s]
    )


def format_usd(cents: Optional[int]) -> str:
    return f"{int(cents or 0) / 100:.2f}"


class Donation(db.Model, TimestampMixin):
    __tablename__ = "donations"
    __table_args__ = (
        UniqueConstraint("external_source", "external_id", name="uq_donations_external"),
        CheckConstraint("amount_cents >= 0", name="ck_donations_amount_nonneg"),
        Index("ix_donations_status_donated_at", "status", "donated_at"),
    )

    # ---- Identifiers ----
    id: Mapped[int] = mapped_column(primary_key=True)

    donor_id: Mapped[int] = mapped_column(
        db.ForeignKey("donors.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    donor: Mapped["Donor"] = relationship("Donor", back_populates="donations", lazy="joined")

    external_id: Mapped[str] = mapped_column(
        db.String(120),
        nullable=False,
        doc="Provider id (Stripe PaymentIntent pi_..., Donorbox donation id)",
    )
    external_source: Mapped[str] = mapped_column(
        db.String(20),
        nullable=False,
        index=True,
        doc="stripe / donorbox",
    )

    # ---- Financials (cents) ----
    amount_cents: Mapped[int] = mapped_column(
        db.Integer,
        default=0,
        nullable=False,
        doc="Donation amount in minor currency units",
    )
    currency: Mapped[str] = mapped_column(db.String(3), nullable=False, default="USD")
    frequency: Mapped[str] = mapped_column(
        db.String(20), nullable=False, default=Frequency.ONE_TIME.value
    )

    # ---- Lifecycle ----
    status: Mapped[str] = mapped_column(
        db.String(20),
        nullable=False,
        default=DonationStatus.PENDING.value,
        index=True,
    )
    status_reason: Mapped[Optional[str]] = mapped_column(
        db.String(500),
        nullable=True,
        doc="Failure or dispute reason reported by the provider",
    )

    method: Mapped[Optional[str]] = mapped_column(db.String(60), nullable=True)
    campaign: Mapped[Optional[str]] = mapped_column(db.String(120), nullable=True, index=True)
    referral_code: Mapped[Optional[str]] = mapped_column(db.String(64), nullable=True, index=True)

    donated_at: Mapped[datetime] = mapped_column(db.DateTime, nullable=False, default=utcnow, index=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)

    # "metadata" is reserved on declarative classes
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", db.JSON, nullable=True)

    # ==========================================================
    # Computed Properties
    # ==========================================================
    @property
    def amount_dollars(self) -> float:
        return round((self.amount_cents or 0) / 100.0, 2)

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Donation {self.external_source}:{self.external_id} "
            f"${self.amount_dollars:,.2f} {self.status}>"
        )
