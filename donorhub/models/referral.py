from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from donorhub.extensions import db

from .mixins import utcnow


class Referral(db.Model):
    """Attribution of a converted donor to the code that referred them."""

    __tablename__ = "referrals"
    __table_args__ = (
        UniqueConstraint("referrer_code", "referred_email", name="uq_referrals_code_email"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    referrer_code: Mapped[str] = mapped_column(db.String(64), nullable=False, index=True)
    referred_email: Mapped[str] = mapped_column(db.String(255), nullable=False)

    referred_donor_id: Mapped[Optional[int]] = mapped_column(
        db.ForeignKey("donors.id", ondelete="SET NULL"),
        index=True,
        nullable=True,
    )
    converted: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    first_donation_id: Mapped[Optional[int]] = mapped_column(
        db.ForeignKey("donations.id", ondelete="SET NULL"),
        nullable=True,
    )
    conversion_date: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(db.DateTime, default=utcnow, nullable=False)

    referred_donor = relationship("Donor", lazy="joined")
    first_donation = relationship("Donation", lazy="joined")

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Referral {self.referrer_code} -> {self.referred_email}>"
