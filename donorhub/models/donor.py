from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, List, Optional

from sqlalchemy.orm import Mapped, mapped_column, relationship

from donorhub.extensions import db

from .mixins import TimestampMixin

if TYPE_CHECKING:
    from .donation import Donation


def normalize_email(raw: Any) -> str:
    return str(raw or "").strip().lower()[:255]


def public_name(first_name: Optional[str], last_name: Optional[str], fallback: str = "Anonymous") -> str:
    """First name plus last initial, e.g. "Ada L."."""
    first = (first_name or "").strip()
    if not first:
        return fallback
    last = (last_name or "").strip()
    return f"{first} {last[:1]}." if last else first


class Donor(db.Model, TimestampMixin):
    __tablename__ = "donors"

    id: Mapped[int] = mapped_column(primary_key=True)

    email: Mapped[str] = mapped_column(
        db.String(255),
        unique=True,
        index=True,
        nullable=False,
        doc="Lower-cased email; the donor identity key",
    )
    first_name: Mapped[Optional[str]] = mapped_column(db.String(120), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(db.String(120), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(db.String(40), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(db.String(80), nullable=True)

    referral_code: Mapped[Optional[str]] = mapped_column(
        db.String(64),
        unique=True,
        index=True,
        nullable=True,
        doc="This donor's own ambassador code",
    )
    referred_by: Mapped[Optional[str]] = mapped_column(
        db.String(64),
        nullable=True,
        index=True,
        doc="Referral code seen on the donor's first conversion",
    )

    consent_email: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    consent_timestamp: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)
    consent_source: Mapped[Optional[str]] = mapped_column(db.String(60), nullable=True)

    is_monthly_donor: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False, index=True)

    donations: Mapped[List["Donation"]] = relationship(
        "Donation",
        back_populates="donor",
        lazy="selectin",
        order_by="Donation.donated_at",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Donor {self.id} {self.email}>"
