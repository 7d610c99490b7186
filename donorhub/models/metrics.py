from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Optional

import sqlalchemy as sa
from sqlalchemy import Integer
from sqlalchemy.orm import Mapped, mapped_column

from donorhub.extensions import db

from .donation import format_usd
from .mixins import iso, utcnow

ROLLUP_ID = 1


class _Figures:
    """Aggregate columns shared by the live rollup and dated snapshots."""

    total_raised_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    donors_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    recurring_donors_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    avg_gift_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    monthly_recurring_revenue_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_donations_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    new_donors_30d: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    donations_24h: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    FIGURES = (
        "total_raised_cents",
        "donors_count",
        "recurring_donors_count",
        "avg_gift_cents",
        "monthly_recurring_revenue_cents",
        "total_donations_count",
        "new_donors_30d",
        "donations_24h",
    )

    def figures(self) -> Dict[str, int]:
        return {name: int(getattr(self, name) or 0) for name in self.FIGURES}

    def usd_figures(self) -> Dict[str, str]:
        return {
            "total_raised_usd": format_usd(self.total_raised_cents),
            "avg_gift_usd": format_usd(self.avg_gift_cents),
            "monthly_recurring_revenue_usd": format_usd(self.monthly_recurring_revenue_cents),
        }


class MetricsRollup(db.Model, _Figures):
    """
    Single-row precomputed aggregate over succeeded donations.
    Refreshed after each ingested webhook and by `flask metrics refresh`.
    """

    __tablename__ = "metrics_rollup"
    __table_args__ = (
        sa.CheckConstraint("total_raised_cents >= 0", name="ck_metrics_rollup_total_nonneg"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=ROLLUP_ID)
    refreshed_at: Mapped[datetime] = mapped_column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<MetricsRollup raised={self.total_raised_cents} donors={self.donors_count}>"


class KpiSnapshot(db.Model, _Figures):
    """Point-in-time copy of the rollup, one per calendar day."""

    __tablename__ = "kpi_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    snapshot_date: Mapped[date] = mapped_column(db.Date, unique=True, index=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(db.DateTime, nullable=False, default=utcnow)

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "snapshot_date": self.snapshot_date.isoformat(),
            **self.figures(),
            **self.usd_figures(),
            "created_at": iso(self.created_at),
        }
        return data

    def __repr__(self) -> str:  # pragma: no cover
        return f"<KpiSnapshot {self.snapshot_date} raised={self.total_raised_cents}>"


def rollup_or_none() -> Optional[MetricsRollup]:
    return db.session.get(MetricsRollup, ROLLUP_ID)
