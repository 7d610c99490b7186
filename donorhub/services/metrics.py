"""
Metrics Aggregator: read-side views over the Donation Store.

`refresh_rollup()` recomputes the precomputed aggregate row; request
handlers only read that row (summary/progress), the dated KPI snapshots,
and two bounded feeds (recent donations, referral leaderboard).
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy import case, desc, distinct, func, select

from donorhub.errors import SnapshotNotFound
from donorhub.extensions import db
from donorhub.models import Donation, DonationStatus, Donor, Frequency, KpiSnapshot, MetricsRollup, Referral
from donorhub.models.donation import format_usd
from donorhub.models.donor import public_name
from donorhub.models.metrics import ROLLUP_ID, rollup_or_none
from donorhub.models.mixins import iso, utcnow

from .store import dialect_insert

log = logging.getLogger(__name__)

SUCCEEDED = DonationStatus.SUCCEEDED.value


# ----------------------------
# Formatting
# ----------------------------
def format_whole_dollars(cents: int) -> str:
    """10000000000 -> "$100,000,000"."""
    return "${:,.0f}".format(int(cents or 0) / 100)


def progress_percentage(current_cents: int, goal_cents: int) -> float:
    goal = int(goal_cents or 0)
    if goal <= 0:
        return 0.0
    return int(current_cents or 0) / goal * 100


def goal_cents() -> int:
    return int(current_app.config.get("FUNDRAISING_GOAL_CENTS") or 0)


# ----------------------------
# Rollup (precomputed aggregate view)
# ----------------------------
def compute_figures() -> Dict[str, int]:
    now = utcnow()
    succeeded = Donation.status == SUCCEEDED
    recurring = Donation.frequency != Frequency.ONE_TIME.value

    row = db.session.execute(
        select(
            func.coalesce(func.sum(Donation.amount_cents), 0),
            func.count(Donation.id),
            func.count(distinct(Donation.donor_id)),
            func.count(distinct(case((recurring, Donation.donor_id)))),
            func.coalesce(
                func.sum(
                    case(
                        (
                            (Donation.frequency == Frequency.MONTHLY.value)
                            & (Donation.donated_at >= now - timedelta(days=30)),
                            Donation.amount_cents,
                        ),
                        else_=0,
                    )
                ),
                0,
            ),
            func.coalesce(func.sum(case((Donation.donated_at >= now - timedelta(hours=24), 1), else_=0)), 0),
        ).where(succeeded)
    ).one()

    total, count, donors, recurring_donors, mrr, last_24h = (int(v or 0) for v in row)
    new_donors = db.session.execute(
        select(func.count(Donor.id)).where(Donor.created_at >= now - timedelta(days=30))
    ).scalar_one()

    return {
        "total_raised_cents": total,
        "donors_count": donors,
        "recurring_donors_count": recurring_donors,
        "avg_gift_cents": round(total / count) if count else 0,
        "monthly_recurring_revenue_cents": mrr,
        "total_donations_count": count,
        "new_donors_30d": int(new_donors or 0),
        "donations_24h": last_24h,
    }


def refresh_rollup() -> MetricsRollup:
    """Recompute and upsert the single rollup row. Caller commits."""
    figures = compute_figures()
    now = utcnow()
    t = MetricsRollup.__table__
    stmt = dialect_insert(t).values(id=ROLLUP_ID, refreshed_at=now, **figures)
    stmt = stmt.on_conflict_do_update(
        index_elements=[t.c.id],
        set_={**figures, "refreshed_at": now},
    )
    db.session.execute(stmt)
    return db.session.execute(
        select(MetricsRollup).where(MetricsRollup.id == ROLLUP_ID).execution_options(populate_existing=True)
    ).scalar_one()


def current_rollup() -> MetricsRollup:
    rollup = rollup_or_none()
    if rollup is None:
        log.info("metrics rollup missing; computing it now")
        rollup = refresh_rollup()
        db.session.commit()
    return rollup


# ----------------------------
# Views
# ----------------------------
def summary() -> Dict[str, Any]:
    rollup = current_rollup()
    goal = goal_cents()
    return {
        **rollup.figures(),
        **rollup.usd_figures(),
        "goal_cents": goal,
        "goal_usd": f"{goal // 100}",
        "progress_percentage": progress_percentage(rollup.total_raised_cents, goal),
        "refreshed_at": iso(rollup.refreshed_at),
    }


def progress() -> Dict[str, Any]:
    rollup = current_rollup()
    goal = goal_cents()
    current = int(rollup.total_raised_cents or 0)
    return {
        "current_amount": current,
        "goal_amount": goal,
        "donor_count": int(rollup.donors_count or 0),
        "percentage": f"{progress_percentage(current, goal):.2f}",
        "formatted": {
            "current": format_whole_dollars(current),
            "goal": format_whole_dollars(goal),
        },
    }


def recent_donations(limit: int) -> List[Dict[str, Any]]:
    rows = db.session.execute(
        select(Donation, Donor)
        .join(Donor, Donor.id == Donation.donor_id)
        .where(Donation.status == SUCCEEDED)
        .order_by(desc(Donation.donated_at), desc(Donation.id))
        .limit(int(limit))
    ).all()

    return [
        {
            "id": d.id,
            "amount_cents": int(d.amount_cents or 0),
            "amount_usd": format_usd(d.amount_cents),
            "currency": d.currency,
            "frequency": d.frequency,
            "donor_name": public_name(donor.first_name, donor.last_name),
            "country": donor.country,
            "donated_at": iso(d.donated_at),
        }
        for d, donor in rows
    ]


def kpi_snapshot(day: date) -> Dict[str, Any]:
    snap = db.session.execute(
        select(KpiSnapshot).where(KpiSnapshot.snapshot_date == day)
    ).scalar_one_or_none()
    if snap is None:
        raise SnapshotNotFound("No KPI snapshot found for this date")
    return snap.as_dict()


def take_snapshot(day: Optional[date] = None) -> KpiSnapshot:
    """Refresh the rollup and copy it into the snapshot for `day`. Caller commits."""
    day = day or utcnow().date()
    figures = refresh_rollup().figures()
    t = KpiSnapshot.__table__
    stmt = dialect_insert(t).values(snapshot_date=day, created_at=utcnow(), **figures)
    stmt = stmt.on_conflict_do_update(index_elements=[t.c.snapshot_date], set_=figures)
    db.session.execute(stmt)
    return db.session.execute(
        select(KpiSnapshot).where(KpiSnapshot.snapshot_date == day).execution_options(populate_existing=True)
    ).scalar_one()


def leaderboard(limit: int) -> List[Dict[str, Any]]:
    converted = func.sum(case((Referral.converted.is_(True), 1), else_=0))
    referred_cents = func.coalesce(
        func.sum(case((Donation.status == SUCCEEDED, Donation.amount_cents), else_=0)), 0
    )

    rows = db.session.execute(
        select(
            Referral.referrer_code,
            func.count(Referral.id).label("total_referrals"),
            converted.label("converted_referrals"),
            referred_cents.label("total_referred_cents"),
            func.max(Donor.first_name),
            func.max(Donor.last_name),
        )
        .outerjoin(Donation, Donation.id == Referral.first_donation_id)
        .outerjoin(Donor, Donor.referral_code == Referral.referrer_code)
        .group_by(Referral.referrer_code)
        .order_by(desc("converted_referrals"), desc("total_referred_cents"), Referral.referrer_code)
        .limit(int(limit))
    ).all()

    board = []
    for rank, (code, total, conv, cents, first, last) in enumerate(rows, start=1):
        board.append(
            {
                "rank": rank,
                "name": public_name(first, last, fallback="Anonymous Ambassador"),
                "referral_code": code,
                "total_referrals": int(total or 0),
                "converted_referrals": int(conv or 0),
                "total_referred_cents": int(cents or 0),
                "total_referred_usd": format_usd(cents),
            }
        )
    return board
