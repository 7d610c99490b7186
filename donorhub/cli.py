# donorhub/cli.py
# =============================================================================
# DonorHub CLI
#   flask metrics refresh              recompute the precomputed rollup row
#   flask metrics snapshot [--date]    write the dated KPI snapshot (cron job)
#   flask demo seed [--donors N]       Faker donors/donations/referrals for dashboards
# =============================================================================

from __future__ import annotations

from datetime import datetime, timedelta

import click
from faker import Faker
from flask.cli import AppGroup
from sqlalchemy.exc import SQLAlchemyError

from donorhub.extensions import db, safe_commit
from donorhub.models import Donation, DonationStatus, Donor, Frequency, Referral
from donorhub.models.mixins import utcnow
from donorhub.services.metrics import format_whole_dollars, refresh_rollup, take_snapshot
from donorhub.services.store import record_referral, upsert_donation, upsert_donor

metrics_cli = AppGroup("metrics", help="Metrics rollup and KPI snapshots.")
demo_cli = AppGroup("demo", help="Local demo data.")

DEMO_SOURCE = "demo"


# -------------------------------------------------------------------
# flask metrics ...
# -------------------------------------------------------------------
@metrics_cli.command("refresh")
def refresh_cmd() -> None:
    """Recompute the metrics rollup from the donation store."""
    rollup = refresh_rollup()
    if not safe_commit():
        raise click.ClickException("Rollup refresh failed; see log for details.")
    click.secho(
        f"✅ Rollup refreshed: {format_whole_dollars(rollup.total_raised_cents)} "
        f"from {rollup.donors_count} donor(s)",
        fg="green",
    )


@metrics_cli.command("snapshot")
@click.option(
    "--date",
    "day",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Snapshot date (YYYY-MM-DD). Defaults to today (UTC).",
)
def snapshot_cmd(day: datetime | None) -> None:
    """Refresh the rollup and upsert the KPI snapshot for one day."""
    snap = take_snapshot(day.date() if day else None)
    if not safe_commit():
        raise click.ClickException("KPI snapshot failed; see log for details.")
    click.secho(
        f"📸 KPI snapshot {snap.snapshot_date.isoformat()}: "
        f"{format_whole_dollars(snap.total_raised_cents)}, {snap.total_donations_count} donation(s)",
        fg="green",
    )


# -------------------------------------------------------------------
# flask demo ...
# -------------------------------------------------------------------
@demo_cli.command("seed")
@click.option("--donors", default=25, show_default=True, help="Number of demo donors to create.")
@click.option("--clear", is_flag=True, help="Delete existing demo data before seeding.")
def seed_cmd(donors: int, clear: bool) -> None:
    """🌱 Seed realistic donors, donations and referrals for local dashboards."""
    fake = Faker()

    if clear:
        _clear_demo_data()

    try:
        created = _seed_donors(fake, donors)
        _seed_referrals(fake, created)
        refresh_rollup()
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise click.ClickException(f"Seeding failed: {e}") from e

    click.secho(f"✅ Seeded {len(created)} donor(s) with demo donations.", fg="bright_green", bold=True)


def _clear_demo_data() -> None:
    click.secho("🧹 Clearing existing demo data…", fg="yellow")
    demo_donation_ids = db.select(Donation.id).where(Donation.external_source == DEMO_SOURCE)
    demo_donor_ids = sorted(
        set(db.session.scalars(db.select(Donation.donor_id).where(Donation.external_source == DEMO_SOURCE)))
    )
    demo_codes = (
        db.session.scalars(
            db.select(Donor.referral_code).where(Donor.id.in_(demo_donor_ids), Donor.referral_code.is_not(None))
        ).all()
        if demo_donor_ids
        else []
    )

    referrals = db.session.execute(
        db.delete(Referral).where(
            db.or_(Referral.first_donation_id.in_(demo_donation_ids), Referral.referrer_code.in_(demo_codes))
        )
    ).rowcount
    deleted = db.session.execute(db.delete(Donation).where(Donation.external_source == DEMO_SOURCE)).rowcount
    click.secho(f"  ↳ Cleared {deleted} donation(s), {referrals} referral(s)", fg="yellow")
    if demo_donor_ids:
        gone = db.session.execute(
            db.delete(Donor).where(Donor.id.in_(demo_donor_ids), ~Donor.donations.any())
        ).rowcount
        click.secho(f"  ↳ Cleared {gone} donor(s)", fg="yellow")
    # dated KPI history belongs to the scheduled snapshot job; only the live rollup is rebuilt
    refresh_rollup()
    db.session.commit()


def _seed_donors(fake: Faker, count: int) -> list[Donor]:
    click.secho(f"👤 Seeding {count} donor(s)…", fg="green")
    now = utcnow()
    donors: list[Donor] = []
    for _ in range(count):
        monthly = fake.boolean(chance_of_getting_true=25)
        donor = upsert_donor(
            fake.unique.email(),
            first_name=fake.first_name(),
            last_name=fake.last_name(),
            phone=fake.phone_number(),
            country=fake.country_code(),
            consent_source="demo_seed",
            is_monthly_donor=monthly,
        )
        donor.referral_code = fake.unique.bothify("AMB-####??").upper()

        for _ in range(fake.random_int(min=1, max=3)):
            upsert_donation(
                donor_id=donor.id,
                external_source=DEMO_SOURCE,
                external_id=f"demo_{fake.unique.uuid4()}",
                amount_cents=fake.random_int(min=500, max=50000),  # $5–$500
                currency="usd",
                status=fake.random_element(
                    [DonationStatus.SUCCEEDED] * 8 + [DonationStatus.FAILED, DonationStatus.PENDING]
                ),
                frequency=Frequency.MONTHLY.value if monthly else Frequency.ONE_TIME.value,
                method="card",
                campaign=fake.random_element(["spring-appeal", "gala", None]),
                donated_at=now - timedelta(minutes=fake.random_int(min=1, max=60 * 24 * 60)),
            )
        donors.append(donor)
    db.session.flush()
    return donors


def _seed_referrals(fake: Faker, donors: list[Donor]) -> None:
    if len(donors) < 2:
        return
    click.secho("🤝 Attributing demo referrals…", fg="green")
    ambassadors = donors[: max(1, len(donors) // 5)]
    for donor in donors[len(ambassadors):]:
        if not fake.boolean(chance_of_getting_true=40):
            continue
        first = db.session.scalars(
            db.select(Donation)
            .where(Donation.donor_id == donor.id, Donation.status == DonationStatus.SUCCEEDED.value)
            .order_by(Donation.donated_at)
            .limit(1)
        ).first()
        if first is None:
            continue
        record_referral(
            referrer_code=fake.random_element(ambassadors).referral_code,
            referred_email=donor.email,
            referred_donor_id=donor.id,
            first_donation_id=first.id,
            conversion_date=first.donated_at,
        )
