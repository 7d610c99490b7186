"""donation ingestion schema

Revision ID: 3f9a1c7d2b10
Revises:
Create Date: 2026-10-19 09:12:41.302117
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "3f9a1c7d2b10"
down_revision = None
branch_labels = None
depends_on = None


_FIGURES = (
    "total_raised_cents",
    "donors_count",
    "recurring_donors_count",
    "avg_gift_cents",
    "monthly_recurring_revenue_cents",
    "total_donations_count",
    "new_donors_30d",
    "donations_24h",
)


def _figure_columns():
    return [sa.Column(name, sa.Integer(), nullable=False) for name in _FIGURES]


def upgrade():
    # --- donors ---
    op.create_table(
        "donors",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=120), nullable=True),
        sa.Column("last_name", sa.String(length=120), nullable=True),
        sa.Column("phone", sa.String(length=40), nullable=True),
        sa.Column("country", sa.String(length=80), nullable=True),
        sa.Column("referral_code", sa.String(length=64), nullable=True),
        sa.Column("referred_by", sa.String(length=64), nullable=True),
        sa.Column("consent_email", sa.Boolean(), nullable=False),
        sa.Column("consent_timestamp", sa.DateTime(), nullable=True),
        sa.Column("consent_source", sa.String(length=60), nullable=True),
        sa.Column("is_monthly_donor", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    with op.batch_alter_table("donors") as batch_op:
        batch_op.create_index(batch_op.f("ix_donors_email"), ["email"], unique=True)
        batch_op.create_index(batch_op.f("ix_donors_referral_code"), ["referral_code"], unique=True)
        batch_op.create_index(batch_op.f("ix_donors_referred_by"), ["referred_by"], unique=False)
        batch_op.create_index(batch_op.f("ix_donors_is_monthly_donor"), ["is_monthly_donor"], unique=False)
        batch_op.create_index(batch_op.f("ix_donors_created_at"), ["created_at"], unique=False)

    # --- donations ---
    op.create_table(
        "donations",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("donor_id", sa.Integer(), nullable=False),
        sa.Column("external_id", sa.String(length=120), nullable=False),
        sa.Column("external_source", sa.String(length=20), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("frequency", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("status_reason", sa.String(length=500), nullable=True),
        sa.Column("method", sa.String(length=60), nullable=True),
        sa.Column("campaign", sa.String(length=120), nullable=True),
        sa.Column("referral_code", sa.String(length=64), nullable=True),
        sa.Column("donated_at", sa.DateTime(), nullable=False),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount_cents >= 0", name="ck_donations_amount_nonneg"),
        sa.UniqueConstraint("external_source", "external_id", name="uq_donations_external"),
        sa.ForeignKeyConstraint(["donor_id"], ["donors.id"], ondelete="CASCADE"),
    )
    with op.batch_alter_table("donations") as batch_op:
        batch_op.create_index(batch_op.f("ix_donations_donor_id"), ["donor_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_donations_external_source"), ["external_source"], unique=False)
        batch_op.create_index(batch_op.f("ix_donations_status"), ["status"], unique=False)
        batch_op.create_index(batch_op.f("ix_donations_campaign"), ["campaign"], unique=False)
        batch_op.create_index(batch_op.f("ix_donations_referral_code"), ["referral_code"], unique=False)
        batch_op.create_index(batch_op.f("ix_donations_donated_at"), ["donated_at"], unique=False)
        batch_op.create_index(batch_op.f("ix_donations_created_at"), ["created_at"], unique=False)
        batch_op.create_index("ix_donations_status_donated_at", ["status", "donated_at"], unique=False)

    # --- referrals ---
    op.create_table(
        "referrals",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("referrer_code", sa.String(length=64), nullable=False),
        sa.Column("referred_email", sa.String(length=255), nullable=False),
        sa.Column("referred_donor_id", sa.Integer(), nullable=True),
        sa.Column("converted", sa.Boolean(), nullable=False),
        sa.Column("first_donation_id", sa.Integer(), nullable=True),
        sa.Column("conversion_date", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("referrer_code", "referred_email", name="uq_referrals_code_email"),
        sa.ForeignKeyConstraint(["referred_donor_id"], ["donors.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["first_donation_id"], ["donations.id"], ondelete="SET NULL"),
    )
    with op.batch_alter_table("referrals") as batch_op:
        batch_op.create_index(batch_op.f("ix_referrals_referrer_code"), ["referrer_code"], unique=False)
        batch_op.create_index(batch_op.f("ix_referrals_referred_donor_id"), ["referred_donor_id"], unique=False)

    # --- webhook_logs ---
    op.create_table(
        "webhook_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("source", sa.String(length=20), nullable=False),
        sa.Column("event_type", sa.String(length=120), nullable=True),
        sa.Column("external_event_id", sa.String(length=120), nullable=True),
        sa.Column("payload", sa.Text(), nullable=True),
        sa.Column("signature", sa.String(length=500), nullable=True),
        sa.Column("verified", sa.Boolean(), nullable=False),
        sa.Column("processed", sa.Boolean(), nullable=False),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column("error", sa.String(length=500), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    with op.batch_alter_table("webhook_logs") as batch_op:
        batch_op.create_index(batch_op.f("ix_webhook_logs_event_type"), ["event_type"], unique=False)
        batch_op.create_index(batch_op.f("ix_webhook_logs_external_event_id"), ["external_event_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_webhook_logs_processed"), ["processed"], unique=False)
        batch_op.create_index("ix_webhook_logs_source_created", ["source", "created_at"], unique=False)

    # --- metrics_rollup ---
    op.create_table(
        "metrics_rollup",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        *_figure_columns(),
        sa.Column("refreshed_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("total_raised_cents >= 0", name="ck_metrics_rollup_total_nonneg"),
    )

    # --- kpi_snapshots ---
    op.create_table(
        "kpi_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("snapshot_date", sa.Date(), nullable=False),
        *_figure_columns(),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    with op.batch_alter_table("kpi_snapshots") as batch_op:
        batch_op.create_index(batch_op.f("ix_kpi_snapshots_snapshot_date"), ["snapshot_date"], unique=True)


def downgrade():
    # reverse dependency order
    with op.batch_alter_table("kpi_snapshots") as batch_op:
        batch_op.drop_index(batch_op.f("ix_kpi_snapshots_snapshot_date"))
    op.drop_table("kpi_snapshots")

    op.drop_table("metrics_rollup")

    with op.batch_alter_table("webhook_logs") as batch_op:
        batch_op.drop_index("ix_webhook_logs_source_created")
        batch_op.drop_index(batch_op.f("ix_webhook_logs_processed"))
        batch_op.drop_index(batch_op.f("ix_webhook_logs_external_event_id"))
        batch_op.drop_index(batch_op.f("ix_webhook_logs_event_type"))
    op.drop_table("webhook_logs")

    with op.batch_alter_table("referrals") as batch_op:
        batch_op.drop_index(batch_op.f("ix_referrals_referred_donor_id"))
        batch_op.drop_index(batch_op.f("ix_referrals_referrer_code"))
    op.drop_table("referrals")

    with op.batch_alter_table("donations") as batch_op:
        batch_op.drop_index("ix_donations_status_donated_at")
        batch_op.drop_index(batch_op.f("ix_donations_created_at"))
        batch_op.drop_index(batch_op.f("ix_donations_donated_at"))
        batch_op.drop_index(batch_op.f("ix_donations_referral_code"))
        batch_op.drop_index(batch_op.f("ix_donations_campaign"))
        batch_op.drop_index(batch_op.f("ix_donations_status"))
        batch_op.drop_index(batch_op.f("ix_donations_external_source"))
        batch_op.drop_index(batch_op.f("ix_donations_donor_id"))
    op.drop_table("donations")

    with op.batch_alter_table("donors") as batch_op:
        batch_op.drop_index(batch_op.f("ix_donors_created_at"))
        batch_op.drop_index(batch_op.f("ix_donors_is_monthly_donor"))
        batch_op.drop_index(batch_op.f("ix_donors_referred_by"))
        batch_op.drop_index(batch_op.f("ix_donors_referral_code"))
        batch_op.drop_index(batch_op.f("ix_donors_email"))
    op.drop_table("donors")
