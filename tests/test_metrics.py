from datetime import date, timedelta

import pytest

from donorhub.extensions import db
from donorhub.models import MetricsRollup
from donorhub.models.mixins import utcnow
from donorhub.services.metrics import (
    format_whole_dollars,
    progress_percentage,
    refresh_rollup,
    take_snapshot,
)
from donorhub.services.store import record_referral


def _refresh():
    refresh_rollup()
    db.session.commit()


def test_format_whole_dollars():
    assert format_whole_dollars(10_000_000_000) == "$100,000,000"
    assert format_whole_dollars(0) == "$0"


def test_progress_percentage_guards_zero_goal():
    assert progress_percentage(500, 0) == 0.0
    assert progress_percentage(500, 1000) == 50.0


def test_progress_against_configured_goal(app, client, donate):
    app.config["FUNDRAISING_GOAL_CENTS"] = 10_000
    donate("ada@example.org", 5_000, external_id="pi_1")
    _refresh()

    resp = client.get("/api/metrics/progress")

    assert resp.status_code == 200
    assert resp.headers["Cache-Control"] == "public, s-maxage=60, stale-while-revalidate=120"
    assert "timestamp" in resp.get_json()
    data = resp.get_json()["data"]
    assert data == {
        "current_amount": 5_000,
        "goal_amount": 10_000,
        "donor_count": 1,
        "percentage": "50.00",
        "formatted": {"current": "$50", "goal": "$100"},
    }


def test_progress_is_not_clamped(app, client, donate):
    app.config["FUNDRAISING_GOAL_CENTS"] = 1_000
    donate("ada@example.org", 2_500, external_id="pi_1")
    _refresh()

    assert client.get("/api/metrics/progress").get_json()["data"]["percentage"] == "250.00"


def test_default_goal_with_no_donations(client):
    data = client.get("/api/metrics/progress").get_json()["data"]

    assert data["percentage"] == "0.00"
    assert data["formatted"]["goal"] == "$100,000,000"


def test_summary_builds_missing_rollup_lazily(client, donate):
    donate("ada@example.org", 2_000, external_id="pi_1", frequency="monthly")
    donate("bob@example.org", 1_000, external_id="pi_2")
    donate("cy@example.org", 9_999, external_id="pi_3", status="failed")
    assert db.session.get(MetricsRollup, 1) is None

    resp = client.get("/api/metrics/summary")

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True
    assert "timestamp" in body
    data = body["data"]
    assert data["total_raised_cents"] == 3_000
    assert data["total_raised_usd"] == "30.00"
    assert data["total_donations_count"] == 2
    assert data["donors_count"] == 2
    assert data["recurring_donors_count"] == 1
    assert data["avg_gift_cents"] == 1_500
    assert data["monthly_recurring_revenue_cents"] == 2_000
    assert data["new_donors_30d"] == 3
    assert data["donations_24h"] == 2
    assert data["goal_cents"] == 10_000_000_000
    assert db.session.get(MetricsRollup, 1) is not None


def test_recent_donations_newest_first_and_limited(client, donate):
    now = utcnow()
    donate("ada@example.org", 100, external_id="pi_old", donated_at=now - timedelta(days=3))
    donate("bob@example.org", 200, external_id="pi_mid", donated_at=now - timedelta(days=2), first_name="Bob", last_name=None)
    donate("cy@example.org", 300, external_id="pi_new", donated_at=now - timedelta(days=1), first_name=None)
    donate("dee@example.org", 400, external_id="pi_failed", donated_at=now, status="failed")

    resp = client.get("/api/metrics/recent-donations?limit=2")

    assert resp.status_code == 200
    assert resp.headers["Cache-Control"] == "public, s-maxage=30, stale-while-revalidate=60"
    body = resp.get_json()
    assert body["count"] == 2
    assert [d["amount_cents"] for d in body["data"]] == [300, 200]
    assert [d["donor_name"] for d in body["data"]] == ["Anonymous", "Bob"]
    assert body["data"][0]["amount_usd"] == "3.00"


def test_recent_donations_shows_last_initial(client, donate):
    donate("ada@example.org", 100, external_id="pi_1")

    row = client.get("/api/metrics/recent-donations").get_json()["data"][0]

    assert row["donor_name"] == "Ada L."


def test_recent_donations_limit_is_capped(client, donate):
    donate("ada@example.org", 100, external_id="pi_1")
    donate("bob@example.org", 200, external_id="pi_2")

    assert client.get("/api/metrics/recent-donations?limit=5000").get_json()["count"] == 2


@pytest.mark.parametrize("limit", ["0", "-3"])
def test_recent_donations_rejects_limit_below_one(client, limit):
    resp = client.get(f"/api/metrics/recent-donations?limit={limit}")

    assert resp.status_code == 400
    assert resp.get_json() == {"success": False, "error": "limit must be at least 1"}


def test_leaderboard_rejects_zero_limit(client):
    assert client.get("/api/metrics/leaderboard?limit=0").status_code == 400


def test_recent_donations_rejects_non_integer_limit(client):
    resp = client.get("/api/metrics/recent-donations?limit=ten")

    assert resp.status_code == 400
    assert resp.get_json()["success"] is False


def test_kpi_snapshot_lookup(client, donate):
    donate("ada@example.org", 2_500, external_id="pi_1")
    take_snapshot(date(2026, 1, 1))
    db.session.commit()

    resp = client.get("/api/metrics/kpi?date=2026-01-01")

    assert resp.status_code == 200
    assert resp.headers["Cache-Control"] == "public, s-maxage=3600"
    data = resp.get_json()["data"]
    assert data["snapshot_date"] == "2026-01-01"
    assert data["total_raised_cents"] == 2_500
    assert data["total_raised_usd"] == "25.00"


def test_kpi_snapshot_is_overwritten_for_same_day(client, donate):
    take_snapshot(date(2026, 1, 1))
    donate("ada@example.org", 2_500, external_id="pi_1")
    take_snapshot(date(2026, 1, 1))
    db.session.commit()

    data = client.get("/api/metrics/kpi?date=2026-01-01").get_json()["data"]
    assert data["total_raised_cents"] == 2_500


def test_kpi_missing_date_is_404(client):
    resp = client.get("/api/metrics/kpi?date=2099-01-01")

    assert resp.status_code == 404
    assert resp.get_json() == {"success": False, "error": "No KPI snapshot found for this date"}


def test_kpi_bad_date_is_400(client):
    assert client.get("/api/metrics/kpi?date=01/02/2026").status_code == 400


def test_leaderboard_ranks_by_conversions(client, donate):
    a1 = donate("one@example.org", 1_000, external_id="pi_a1")
    a2 = donate("two@example.org", 1_000, external_id="pi_a2")
    b1 = donate("three@example.org", 9_000, external_id="pi_b1")
    ambassador = donate("amb@example.org", 500, external_id="pi_amb", first_name="Ada", last_name="Lovelace")
    ambassador.donor.referral_code = "AMB-A"

    for donation, code in ((a1, "AMB-A"), (a2, "AMB-A"), (b1, "AMB-B")):
        record_referral(
            referrer_code=code,
            referred_email=donation.donor.email,
            referred_donor_id=donation.donor_id,
            first_donation_id=donation.id,
        )
    db.session.commit()

    resp = client.get("/api/metrics/leaderboard")

    assert resp.status_code == 200
    assert resp.headers["Cache-Control"] == "public, s-maxage=300"
    board = resp.get_json()["data"]
    assert [(r["rank"], r["referral_code"]) for r in board] == [(1, "AMB-A"), (2, "AMB-B")]
    assert board[0]["name"] == "Ada L."
    assert board[0]["converted_referrals"] == 2
    assert board[0]["total_referred_cents"] == 2_000
    assert board[0]["total_referred_usd"] == "20.00"
    assert board[1]["name"] == "Anonymous Ambassador"


def test_unknown_metrics_path_lists_endpoints(client):
    resp = client.get("/api/metrics/nope")

    assert resp.status_code == 404
    body = resp.get_json()
    assert body["success"] is False
    assert "/api/metrics/summary" in body["endpoints"]


@pytest.mark.parametrize("path", ["/api/metrics", "/api/metrics/"])
def test_bare_metrics_path_serves_summary(client, donate, path):
    donate("ada@example.org", 1_200, external_id="pi_1")

    resp = client.get(path)

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["data"]["total_raised_cents"] == 1_200
    assert "timestamp" in body
