"""
DonorHub Metrics Blueprint (read-only)

Mount: /api/metrics

  GET /summary                 precomputed rollup + goal progress (also the bare mount)
  GET /recent-donations?limit= newest succeeded donations
  GET /kpi?date=YYYY-MM-DD     dated KPI snapshot (default today, UTC)
  GET /leaderboard?limit=      referral ambassadors
  GET /progress                thermometer view against the fundraising goal

Every payload is {success, data, timestamp?, count?} with CDN cache hints.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from flask import Blueprint, current_app, request

from donorhub.errors import SnapshotNotFound
from donorhub.services import metrics as svc

from .common import json_error, json_response, now_iso

bp = Blueprint("metrics", __name__)

CACHE_SUMMARY = "public, s-maxage=60, stale-while-revalidate=120"
CACHE_RECENT = "public, s-maxage=30, stale-while-revalidate=60"
CACHE_KPI = "public, s-maxage=3600"
CACHE_LEADERBOARD = "public, s-maxage=300"

ENDPOINTS = [
    "/api/metrics/summary",
    "/api/metrics/recent-donations",
    "/api/metrics/kpi",
    "/api/metrics/leaderboard",
    "/api/metrics/progress",
]


class _BadQuery(ValueError):
    pass


def _limit(default_key: str, max_key: str) -> int:
    default = int(current_app.config.get(default_key) or 25)
    ceiling = int(current_app.config.get(max_key) or 100)
    raw = request.args.get("limit")
    if raw is None or raw.strip() == "":
        value = default
    else:
        try:
            value = int(raw)
        except ValueError:
            raise _BadQuery("limit must be an integer") from None
        if value < 1:
            raise _BadQuery("limit must be at least 1")
    return min(value, ceiling)


def _snapshot_day(raw: Optional[str]) -> date:
    if not raw:
        return datetime.now(timezone.utc).date()
    try:
        return date.fromisoformat(raw.strip())
    except ValueError:
        raise _BadQuery("date must be YYYY-MM-DD") from None


@bp.errorhandler(_BadQuery)
def _bad_query(err: _BadQuery):
    return json_error(str(err), 400)


@bp.get("/")
@bp.get("/summary")
def summary():
    return json_response(
        {"success": True, "data": svc.summary(), "timestamp": now_iso()},
        cache=CACHE_SUMMARY,
    )


@bp.get("/recent-donations")
def recent_donations():
    rows = svc.recent_donations(_limit("RECENT_DONATIONS_DEFAULT_LIMIT", "RECENT_DONATIONS_MAX_LIMIT"))
    return json_response({"success": True, "data": rows, "count": len(rows)}, cache=CACHE_RECENT)


@bp.get("/kpi")
def kpi():
    day = _snapshot_day(request.args.get("date"))
    try:
        data = svc.kpi_snapshot(day)
    except SnapshotNotFound as e:
        return json_error(e.message, e.status_code)
    return json_response({"success": True, "data": data}, cache=CACHE_KPI)


@bp.get("/leaderboard")
def leaderboard():
    rows = svc.leaderboard(_limit("LEADERBOARD_DEFAULT_LIMIT", "LEADERBOARD_MAX_LIMIT"))
    return json_response({"success": True, "data": rows, "count": len(rows)}, cache=CACHE_LEADERBOARD)


@bp.get("/progress")
def progress():
    return json_response(
        {"success": True, "data": svc.progress(), "timestamp": now_iso()},
        cache=CACHE_SUMMARY,
    )


@bp.route("/<path:unknown>", methods=["GET"])
def not_found(unknown: str):
    return json_error("Metrics endpoint not found", 404, path=f"/api/metrics/{unknown}", endpoints=ENDPOINTS)
