from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict

from flask import Blueprint, current_app
from sqlalchemy import text

from donorhub.extensions import db, guess_stripe_mode

from .common import json_response, now_iso

bp = Blueprint("health", __name__)

APP_STARTED_AT = time.time()


def _overall_status(parts: Dict[str, Dict[str, Any]]) -> str:
    states = [p.get("status", "ok") for p in parts.values()]
    if any(s == "fail" for s in states):
        return "fail"
    if any(s == "degraded" for s in states):
        return "degraded"
    return "ok"


def _database_check() -> Dict[str, Any]:
    try:
        db.session.execute(text("SELECT 1"))
        return {"status": "ok", "ok": True, "dialect": db.engine.dialect.name}
    except Exception as e:
        db.session.rollback()
        current_app.logger.error("Health check: database unreachable: %s", e)
        return {"status": "fail", "ok": False, "error": str(e)}


def _stripe_check() -> Dict[str, Any]:
    key = (current_app.config.get("STRIPE_SECRET_KEY") or "").strip()
    if not key:
        # Webhooks still ingest without it; only checkout is unavailable
        return {"status": "degraded", "ok": False, "reason": "no-secret-key"}
    return {"status": "ok", "ok": True, "mode": guess_stripe_mode(key)}


@bp.get("/health")
def health():
    parts = {
        "database": _database_check(),
        "stripe": _stripe_check(),
    }
    overall = _overall_status(parts)
    body = {
        "status": overall,
        "env": current_app.config.get("ENV"),
        "started_at": datetime.fromtimestamp(APP_STARTED_AT, tz=timezone.utc).isoformat(timespec="seconds"),
        "uptime_s": int(time.time() - APP_STARTED_AT),
        "now": now_iso(),
        "parts": parts,
    }
    return json_response(body, 503 if overall == "fail" else 200)
