from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import jsonify

NO_STORE = "no-store, no-cache, must-revalidate, max-age=0"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def json_response(payload: Dict[str, Any], status: int = 200, cache: Optional[str] = None):
    resp = jsonify(payload)
    resp.status_code = int(status)
    resp.headers["Cache-Control"] = cache or NO_STORE
    if not cache:
        resp.headers.setdefault("Pragma", "no-cache")
    return resp


def json_error(message: str, status: int, **extra: Any):
    body: Dict[str, Any] = {"success": False, "error": message}
    body.update(extra)
    return json_response(body, status)
