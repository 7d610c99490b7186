"""
DonorHub Checkout Blueprint

Mount: /api/checkout

  POST /api/checkout/session
    body: {"amount": <int cents>, "currency"?: "usd", "donationType"?: "one-time"|"recurring"}
    200:  {"sessionId": "...", "url": "..."}
    400:  {"error": "Invalid amount" | "Invalid currency" | "Invalid donationType"}
    500:  {"error": "Failed to create checkout session"}
"""

from __future__ import annotations

from flask import Blueprint, current_app, request

from donorhub.errors import CheckoutSessionError, InvalidCheckoutRequest
from donorhub.services.checkout import DEFAULT_ORIGIN, CheckoutRequest, create_checkout_session

from .common import json_response

bp = Blueprint("checkout", __name__)


def _origin() -> str:
    return (
        (request.headers.get("Origin") or "").strip()
        or (current_app.config.get("PUBLIC_BASE_URL") or "").strip()
        or DEFAULT_ORIGIN
    )


@bp.post("/session")
def create_session():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return json_response({"error": "Invalid amount"}, 400)

    try:
        req = CheckoutRequest.from_payload(data, current_app.config)
        session = create_checkout_session(req, _origin(), current_app.config)
    except (InvalidCheckoutRequest, CheckoutSessionError) as e:
        return json_response({"error": e.message}, e.status_code)

    return json_response(session)
