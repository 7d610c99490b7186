#!/usr/bin/env python3
"""
DonorHub Webhooks Blueprint (Stripe + Donorbox)

Mount: /api/webhooks

Endpoints:
  POST /api/webhooks/stripe     header Stripe-Signature
  POST /api/webhooks/donorbox   header X-Donorbox-Signature

Contracts:
- Every delivery is written to webhook_logs before it is interpreted.
- 400 for bad signatures / malformed payloads (provider should not retry).
- 500 with the error message for store failures (provider retries; writes are
  keyed upserts, so redelivery is idempotent).
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Type

from flask import Blueprint, current_app, request

from donorhub.errors import DonorHubError
from donorhub.services import DonorboxIngestor, StripeIngestor
from donorhub.services.ingest import IngestOutcome, WebhookIngestor

from .common import json_error, json_response

bp = Blueprint("webhooks", __name__)


def _run(
    ingestor_cls: Type[WebhookIngestor],
    signature_header: str,
    render: Callable[[IngestOutcome], Dict[str, Any]],
):
    payload = request.get_data(cache=False, as_text=False)
    signature = (request.headers.get(signature_header) or "").strip()
    ingestor = ingestor_cls(current_app.config)

    try:
        outcome = ingestor.ingest(payload, signature)
    except DonorHubError as e:
        current_app.logger.warning("%s webhook rejected: %s", ingestor.source, e.message)
        return json_error(e.message, e.status_code)
    except Exception as e:
        current_app.logger.exception("%s webhook processing failed (will retry)", ingestor.source)
        return json_error(str(e) or "webhook processing failed", 500)

    return json_response({"success": True, **render(outcome)})


@bp.post("/stripe")
def stripe_webhook():
    return _run(StripeIngestor, "Stripe-Signature", lambda o: {"processed": o.processed})


@bp.post("/donorbox")
def donorbox_webhook():
    return _run(DonorboxIngestor, "X-Donorbox-Signature", lambda o: dict(o.body))
