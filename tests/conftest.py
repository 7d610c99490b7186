import hashlib
import hmac
import json
import time
from datetime import datetime

import pytest

from donorhub import create_app
from donorhub.config import TestingConfig
from donorhub.extensions import db
from donorhub.services.store import upsert_donation, upsert_donor

STRIPE_SECRET = TestingConfig.STRIPE_WEBHOOK_SECRET
DONORBOX_SECRET = TestingConfig.DONORBOX_WEBHOOK_SECRET


def stripe_signature(body: bytes, secret: str = STRIPE_SECRET, timestamp: int | None = None) -> str:
    t = int(timestamp if timestamp is not None else time.time())
    mac = hmac.new(secret.encode(), msg=f"{t}.".encode() + body, digestmod=hashlib.sha256).hexdigest()
    return f"t={t},v1={mac}"


def donorbox_signature(body: bytes, secret: str = DONORBOX_SECRET) -> str:
    mac = hmac.new(secret.encode(), msg=body, digestmod=hashlib.sha256).hexdigest()
    return f"sha256={mac}"


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def post_stripe(client):
    def _post(event: dict, signature: str | None = None):
        body = json.dumps(event).encode()
        header = stripe_signature(body) if signature is None else signature
        return client.post(
            "/api/webhooks/stripe",
            data=body,
            headers={"Stripe-Signature": header, "Content-Type": "application/json"},
        )

    return _post


@pytest.fixture
def post_donorbox(client):
    def _post(payload: dict, signature: str | None = None):
        body = json.dumps(payload).encode()
        header = donorbox_signature(body) if signature is None else signature
        return client.post(
            "/api/webhooks/donorbox",
            data=body,
            headers={"X-Donorbox-Signature": header, "Content-Type": "application/json"},
        )

    return _post


@pytest.fixture
def donate(app):
    """Write a donor + donation straight through the store and commit."""

    def _donate(
        email: str,
        amount_cents: int,
        *,
        external_id: str,
        status: str = "succeeded",
        donated_at: datetime | None = None,
        first_name: str | None = "Ada",
        last_name: str | None = "Lovelace",
        frequency: str = "one_time",
    ):
        donor = upsert_donor(email, first_name=first_name, last_name=last_name)
        result = upsert_donation(
            donor_id=donor.id,
            external_source="stripe",
            external_id=external_id,
            amount_cents=amount_cents,
            currency="usd",
            status=status,
            frequency=frequency,
            donated_at=donated_at,
        )
        db.session.commit()
        return result.donation

    return _donate
