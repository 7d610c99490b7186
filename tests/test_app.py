import pytest

from donorhub import create_app
from donorhub.config import DevelopmentConfig, TestingConfig


def test_healthz(client):
    resp = client.get("/healthz", headers={"X-Request-ID": "req-123"})

    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok", "env": "testing", "request_id": "req-123"}
    assert resp.headers["X-Request-ID"] == "req-123"
    assert "X-Response-Time-ms" in resp.headers


def test_api_health_checks_database_and_stripe(client):
    resp = client.get("/api/health")

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "ok"
    assert body["parts"]["database"]["ok"] is True
    assert body["parts"]["stripe"]["mode"] == "test"


def test_api_health_degraded_without_stripe_key(app, client):
    app.config["STRIPE_SECRET_KEY"] = ""

    resp = client.get("/api/health")

    assert resp.status_code == 200
    assert resp.get_json()["status"] == "degraded"


def test_cors_preflight_allows_any_origin(client):
    resp = client.options(
        "/api/checkout/session",
        headers={
            "Origin": "https://donate.example.org",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type",
        },
    )

    assert resp.status_code == 200
    assert resp.headers["Access-Control-Allow-Origin"] == "*"
    assert "POST" in resp.headers["Access-Control-Allow-Methods"]


def test_unknown_api_route_is_json_404(client):
    resp = client.get("/api/nope")

    assert resp.status_code == 404
    assert resp.get_json()["success"] is False


def test_wrong_method_on_webhook_is_json_405(client):
    resp = client.get("/api/webhooks/stripe")

    assert resp.status_code == 405
    assert resp.get_json()["success"] is False


def test_config_resolved_by_name():
    app = create_app("testing")
    assert app.config["TESTING"] is True
    assert app.config["ENV"] == "testing"


def test_unknown_config_name_fails_fast():
    with pytest.raises(RuntimeError):
        create_app("staging")


def test_default_limits_and_goal():
    assert TestingConfig.FUNDRAISING_GOAL_CENTS == 10_000_000_000
    assert DevelopmentConfig.RECENT_DONATIONS_DEFAULT_LIMIT == 25
    assert DevelopmentConfig.MIN_DONATION_CENTS == 50
