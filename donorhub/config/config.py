# donorhub/config/config.py
# Canonical DonorHub configuration (env-first, production-safe)

from __future__ import annotations

import os
from typing import Optional


# ----------------------------
# Env helpers
# ----------------------------
_TRUTHY = {"1", "true", "yes", "on", "y"}
_FALSY = {"0", "false", "no", "off", "n"}


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    if v is None:
        return default
    s = str(v).strip()
    return s if s else default


def _bool(name: str, default: bool = False) -> bool:
    v = _env(name)
    if v is None:
        return default
    s = v.strip().lower()
    if s in _TRUTHY:
        return True
    if s in _FALSY:
        return False
    return default


def _int(name: str, default: int) -> int:
    v = _env(name)
    if v is None:
        return default
    try:
        return int(str(v).strip())
    except Exception:
        return default


def _clean_base_url(v: Optional[str]) -> str:
    s = (v or "").strip().rstrip("/")
    return s


# ----------------------------
# Config classes
# ----------------------------
class BaseConfig:
    """
    Env-first config:
    - all important settings can be overridden via environment variables
    - safe defaults for local dev
    """

    ENV = (_env("APP_ENV") or _env("ENV") or _env("FLASK_ENV") or "base").strip().lower()

    DEBUG = _bool("FLASK_DEBUG", False)
    TESTING = _bool("TESTING", False)

    SECRET_KEY = _env("SECRET_KEY", "dev-change-me")
    LOG_LEVEL = _env("LOG_LEVEL", "INFO")

    PUBLIC_BASE_URL = _clean_base_url(_env("PUBLIC_BASE_URL", ""))
    CORS_ORIGINS = _env("CORS_ORIGINS", "*")

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = _env("SQLALCHEMY_DATABASE_URI", _env("DATABASE_URL", "sqlite:///donorhub-dev.db"))
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}
    AUTO_CREATE_SQLITE = _bool("AUTO_CREATE_SQLITE", True)

    # Campaign
    FUNDRAISING_GOAL_CENTS = _int("FUNDRAISING_GOAL_CENTS", 100_000_000 * 100)
    DEFAULT_CURRENCY = (_env("DEFAULT_CURRENCY", "usd") or "usd").lower()
    MIN_DONATION_CENTS = _int("MIN_DONATION_CENTS", 50)
    MAX_DONATION_CENTS = _int("MAX_DONATION_CENTS", 50_000 * 100)

    # Stripe
    STRIPE_SECRET_KEY = _env("STRIPE_SECRET_KEY", _env("STRIPE_API_KEY", ""))
    STRIPE_WEBHOOK_SECRET = _env("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_WEBHOOK_TOLERANCE = _int("STRIPE_WEBHOOK_TOLERANCE", 300)

    CHECKOUT_PRODUCT_NAME = _env("CHECKOUT_PRODUCT_NAME", "Donation")
    CHECKOUT_PRODUCT_DESCRIPTION = _env(
        "CHECKOUT_PRODUCT_DESCRIPTION", "One-time donation to support our mission"
    )
    CHECKOUT_RECURRING_PRODUCT_NAME = _env("CHECKOUT_RECURRING_PRODUCT_NAME", "Monthly Donation")
    CHECKOUT_RECURRING_PRODUCT_DESCRIPTION = _env(
        "CHECKOUT_RECURRING_PRODUCT_DESCRIPTION", "Monthly recurring donation to support our mission"
    )

    # Donorbox
    DONORBOX_WEBHOOK_SECRET = _env("DONORBOX_WEBHOOK_SECRET", "")

    # Unset secrets are tolerated outside production (logged as unverified)
    REQUIRE_WEBHOOK_SIGNATURES = _bool("REQUIRE_WEBHOOK_SIGNATURES", False)

    # Metrics API
    RECENT_DONATIONS_DEFAULT_LIMIT = _int("RECENT_DONATIONS_DEFAULT_LIMIT", 25)
    RECENT_DONATIONS_MAX_LIMIT = _int("RECENT_DONATIONS_MAX_LIMIT", 100)
    LEADERBOARD_DEFAULT_LIMIT = _int("LEADERBOARD_DEFAULT_LIMIT", 10)
    LEADERBOARD_MAX_LIMIT = _int("LEADERBOARD_MAX_LIMIT", 100)

    @classmethod
    def init_app(cls, app) -> None:
        """
        Boot hardening hook, called from create_app() after from_object().
        """
        uri = str(app.config.get("SQLALCHEMY_DATABASE_URI") or "")

        if uri.startswith("sqlite:"):
            opts = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
            connect_args = dict(opts.get("connect_args") or {})
            connect_args.setdefault("check_same_thread", False)
            opts["connect_args"] = connect_args
            opts.setdefault("pool_pre_ping", True)
            app.config["SQLALCHEMY_ENGINE_OPTIONS"] = opts


class DevelopmentConfig(BaseConfig):
    ENV = "development"
    DEBUG = True

    SQLALCHEMY_DATABASE_URI = _env("SQLALCHEMY_DATABASE_URI", "sqlite:///donorhub-dev.db")


class TestingConfig(BaseConfig):
    ENV = "testing"
    TESTING = True
    DEBUG = False

    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    LOG_LEVEL = "WARNING"

    STRIPE_SECRET_KEY = "sk_test_donorhub"
    STRIPE_WEBHOOK_SECRET = "whsec_test_donorhub"
    DONORBOX_WEBHOOK_SECRET = "donorbox_test_secret"
    REQUIRE_WEBHOOK_SIGNATURES = True

    FUNDRAISING_GOAL_CENTS = 100_000_000 * 100


class ProductionConfig(BaseConfig):
    ENV = "production"
    DEBUG = False

    REQUIRE_WEBHOOK_SIGNATURES = _bool("REQUIRE_WEBHOOK_SIGNATURES", True)

    @classmethod
    def init_app(cls, app) -> None:
        super().init_app(app)

        # ---- Production guardrails (fail fast) ----
        sk = app.config.get("SECRET_KEY")
        if not sk or sk == "dev-change-me":
            raise RuntimeError("SECRET_KEY must be set to a strong random value in production.")

        base = (app.config.get("PUBLIC_BASE_URL") or "").strip()
        if base and base.startswith("http://"):
            raise RuntimeError("PUBLIC_BASE_URL must be https:// in production.")

        if app.config.get("REQUIRE_WEBHOOK_SIGNATURES"):
            missing = [
                k for k in ("STRIPE_WEBHOOK_SECRET", "DONORBOX_WEBHOOK_SECRET") if not app.config.get(k)
            ]
            if missing:
                raise RuntimeError(f"Webhook secrets required in production: {', '.join(missing)}")

        if _bool("FLASK_DEBUG", False):
            raise RuntimeError("FLASK_DEBUG must be 0 in production.")
