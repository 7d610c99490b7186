import logging
from typing import Any

import stripe
from flask_cors import CORS
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

log = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Core singletons
# ─────────────────────────────────────────────────────────────
db = SQLAlchemy()
migrate = Migrate()
cors = CORS()


# ─────────────────────────────────────────────────────────────
# Safe DB helpers
# ─────────────────────────────────────────────────────────────
def safe_commit() -> bool:
    try:
        db.session.commit()
        return True
    except Exception as e:
        log.error("DB commit failed: %s", e, exc_info=True)
        db.session.rollback()
        return False


def tx_commit() -> None:
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


# ─────────────────────────────────────────────────────────────
# Stripe initialization
# ─────────────────────────────────────────────────────────────
def guess_stripe_mode(api_key: str) -> str:
    if not api_key:
        return "disabled"
    if api_key.startswith(("sk_live_", "rk_live_")):
        return "live"
    if api_key.startswith(("sk_test_", "rk_test_")):
        return "test"
    return "unknown"


def init_stripe(app: Any) -> None:
    api_key = (app.config.get("STRIPE_SECRET_KEY") or "").strip()

    if not api_key:
        app.logger.warning("Stripe NOT initialized: missing STRIPE_SECRET_KEY")
        return

    stripe.api_key = api_key
    # Checkout failures surface to the donor; no silent SDK retries
    stripe.max_network_retries = 0
    app.logger.info("Stripe initialized (%s mode)", guess_stripe_mode(api_key))


__all__ = [
    "db",
    "migrate",
    "cors",
    "safe_commit",
    "tx_commit",
    "guess_stripe_mode",
    "init_stripe",
]
