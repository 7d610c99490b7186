# donorhub/__init__.py
# DonorHub: donation ingestion + metrics app factory
# Goals:
# - deterministic blueprint registration (webhooks must always be mounted)
# - JSON everywhere under /api/ (error shape included)
# - request-id aware logging for webhook forensics

from __future__ import annotations

import logging
import os
import time
from importlib import import_module
from typing import Any, Dict, Optional, Type, Union
from uuid import uuid4

from dotenv import load_dotenv
from flask import Blueprint, Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException
from werkzeug.utils import import_string

# IMPORTANT: never override real env vars in prod
load_dotenv(override=False)

ConfigLike = Union[str, Type[Any]]

from donorhub.config import CONFIG_BY_NAME  # noqa: E402
from donorhub.extensions import cors, db, init_stripe, migrate  # noqa: E402

__version__ = "1.0.0"


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _env_mode() -> str:
    for key in ("APP_ENV", "ENV", "FLASK_ENV"):
        val = (os.getenv(key) or "").strip().lower()
        if val:
            # normalize common aliases
            if val == "prod":
                return "production"
            if val == "dev":
                return "development"
            return val
    return "development"


def _resolve_config(target: Optional[ConfigLike]) -> Type[Any]:
    """
    Choose the config class.
    - A class or dotted path is used as given; a short name ("testing") is looked up.
    - Else FLASK_CONFIG, else the class matching the environment mode.
    """
    if target is None:
        target = (os.getenv("FLASK_CONFIG") or "").strip() or _env_mode()

    if isinstance(target, str) and target.lower() in CONFIG_BY_NAME:
        return CONFIG_BY_NAME[target.lower()]
    if isinstance(target, str) and "." not in target:
        raise RuntimeError(f"Unknown config '{target}' (expected one of: {', '.join(CONFIG_BY_NAME)})")
    if isinstance(target, str):
        return import_string(target)
    return target


def _json_error(message: str, status: int, **extra: Any):
    payload: Dict[str, Any] = {"success": False, "error": str(message)}
    payload.update(extra)
    resp = jsonify(payload)
    resp.status_code = int(status)
    return resp


def _wants_json_response() -> bool:
    path = request.path or ""
    if path.startswith(("/api/", "/healthz")):
        return True
    accept = (request.headers.get("Accept") or "").lower()
    return ("application/json" in accept) or bool(request.is_json)


def _parse_cors_origins(raw: Any) -> Union[str, list]:
    if isinstance(raw, (list, tuple)):
        return list(raw)
    raw = str(raw or "*").strip()
    if raw in {"", "*"}:
        return "*"
    if "," in raw:
        return [o.strip() for o in raw.split(",") if o.strip()]
    return raw


# -----------------------------------------------------------------------------
# Logging with request_id
# -----------------------------------------------------------------------------
class _RequestIDFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        try:
            record.request_id = getattr(g, "request_id", "-")
        except RuntimeError:
            # outside an app context (CLI, boot)
            record.request_id = "-"
        return True


def _configure_logging(app: Flask) -> None:
    fmt = "%(asctime)s [%(levelname)s] %(name)s [rid=%(request_id)s]: %(message)s"
    root = logging.getLogger()

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt))
        handler.addFilter(_RequestIDFilter())
        root.addHandler(handler)
    else:
        for h in root.handlers:
            if not any(isinstance(f, _RequestIDFilter) for f in h.filters):
                h.addFilter(_RequestIDFilter())
            if not getattr(h, "formatter", None) or "%(request_id)s" not in getattr(h.formatter, "_fmt", ""):
                h.setFormatter(logging.Formatter(fmt))

    root.setLevel(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    logging.getLogger("werkzeug").setLevel(str(app.config.get("WERKZEUG_LOG_LEVEL", "WARNING")).upper())
    app.logger.info("Loaded config: ENV=%s DEBUG=%s", app.config.get("ENV", "?"), app.debug)


# -----------------------------------------------------------------------------
# Blueprint registration (deterministic + strict)
# -----------------------------------------------------------------------------
def _register_blueprints(app: Flask) -> None:
    from donorhub.blueprints import BLUEPRINTS

    for dotted, attr, prefix in BLUEPRINTS:
        blueprint = getattr(import_module(dotted), attr, None)
        if not isinstance(blueprint, Blueprint):
            raise RuntimeError(f"{dotted} does not define a Blueprint named '{attr}'")
        app.register_blueprint(blueprint, url_prefix=prefix)
        app.logger.debug("Registered blueprint: %-10s → %s", blueprint.name, prefix)


# -----------------------------------------------------------------------------
# Integrations
# -----------------------------------------------------------------------------
def _init_cors(app: Flask) -> None:
    cors.init_app(
        app,
        resources={r"/api/*": {"origins": _parse_cors_origins(app.config.get("CORS_ORIGINS"))}},
        send_wildcard=True,
        expose_headers=["X-Request-ID"],
        allow_headers=[
            "Content-Type",
            "Authorization",
            "Stripe-Signature",
            "X-Donorbox-Signature",
            "X-Request-ID",
        ],
        methods=["GET", "POST", "OPTIONS"],
    )


def _maybe_create_sqlite_tables(app: Flask) -> None:
    uri = (app.config.get("SQLALCHEMY_DATABASE_URI") or "").strip()
    if not uri.startswith("sqlite"):
        return
    if app.config.get("AUTO_CREATE_SQLITE", True) is not True:
        return

    import donorhub.models  # noqa: F401  (register tables on db.metadata)

    with app.app_context():
        db.create_all()


# -----------------------------------------------------------------------------
# Request lifecycle + errors
# -----------------------------------------------------------------------------
def _register_request_lifecycle(app: Flask) -> None:
    @app.before_request
    def _bootstrap_request():
        g.request_id = request.headers.get("X-Request-ID") or uuid4().hex
        g._start_ts = time.perf_counter()

    @app.after_request
    def _attach_request_headers(resp):
        resp.headers["X-Request-ID"] = getattr(g, "request_id", "-")
        start = getattr(g, "_start_ts", None)
        if start:
            resp.headers["X-Response-Time-ms"] = str(int((time.perf_counter() - start) * 1000))
        return resp


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(HTTPException)
    def _http_err(err: HTTPException):
        if _wants_json_response():
            return _json_error(err.description or err.name, err.code or 500, request_id=getattr(g, "request_id", "-"))
        return err

    @app.errorhandler(Exception)
    def _uncaught(err: Exception):
        app.logger.exception("Unhandled error")
        db.session.rollback()
        return _json_error("Internal Server Error", 500, request_id=getattr(g, "request_id", "-"))


# -----------------------------------------------------------------------------
# Health endpoints
# -----------------------------------------------------------------------------
def _register_health_endpoints(app: Flask) -> None:
    @app.get("/healthz")
    def _healthz():
        return {
            "status": "ok",
            "env": app.config.get("ENV", "unknown"),
            "request_id": getattr(g, "request_id", "-"),
        }


def _register_cli(app: Flask) -> None:
    from donorhub.cli import demo_cli, metrics_cli

    app.cli.add_command(metrics_cli)
    app.cli.add_command(demo_cli)


# -----------------------------------------------------------------------------
# App Factory
# -----------------------------------------------------------------------------
def create_app(config_class: Optional[ConfigLike] = None) -> Flask:
    app = Flask(__name__)

    # ---- Config loading
    cfg = _resolve_config(config_class)
    app.config.from_object(cfg)
    if hasattr(cfg, "init_app"):
        cfg.init_app(app)

    app.url_map.strict_slashes = False
    app.config.setdefault("JSON_SORT_KEYS", False)

    # ---- Logging
    _configure_logging(app)

    # ---- Integrations + core extensions
    _init_cors(app)

    db.init_app(app)
    _maybe_create_sqlite_tables(app)

    migrate.init_app(app, db, compare_type=True, render_as_batch=True)
    init_stripe(app)

    # ---- Request lifecycle / errors
    _register_request_lifecycle(app)
    _register_error_handlers(app)

    # ---- Blueprints + health + CLI
    _register_blueprints(app)
    _register_health_endpoints(app)
    _register_cli(app)

    return app


__all__ = ["create_app", "__version__"]
