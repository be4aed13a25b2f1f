# giving/__init__.py
# IFA Giving: Flask app factory for the donation payment lifecycle
# Goals:
# - deterministic blueprint registration
# - proxy-correct (gateway callbacks arrive through a reverse proxy)
# - JSON error shape everywhere, request ids in every log line

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, List, Optional, Tuple, Type, Union
from uuid import uuid4

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.utils import import_string

# IMPORTANT: never override real env vars in prod
load_dotenv(override=False)

ConfigLike = Union[str, Type[Any]]

import sentry_sdk  # noqa: E402
from sentry_sdk.integrations.flask import FlaskIntegration  # noqa: E402
from sentry_sdk.integrations.logging import LoggingIntegration  # noqa: E402
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration  # noqa: E402

from giving.config import CONFIG_BY_NAME  # noqa: E402
from giving.errors import GivingError  # noqa: E402
from giving.extensions import db, mail, migrate  # noqa: E402


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _env_mode() -> str:
    for key in ("APP_ENV", "ENV", "FLASK_ENV"):
        val = (os.getenv(key) or "").strip().lower()
        if val:
            if val in {"prod"}:
                return "production"
            if val in {"dev"}:
                return "development"
            return val
    return "development"


def _resolve_config(target: Optional[ConfigLike]) -> ConfigLike:
    """
    Choose config class/module path.
    - If explicitly provided, respect it.
    - Else if FLASK_CONFIG is set, use it.
    - Else the config class named by APP_ENV/ENV/FLASK_ENV (development by default).
    """
    if target is not None:
        return target

    explicit = (os.getenv("FLASK_CONFIG") or "").strip()
    if explicit:
        return explicit

    return CONFIG_BY_NAME.get(_env_mode(), CONFIG_BY_NAME["development"])


def _json_error(message: str, status: int, **extra: Any):
    payload: Dict[str, Any] = {"ok": False, "error": {"code": int(status), "message": str(message)}}
    rid = extra.pop("request_id", None)
    if rid:
        payload["error"]["request_id"] = rid
    if extra:
        payload["error"].update(extra)

    resp = jsonify(payload)
    resp.status_code = int(status)
    return resp


# -----------------------------------------------------------------------------
# Logging with request_id
# -----------------------------------------------------------------------------
class _RequestIDFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        try:
            record.request_id = getattr(g, "request_id", "-")
        except RuntimeError:
            # outside an app/request context (CLI, background executor)
            record.request_id = "-"
        return True


def _configure_logging(app: Flask) -> None:
    fmt = "%(asctime)s [%(levelname)s] %(name)s [rid=%(request_id)s]: %(message)s"
    root = logging.getLogger()

    if not any(isinstance(f, _RequestIDFilter) for h in root.handlers for f in h.filters):
        if not root.handlers:
            root.addHandler(logging.StreamHandler())
        for h in root.handlers:
            h.addFilter(_RequestIDFilter())
            if not getattr(h, "formatter", None) or "%(request_id)s" not in getattr(h.formatter, "_fmt", ""):
                h.setFormatter(logging.Formatter(fmt))

    root.setLevel(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    logging.getLogger("werkzeug").setLevel(str(app.config.get("WERKZEUG_LOG_LEVEL", "WARNING")).upper())
    app.logger.info("Loaded config: ENV=%s DEBUG=%s", app.config.get("ENV", "?"), app.debug)


# -----------------------------------------------------------------------------
# ProxyFix (reverse proxy in front of the webhook endpoint)
# -----------------------------------------------------------------------------
def _apply_proxyfix(app: Flask) -> None:
    if not app.config.get("TRUST_PROXY"):
        return
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=1)
    app.logger.info("ProxyFix enabled (trusting X-Forwarded-* headers).")


# -----------------------------------------------------------------------------
# Blueprint registration
# -----------------------------------------------------------------------------
def _register_blueprints(app: Flask) -> None:
    from giving.blueprints.donations import bp as donations_bp
    from giving.blueprints.funds import bp as funds_bp
    from giving.blueprints.health import bp as health_bp

    core: List[Tuple[Any, Optional[str]]] = [
        (donations_bp, "/donations"),
        (funds_bp, "/funds"),
        (health_bp, None),
    ]
    for blueprint, prefix in core:
        app.register_blueprint(blueprint, url_prefix=prefix)
        app.logger.debug("Registered blueprint: %-10s → %s", blueprint.name, prefix or "/")


# -----------------------------------------------------------------------------
# Integrations
# -----------------------------------------------------------------------------
def _init_sentry(app: Flask) -> None:
    dsn = (app.config.get("SENTRY_DSN") or os.getenv("SENTRY_DSN") or "").strip()
    if not dsn:
        return
    sentry_sdk.init(
        dsn=dsn,
        integrations=[
            FlaskIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.0")),
        send_default_pii=False,
        environment=app.config.get("ENV", "development"),
        release=os.getenv("GIT_COMMIT"),
    )
    app.logger.info("Sentry initialized")


def _maybe_create_sqlite_tables(app: Flask) -> None:
    uri = (app.config.get("SQLALCHEMY_DATABASE_URI") or "").strip()
    if not uri.startswith("sqlite"):
        return
    if app.config.get("AUTO_CREATE_SQLITE", True) is not True:
        return
    import giving.models  # noqa: F401  (register tables on the metadata)

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
    @app.errorhandler(GivingError)
    def _giving_err(err: GivingError):
        if err.status_code >= 500:
            app.logger.error("%s: %s", type(err).__name__, err.message)
        return _json_error(err.message, err.status_code, request_id=getattr(g, "request_id", "-"), **err.to_dict())

    @app.errorhandler(HTTPException)
    def _http_err(err: HTTPException):
        return _json_error(err.description or err.name, err.code or 500, request_id=getattr(g, "request_id", "-"))

    @app.errorhandler(Exception)
    def _uncaught(err: Exception):
        app.logger.exception("Unhandled error")
        db.session.rollback()
        return _json_error("Internal Server Error", 500, request_id=getattr(g, "request_id", "-"))


# -----------------------------------------------------------------------------
# App-level health endpoints
# -----------------------------------------------------------------------------
def _register_health_endpoints(app: Flask) -> None:
    @app.get("/healthz")
    def _healthz():
        return {
            "status": "ok",
            "env": app.config.get("ENV", "unknown"),
            "request_id": getattr(g, "request_id", "-"),
        }

    @app.get("/version")
    def _version():
        return {
            "version": os.getenv("GIT_COMMIT", "dev"),
            "env": app.config.get("ENV"),
        }


# -----------------------------------------------------------------------------
# App Factory
# -----------------------------------------------------------------------------
def create_app(config_class: Optional[ConfigLike] = None, *, gateway: Any = None, notifier: Any = None) -> Flask:
    app = Flask(__name__, static_folder=None)

    # ---- Config loading
    cfg = _resolve_config(config_class)
    if isinstance(cfg, str):
        cfg = import_string(cfg)
    app.config.from_object(cfg)
    init_hook = getattr(cfg, "init_app", None)
    if callable(init_hook):
        init_hook(app)

    app.json.sort_keys = False
    app.url_map.strict_slashes = False

    # ---- Proxy handling first
    _apply_proxyfix(app)

    # ---- Logging / integrations
    _configure_logging(app)
    _init_sentry(app)

    # ---- Core extensions
    db.init_app(app)
    _maybe_create_sqlite_tables(app)
    migrate.init_app(app, db, compare_type=True, render_as_batch=True)
    mail.init_app(app)

    # ---- Services (explicit wiring, no container)
    from giving.services import build_services

    build_services(app, gateway=gateway, notifier=notifier)

    # ---- Request lifecycle / errors
    _register_request_lifecycle(app)
    _register_error_handlers(app)

    # ---- Blueprints + health
    _register_blueprints(app)
    _register_health_endpoints(app)

    # ---- CLI
    from giving.cli import donations_cli, funds_cli

    app.cli.add_command(donations_cli)
    app.cli.add_command(funds_cli)

    if app.config.get("WEBHOOK_ALLOW_UNSIGNED") and not app.config.get("NOTCHPAY_WEBHOOK_SECRET"):
        app.logger.warning("SECURITY: unsigned NotchPay webhooks are ACCEPTED (WEBHOOK_ALLOW_UNSIGNED=true)")

    return app
