# giving/config/config.py
# Canonical IFA Giving configuration (env-first, production-safe)

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
    except ValueError:
        return default


def _float(name: str, default: float) -> float:
    v = _env(name)
    if v is None:
        return default
    try:
        return float(str(v).strip())
    except ValueError:
        return default


def _clean_base_url(v: Optional[str]) -> str:
    return (v or "").strip().rstrip("/")


# ----------------------------
# Config classes
# ----------------------------
class BaseConfig:
    """
    Env-first config:
    - every gateway/ledger setting can be overridden via environment variables
    - safe defaults for local dev (unsigned webhooks are still refused unless opted in)
    """

    ENV = (_env("APP_ENV") or _env("ENV") or _env("FLASK_ENV") or "base").strip().lower()

    DEBUG = _bool("FLASK_DEBUG", False)
    TESTING = _bool("TESTING", False)

    SECRET_KEY = _env("SECRET_KEY", "dev-change-me")
    LOG_LEVEL = _env("LOG_LEVEL", "INFO")
    TRUST_PROXY = _bool("TRUST_PROXY", False)

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = _env("SQLALCHEMY_DATABASE_URI", _env("DATABASE_URL", "sqlite:///ifa-giving-dev.db"))
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}
    SQLITE_BUSY_TIMEOUT_S = _int("SQLITE_BUSY_TIMEOUT_S", 15)
    AUTO_CREATE_SQLITE = _bool("AUTO_CREATE_SQLITE", True)

    # NotchPay gateway
    NOTCHPAY_API_URL = _clean_base_url(_env("NOTCHPAY_API_URL", "https://api.notchpay.co"))
    NOTCHPAY_PUBLIC_KEY = _env("NOTCHPAY_PUBLIC_KEY", "")
    NOTCHPAY_PRIVATE_KEY = _env("NOTCHPAY_PRIVATE_KEY", "")
    NOTCHPAY_WEBHOOK_SECRET = _env("NOTCHPAY_WEBHOOK_SECRET", "")
    NOTCHPAY_RECEIVING_ACCOUNT_ID = _env("NOTCHPAY_RECEIVING_ACCOUNT_ID", "")
    NOTCHPAY_TIMEOUT = _float("NOTCHPAY_TIMEOUT", 15.0)
    NOTCHPAY_MAX_RETRIES = _int("NOTCHPAY_MAX_RETRIES", 2)
    NOTCHPAY_RETRY_BACKOFF = _float("NOTCHPAY_RETRY_BACKOFF", 0.5)

    # Accept webhooks without HMAC when no secret is configured. Never in production.
    WEBHOOK_ALLOW_UNSIGNED = _bool("WEBHOOK_ALLOW_UNSIGNED", False)

    # Donations
    FRONTEND_URL = _clean_base_url(_env("FRONTEND_URL", "https://app.ifa.church"))
    DONATION_CALLBACK_URL = _env("DONATION_CALLBACK_URL", f"{FRONTEND_URL}/donations/callback")
    DEFAULT_CURRENCY = (_env("DEFAULT_CURRENCY", "XAF") or "XAF").upper()
    MIN_DONATION_AMOUNT = _int("MIN_DONATION_AMOUNT", 100)
    LARGE_DONATION_AMOUNT = _int("LARGE_DONATION_AMOUNT", 50_000)

    # Receipts (Flask-Mail)
    DONATION_RECEIPTS_ENABLED = _bool("DONATION_RECEIPTS_ENABLED", False)
    MAIL_SERVER = _env("MAIL_SERVER", "localhost")
    MAIL_PORT = _int("MAIL_PORT", 25)
    MAIL_USE_TLS = _bool("MAIL_USE_TLS", False)
    MAIL_USERNAME = _env("MAIL_USERNAME")
    MAIL_PASSWORD = _env("MAIL_PASSWORD")
    DEFAULT_MAIL_SENDER = _env("DEFAULT_MAIL_SENDER", "IFA Church <no-reply@ifa.church>")
    MAIL_DEFAULT_SENDER = DEFAULT_MAIL_SENDER

    @classmethod
    def init_app(cls, app) -> None:
        """
        Boot hardening hook; create_app() calls it after from_object(...).
        """
        uri = str(app.config.get("SQLALCHEMY_DATABASE_URI") or "")

        # SQLite: share connections across worker threads and wait on writer locks
        if uri.startswith("sqlite:"):
            opts = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
            connect_args = dict(opts.get("connect_args") or {})
            connect_args.setdefault("check_same_thread", False)
            connect_args.setdefault("timeout", int(app.config.get("SQLITE_BUSY_TIMEOUT_S", 15)))
            opts["connect_args"] = connect_args
            opts.setdefault("pool_pre_ping", True)
            app.config["SQLALCHEMY_ENGINE_OPTIONS"] = opts


class DevelopmentConfig(BaseConfig):
    ENV = "development"
    DEBUG = True

    SQLALCHEMY_DATABASE_URI = _env("SQLALCHEMY_DATABASE_URI", "sqlite:///ifa-giving-dev.db")
    LOG_LEVEL = _env("LOG_LEVEL", "DEBUG")


class TestingConfig(BaseConfig):
    ENV = "testing"
    TESTING = True
    DEBUG = False

    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    AUTO_CREATE_SQLITE = True

    NOTCHPAY_API_URL = "https://notchpay.test"
    NOTCHPAY_PUBLIC_KEY = "pk_test_giving"
    NOTCHPAY_PRIVATE_KEY = "sk_test_giving"
    NOTCHPAY_WEBHOOK_SECRET = "whsec_test_giving"
    NOTCHPAY_MAX_RETRIES = 0
    NOTCHPAY_RETRY_BACKOFF = 0.0
    WEBHOOK_ALLOW_UNSIGNED = False

    DONATION_RECEIPTS_ENABLED = False
    MAIL_SUPPRESS_SEND = True


class ProductionConfig(BaseConfig):
    ENV = "production"
    DEBUG = False
    TRUST_PROXY = _bool("TRUST_PROXY", True)

    @classmethod
    def init_app(cls, app) -> None:
        super().init_app(app)

        # ---- Production guardrails (fail fast) ----
        sk = app.config.get("SECRET_KEY")
        if not sk or sk == "dev-change-me":
            raise RuntimeError("SECRET_KEY must be set to a strong random value in production.")

        if app.config.get("WEBHOOK_ALLOW_UNSIGNED"):
            raise RuntimeError("WEBHOOK_ALLOW_UNSIGNED must not be enabled in production.")

        if not (app.config.get("NOTCHPAY_WEBHOOK_SECRET") or "").strip():
            raise RuntimeError("NOTCHPAY_WEBHOOK_SECRET must be set in production.")

        if _bool("FLASK_DEBUG", False):
            raise RuntimeError("FLASK_DEBUG must be 0 in production.")
