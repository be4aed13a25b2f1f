from __future__ import annotations

import os
import socket
import time
from datetime import datetime, timezone
from typing import Any, Dict

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from giving.extensions import db
from giving.services import get_services

bp = Blueprint("health", __name__)

APP_STARTED_AT = time.time()
HOSTNAME = socket.gethostname()

BUILD_VERSION = os.getenv("BUILD_VERSION") or os.getenv("RELEASE") or os.getenv("VERSION") or "dev"
GIT_SHA = os.getenv("GIT_SHA", "")[:12]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _overall_status(parts: Dict[str, Dict[str, Any]]) -> str:
    states = [p.get("status", "ok") for p in parts.values()]
    if any(s == "fail" for s in states):
        return "fail"
    if any(s == "degraded" for s in states):
        return "degraded"
    return "ok"


def _db_check() -> Dict[str, Any]:
    t0 = time.perf_counter()
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        db.session.rollback()
        return {"status": "fail", "ok": False, "error": f"{type(e).__name__}: {e}"}
    return {"status": "ok", "ok": True, "latencyMs": int((time.perf_counter() - t0) * 1000)}


def _notchpay_check() -> Dict[str, Any]:
    gateway = get_services().gateway
    warnings = []
    if not gateway.public_key:
        warnings.append("missing_public_key")
    if not gateway.private_key:
        warnings.append("missing_private_key")
    if not gateway.has_webhook_secret:
        warnings.append(
            "webhooks_unsigned" if current_app.config.get("WEBHOOK_ALLOW_UNSIGNED") else "missing_webhook_secret"
        )

    out: Dict[str, Any] = {
        "status": "ok" if not warnings else "degraded",
        "ok": not warnings,
        "apiUrl": gateway.api_url,
        "webhookSecretPresent": gateway.has_webhook_secret,
    }
    if warnings:
        out["warning"] = ",".join(warnings)
    return out


def _summary_payload() -> Dict[str, Any]:
    parts = {
        "db": _db_check(),
        "notchpay": _notchpay_check(),
    }
    return {
        "status": _overall_status(parts),
        "version": BUILD_VERSION,
        "git": GIT_SHA,
        "hostname": HOSTNAME,
        "uptime_s": int(time.time() - APP_STARTED_AT),
        "now": _now_iso(),
        "parts": parts,
    }


@bp.get("/health")
def health():
    return jsonify(_summary_payload())


@bp.get("/ready")
def ready():
    p = _summary_payload()
    code = 200 if p["status"] != "fail" else 503
    return jsonify(p), code


@bp.get("/live")
def live():
    return jsonify({"status": "ok", "now": _now_iso(), "uptime_s": int(time.time() - APP_STARTED_AT)})
