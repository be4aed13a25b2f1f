#!/usr/bin/env python3
"""
IFA Giving donations blueprint (NotchPay)

Mount: /donations  (register blueprint with url_prefix="/donations")

Endpoints:
  POST /donations                         create a donation, returns paymentUrl
  GET  /donations/<id>                    read one donation
  POST /donations/<id>/verify             poll NotchPay and reconcile
  POST /donations/webhook/notchpay        gateway callback (alias: /webhooks/notchpay)
  GET  /donations/statistics              totals, optional ?fundId=
  GET  /donations/users/<user_id>         paginated history (?page=&limit=)

Contracts:
- JSON only, never cached; ok/error shape shared with the app factory.
- GivingError subclasses bubble to the app error handler (status + JSON body).
- The webhook always answers 200; signature failures are logged, not surfaced.
"""

from __future__ import annotations

from typing import Any, Dict, cast

from flask import Blueprint, jsonify, request

from giving import money
from giving.errors import DonationNotFound, ValidationError
from giving.services import get_services
from giving.services.intake import DonationRequest
from giving.services.webhooks import SIGNATURE_HEADER

bp = Blueprint("donations", __name__)

MAX_PAGE_SIZE = 50


# ----------------------------
# Small utilities
# ----------------------------
def _request_payload() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if isinstance(data, dict) and data:
        return cast(Dict[str, Any], data)
    if request.form:
        return cast(Dict[str, Any], request.form.to_dict(flat=True))
    return {}


def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        raise ValidationError(f"{name} must be an integer") from None


def _json_response(payload: Dict[str, Any], status: int = 200):
    resp = jsonify(payload)
    resp.status_code = int(status)
    resp.headers.setdefault("Cache-Control", "no-store, no-cache, must-revalidate, max-age=0")
    resp.headers.setdefault("Pragma", "no-cache")
    return resp


def _json_ok(payload: Dict[str, Any], status: int = 200):
    payload.setdefault("ok", True)
    return _json_response(payload, status)


# ----------------------------
# Donations
# ----------------------------
@bp.post("")
def create_donation():
    data = _request_payload()
    req = DonationRequest.from_payload(data, donor_id=request.headers.get("X-User-Id"))

    result = get_services().intake.create_donation(req)
    d = result.donation
    return _json_ok(
        {
            "donationId": d.id,
            "fundId": d.fund_id,
            "amount": money.as_json_number(d.amount_minor, d.currency),
            "currency": d.currency,
            "status": d.status,
            "paymentUrl": result.payment_url,
            "transactionId": d.transaction_id,
            "createdAt": d.created_at.isoformat() if d.created_at else None,
        },
        201,
    )


@bp.get("/<donation_id>")
def get_donation(donation_id: str):
    d = get_services().store.get(donation_id)
    if d is None:
        raise DonationNotFound()
    return _json_ok({"donation": d.as_dict()})


@bp.post("/<donation_id>/verify")
def verify_donation(donation_id: str):
    d = get_services().verification.verify_payment(donation_id)
    return _json_ok({"donation": d.as_dict()})


@bp.post("/webhook/notchpay")
@bp.post("/webhooks/notchpay")
def notchpay_webhook():
    payload = request.get_data(cache=False, as_text=False)
    signature = (request.headers.get(SIGNATURE_HEADER) or "").strip() or None
    ack = get_services().webhooks.handle(payload, signature)
    return _json_response(ack, 200)


# ----------------------------
# Reporting
# ----------------------------
@bp.get("/statistics")
def donation_statistics():
    fund_id = (request.args.get("fundId") or request.args.get("fund_id") or "").strip() or None
    stats = get_services().store.statistics(fund_id)
    recent = stats.pop("recent")
    return _json_ok({"statistics": stats, "recent": [d.as_dict(public=True) for d in recent]})


@bp.get("/users/<user_id>")
def user_donations(user_id: str):
    page = _int_arg("page", 1)
    limit = _int_arg("limit", 10)
    if page < 1:
        raise ValidationError("page must be >= 1")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

    items, total = get_services().store.history(user_id, page=page, limit=limit)
    return _json_ok(
        {
            "data": [d.as_dict() for d in items],
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": (total + limit - 1) // limit,
        }
    )
