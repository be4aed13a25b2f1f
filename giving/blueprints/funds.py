from __future__ import annotations

from flask import Blueprint, jsonify, request

from giving.errors import FundNotFound, ValidationError
from giving.services import get_services

bp = Blueprint("funds", __name__)


@bp.get("/<fund_id>")
def get_fund(fund_id: str):
    fund = get_services().ledger.get_fund(fund_id)
    if fund is None:
        raise FundNotFound()
    return jsonify({"ok": True, "fund": fund.as_dict()})


@bp.get("/<fund_id>/donations")
def fund_donations(fund_id: str):
    services = get_services()
    if services.ledger.get_fund(fund_id) is None:
        raise FundNotFound()

    try:
        limit = int(request.args.get("limit", 50))
    except ValueError:
        raise ValidationError("limit must be an integer") from None
    limit = max(1, min(limit, 100))

    donations = services.store.completed_for_fund(fund_id, limit=limit)
    return jsonify({"ok": True, "data": [d.as_dict(public=True) for d in donations]})
