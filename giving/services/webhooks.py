"""NotchPay webhook intake.

The raw body is authenticated before it is parsed. Anything that is not a
valid, signed, recognised event is acknowledged without side effects; the
HTTP layer always answers 200 so the gateway does not retry into a storm.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from giving.errors import SignatureError
from giving.services.notchpay import NotchPayClient, Outcome
from giving.services.reconciliation import ReconciliationEngine

log = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Notchpay-Signature"

EVENT_OUTCOMES = {
    "payment.complete": Outcome.COMPLETE,
    "payment.completed": Outcome.COMPLETE,
    "payment.failed": Outcome.FAILED,
    "payment.cancelled": Outcome.FAILED,
    "payment.canceled": Outcome.FAILED,
    "payment.expired": Outcome.FAILED,
}


class WebhookHandler:
    def __init__(self, gateway: NotchPayClient, engine: ReconciliationEngine, *, allow_unsigned: bool = False) -> None:
        self.gateway = gateway
        self.engine = engine
        self.allow_unsigned = bool(allow_unsigned)

    def handle(self, raw_body: bytes, signature: Optional[str]) -> Dict[str, Any]:
        try:
            self.authenticate(raw_body, signature)
        except SignatureError as e:
            log.warning("SECURITY: NotchPay webhook rejected (%s)", e.message)
            return {"error": "Invalid signature"}

        try:
            event = json.loads((raw_body or b"").decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            log.warning("NotchPay webhook with malformed JSON body ignored")
            return {"error": "Invalid payload"}
        if not isinstance(event, dict):
            log.warning("NotchPay webhook body is not an object, ignored")
            return {"error": "Invalid payload"}

        etype = str(event.get("event") or event.get("type") or "").strip().lower()
        outcome = EVENT_OUTCOMES.get(etype)
        if outcome is None:
            log.info("NotchPay webhook event %r ignored", etype)
            return {"received": True}

        data = event.get("data") if isinstance(event.get("data"), dict) else {}
        transaction = data.get("transaction") if isinstance(data.get("transaction"), dict) else {}
        reference = data.get("reference") or transaction.get("reference")
        if not reference:
            log.warning("NotchPay webhook %s without a reference ignored", etype)
            return {"error": "Invalid payload"}

        try:
            result = self.engine.reconcile(str(reference), outcome, data)
        except Exception:
            log.exception("NotchPay webhook processing failed for %s (%s)", reference, etype)
            return {"error": "Webhook processing failed"}

        return {"received": True, "result": result}

    def authenticate(self, raw_body: bytes, signature: Optional[str]) -> None:
        if self.gateway.has_webhook_secret:
            if not signature:
                raise SignatureError("missing signature header")
            if not self.gateway.verify_signature(raw_body, signature):
                raise SignatureError("signature mismatch")
            return

        if self.allow_unsigned:
            log.warning(
                "SECURITY: accepting UNSIGNED NotchPay webhook (no NOTCHPAY_WEBHOOK_SECRET, WEBHOOK_ALLOW_UNSIGNED=true)"
            )
            return

        raise SignatureError("no webhook secret configured")
