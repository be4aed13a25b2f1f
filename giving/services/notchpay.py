# giving/services/notchpay.py
"""
NotchPay gateway client.

  POST {api}/payments            create a hosted payment, returns authorization_url
  GET  {api}/payments/<ref>      current state of a transaction
  HMAC-SHA256(raw body)          webhook signature (X-Notchpay-Signature)

Every call has a timeout. Connection errors, timeouts, 429 and 5xx are retried
with linear backoff; any other 4xx is final.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

import requests

from giving import money
from giving.errors import GatewayError

log = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.notchpay.co"
_RETRY_STATUSES = {429, 500, 502, 503, 504}


class Outcome:
    COMPLETE = "complete"
    PENDING = "pending"
    FAILED = "failed"


_STATUS_MAP = {
    "complete": Outcome.COMPLETE,
    "completed": Outcome.COMPLETE,
    "success": Outcome.COMPLETE,
    "successful": Outcome.COMPLETE,
    "pending": Outcome.PENDING,
    "processing": Outcome.PENDING,
    "failed": Outcome.FAILED,
    "cancelled": Outcome.FAILED,
    "canceled": Outcome.FAILED,
    "expired": Outcome.FAILED,
}


def map_status(raw: Any) -> str:
    """Collapse a gateway status string into complete / pending / failed."""
    return _STATUS_MAP.get(str(raw or "").strip().lower(), Outcome.PENDING)


@dataclass(frozen=True)
class PaymentRequest:
    amount_minor: int
    currency: str
    reference: str
    description: str
    callback_url: str
    email: Optional[str] = None
    phone: Optional[str] = None
    beneficiary_id: Optional[str] = None


@dataclass(frozen=True)
class PaymentInit:
    url: Optional[str]
    reference: Optional[str]
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransactionStatus:
    reference: str
    outcome: str
    raw_status: str
    amount: Any = None
    currency: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class NotchPayClient:
    def __init__(
        self,
        *,
        public_key: str,
        private_key: str,
        webhook_secret: str = "",
        api_url: str = DEFAULT_API_URL,
        receiving_account_id: str = "",
        timeout: float = 15.0,
        max_retries: int = 2,
        backoff: float = 0.5,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.public_key = (public_key or "").strip()
        self.private_key = (private_key or "").strip()
        self.webhook_secret = (webhook_secret or "").strip()
        self.api_url = (api_url or DEFAULT_API_URL).strip().rstrip("/")
        self.receiving_account_id = (receiving_account_id or "").strip()
        self.timeout = float(timeout)
        self.max_retries = max(0, int(max_retries))
        self.backoff = max(0.0, float(backoff))
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: Mapping[str, Any], session: Optional[requests.Session] = None) -> "NotchPayClient":
        return cls(
            public_key=config.get("NOTCHPAY_PUBLIC_KEY") or "",
            private_key=config.get("NOTCHPAY_PRIVATE_KEY") or "",
            webhook_secret=config.get("NOTCHPAY_WEBHOOK_SECRET") or "",
            api_url=config.get("NOTCHPAY_API_URL") or DEFAULT_API_URL,
            receiving_account_id=config.get("NOTCHPAY_RECEIVING_ACCOUNT_ID") or "",
            timeout=config.get("NOTCHPAY_TIMEOUT", 15.0),
            max_retries=config.get("NOTCHPAY_MAX_RETRIES", 2),
            backoff=config.get("NOTCHPAY_RETRY_BACKOFF", 0.5),
            session=session,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.public_key and self.private_key)

    @property
    def has_webhook_secret(self) -> bool:
        return bool(self.webhook_secret)

    # ---------------- Payments ----------------
    def create_payment(self, req: PaymentRequest) -> PaymentInit:
        self._require_keys(private=False)

        body: Dict[str, Any] = {
            "amount": _gateway_amount(req.amount_minor, req.currency),
            "currency": req.currency,
            "description": req.description,
            "reference": req.reference,
            "callback": req.callback_url,
        }
        if req.email:
            body["email"] = req.email
        if req.phone:
            body["phone"] = req.phone
        if req.beneficiary_id:
            body["beneficiary"] = req.beneficiary_id
        elif self.receiving_account_id:
            body["account_id"] = self.receiving_account_id

        data = self._request("POST", "/payments", json=body, headers=self._headers())
        transaction = data.get("transaction") if isinstance(data.get("transaction"), dict) else {}
        url = data.get("authorization_url") or data.get("payment_url")
        reference = transaction.get("reference") or data.get("reference")

        log.info("NotchPay payment created for %s (transaction=%s)", req.reference, reference)
        return PaymentInit(url=url or None, reference=reference or None, raw=data)

    def get_transaction(self, reference: str) -> TransactionStatus:
        self._require_keys()
        if not reference:
            raise GatewayError("Missing transaction reference", transient=False)

        path = f"/payments/{quote(str(reference), safe='')}"
        headers = self._headers()
        headers["X-Grant"] = self.private_key

        data = self._request("GET", path, headers=headers)
        txn = data.get("transaction") if isinstance(data.get("transaction"), dict) else data
        raw_status = str(txn.get("status") or "")
        return TransactionStatus(
            reference=str(txn.get("reference") or reference),
            outcome=map_status(raw_status),
            raw_status=raw_status,
            amount=txn.get("amount"),
            currency=txn.get("currency"),
            metadata=txn,
        )

    # ---------------- Webhooks ----------------
    def compute_signature(self, raw_body: bytes) -> str:
        if not self.webhook_secret:
            raise GatewayError("NotchPay webhook secret is not configured", transient=False)
        return hmac.new(self.webhook_secret.encode("utf-8"), raw_body or b"", hashlib.sha256).hexdigest()

    def verify_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        if not self.webhook_secret or not signature:
            return False
        expected = self.compute_signature(raw_body)
        return hmac.compare_digest(expected.encode("ascii"), signature.strip().lower().encode("utf-8"))

    # ---------------- Helpers ----------------
    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": self.public_key,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def _require_keys(self, private: bool = True) -> None:
        if not self.public_key or (private and not self.private_key):
            raise GatewayError("NotchPay is not configured", transient=False)

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.api_url}{path}"
        attempts = self.max_retries + 1
        last_err: Optional[GatewayError] = None

        for attempt in range(1, attempts + 1):
            try:
                resp = self.session.request(method, url, json=json, headers=headers, timeout=self.timeout)
                resp.raise_for_status()
            except (requests.ConnectionError, requests.Timeout) as e:
                last_err = GatewayError(f"NotchPay unreachable: {type(e).__name__}")
            except requests.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                if status not in _RETRY_STATUSES:
                    log.warning("NotchPay %s %s rejected with HTTP %s", method, path, status)
                    raise GatewayError(
                        f"NotchPay rejected the request (HTTP {status})", http_status=status, transient=False
                    ) from e
                last_err = GatewayError(f"NotchPay returned HTTP {status}", http_status=status)
            except requests.RequestException as e:
                last_err = GatewayError(f"NotchPay request failed: {type(e).__name__}")
            else:
                try:
                    data = resp.json()
                except ValueError as e:
                    raise GatewayError("NotchPay returned a non-JSON response", http_status=resp.status_code) from e
                if not isinstance(data, dict):
                    raise GatewayError("NotchPay returned an unexpected payload", http_status=resp.status_code)
                return data

            if attempt < attempts:
                log.warning(
                    "NotchPay %s %s failed (attempt %s/%s): %s", method, path, attempt, attempts, last_err.message
                )
                time.sleep(self.backoff * attempt)

        if last_err is None:
            last_err = GatewayError("NotchPay request was not attempted")
        log.error("NotchPay %s %s failed after %s attempt(s): %s", method, path, attempts, last_err.message)
        raise last_err


def _gateway_amount(amount_minor: int, currency: str) -> Any:
    major = money.to_major(amount_minor, currency)
    if money.exponent(currency) == 0:
        return int(major)
    return str(major)
