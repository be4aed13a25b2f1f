"""Error taxonomy for the donation lifecycle.

Every error carries the HTTP status the API layer renders it with; the app
factory turns any ``GivingError`` into the standard JSON error shape.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class GivingError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = "", *, status_code: Optional[int] = None, **extra: Any) -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or (self.__class__.__doc__ or self.code).strip()
        if status_code is not None:
            self.status_code = int(status_code)
        self.extra: Dict[str, Any] = extra

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.code, **self.extra}


class ValidationError(GivingError):
    """Invalid donation request."""

    status_code = 400
    code = "validation_error"


class FundNotFound(ValidationError):
    """Fund not found."""

    status_code = 404
    code = "fund_not_found"


class FundNotAcceptingDonations(ValidationError):
    """Fund is not accepting donations."""

    code = "fund_not_accepting_donations"


class DonationNotFound(GivingError):
    """Donation not found."""

    status_code = 404
    code = "donation_not_found"


class NoTransaction(ValidationError):
    """No transaction ID found for this donation."""

    code = "no_transaction"


class GatewayError(GivingError):
    """Payment gateway unavailable."""

    status_code = 502
    code = "gateway_error"

    def __init__(self, message: str = "", *, http_status: Optional[int] = None, transient: bool = True, **extra: Any) -> None:
        super().__init__(message, **extra)
        self.http_status = http_status
        self.transient = transient

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["retryable"] = True
        return out


class SignatureError(GivingError):
    """Invalid signature."""

    status_code = 401
    code = "invalid_signature"


class LedgerError(GivingError):
    """Fund ledger update failed."""

    code = "ledger_error"


class NotificationError(GivingError):
    """Notification dispatch failed."""

    code = "notification_error"
