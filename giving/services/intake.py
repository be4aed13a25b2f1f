"""Donation intake: validate, record a pending donation, open a NotchPay payment."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, cast

from sqlalchemy.exc import SQLAlchemyError

from giving import money
from giving.errors import GatewayError, ValidationError
from giving.models import Beneficiary, Donation, PaymentMethod
from giving.models.mixins import utcnow
from giving.services.ledger import FundLedger
from giving.services.notchpay import NotchPayClient, PaymentRequest
from giving.services.store import DonationStore

log = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on", "y"}


def _truthy(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    return str(v).strip().lower() in _TRUTHY


def _is_email(s: str) -> bool:
    s = (s or "").strip()
    return ("@" in s) and ("." in s.split("@")[-1])


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if data.get(k) is not None:
            return data[k]
    return None


@dataclass(frozen=True)
class DonationRequest:
    fund_id: str
    amount: Any
    donor_id: str
    currency: Optional[str] = None
    donor_email: Optional[str] = None
    donor_phone: Optional[str] = None
    anonymous: bool = False
    recurring: bool = False
    payment_method: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any], *, donor_id: Optional[str] = None) -> "DonationRequest":
        email = str(_first(data, "email", "donorEmail", "donor_email") or "").strip().lower()
        phone = str(_first(data, "phone", "donorPhone", "donor_phone") or "").strip()
        return cls(
            fund_id=str(_first(data, "fundId", "fund_id") or "").strip(),
            amount=_first(data, "amount"),
            donor_id=str(_first(data, "donorId", "donor_id", "userId", "user_id") or donor_id or "").strip(),
            currency=(str(data["currency"]).strip() if data.get("currency") else None),
            donor_email=email[:160] or None,
            donor_phone=phone[:32] or None,
            anonymous=_truthy(_first(data, "isAnonymous", "is_anonymous", "anonymous")),
            recurring=_truthy(_first(data, "isRecurring", "is_recurring", "recurring")),
            payment_method=(str(_first(data, "paymentMethod", "payment_method") or "").strip().lower() or None),
        )


@dataclass(frozen=True)
class IntakeResult:
    donation: Donation
    payment_url: str


def _active_beneficiary() -> Optional[Beneficiary]:
    return Beneficiary.active()


class DonationIntake:
    def __init__(
        self,
        store: DonationStore,
        ledger: FundLedger,
        gateway: NotchPayClient,
        *,
        callback_url: str,
        min_amount: int = 100,
        beneficiary_lookup: Callable[[], Optional[Beneficiary]] = _active_beneficiary,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.gateway = gateway
        self.callback_url = callback_url
        self.min_amount = int(min_amount or 0)
        self.beneficiary_lookup = beneficiary_lookup

    def create_donation(self, req: DonationRequest) -> IntakeResult:
        if not req.donor_id:
            raise ValidationError("donorId is required")
        if not req.fund_id:
            raise ValidationError("fundId is required")

        fund = self.ledger.get_active_fund(req.fund_id)

        currency = money.normalize_currency(req.currency, default="") if req.currency else fund.currency
        if not currency:
            raise ValidationError("currency must be a 3-letter ISO code")
        if currency != fund.currency:
            raise ValidationError(f"currency {currency} does not match fund currency {fund.currency}")

        amount_minor = money.to_minor(req.amount, currency)
        if self.min_amount and money.to_major(amount_minor, currency) < self.min_amount:
            raise ValidationError(f"Minimum donation is {self.min_amount} {currency}")

        if req.donor_email and not _is_email(req.donor_email):
            raise ValidationError("valid email required")

        payment_method = req.payment_method or PaymentMethod.MOBILE_MONEY
        if payment_method not in PaymentMethod.ALL:
            raise ValidationError(f"paymentMethod must be one of: {', '.join(PaymentMethod.ALL)}")

        beneficiary = self._beneficiary()

        donation = self.store.create_pending(
            fund_id=fund.id,
            user_id=req.donor_id,
            amount_minor=amount_minor,
            currency=currency,
            payment_method=payment_method,
            donor_email=req.donor_email,
            donor_phone=req.donor_phone,
            is_anonymous=req.anonymous,
            is_recurring=req.recurring,
        )
        donation_id = donation.id

        try:
            init = self.gateway.create_payment(
                PaymentRequest(
                    amount_minor=amount_minor,
                    currency=currency,
                    reference=donation_id,
                    description=f"Donation to {fund.title}",
                    callback_url=self.callback_url,
                    email=req.donor_email,
                    phone=req.donor_phone,
                    beneficiary_id=beneficiary.notchpay_id if beneficiary else None,
                )
            )
        except GatewayError as e:
            log.error("Payment initialization failed for donation %s: %s", donation_id, e.message)
            self.store.mark_failed(donation_id, {"failureReason": e.message, "failedAt": utcnow().isoformat()})
            raise GatewayError(
                "Payment gateway unavailable, please try again", http_status=e.http_status, donationId=donation_id
            ) from e

        if not init.url:
            log.error("NotchPay returned no authorization_url for donation %s", donation_id)
            self.store.mark_failed(
                donation_id,
                {"failureReason": "missing_authorization_url", "gateway": init.raw, "failedAt": utcnow().isoformat()},
            )
            raise GatewayError("Payment gateway did not return a payment URL", donationId=donation_id)

        reference = init.reference
        if not reference:
            log.warning("NotchPay returned no transaction reference for donation %s; using donation id", donation_id)
            reference = donation_id

        try:
            self.store.attach_payment(
                donation_id,
                reference,
                {
                    "reference": reference,
                    "authorization_url": init.url,
                    "beneficiaryId": beneficiary.notchpay_id if beneficiary else None,
                    "beneficiaryName": beneficiary.name if beneficiary else None,
                    "gateway": init.raw,
                },
            )
        except SQLAlchemyError as e:
            self.store.session.rollback()
            log.error("Could not store transaction %s for donation %s: %s", reference, donation_id, e)
            self.store.mark_failed(
                donation_id,
                {"failureReason": "attach_failed", "reference": reference, "failedAt": utcnow().isoformat()},
            )
            raise GatewayError("Payment could not be recorded, please try again", donationId=donation_id) from e
        log.info("Donation %s awaiting payment (transaction=%s)", donation_id, reference)
        return IntakeResult(donation=cast(Donation, self.store.get(donation_id)), payment_url=init.url)

    def _beneficiary(self) -> Optional[Beneficiary]:
        try:
            beneficiary = self.beneficiary_lookup()
        except SQLAlchemyError as e:
            self.store.session.rollback()
            log.warning("Beneficiary lookup failed, continuing without one: %s", e)
            return None
        if beneficiary is None:
            log.warning("No active beneficiary configured; payment routed to the default account")
        return beneficiary
