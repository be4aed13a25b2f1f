from __future__ import annotations

# -----------------------------------------------------------------------------
# Donation: one gift to one fund, tracked through the NotchPay lifecycle.
# Minor-unit amounts; status only ever moves pending -> completed | failed.
# -----------------------------------------------------------------------------
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from giving import money
from giving.extensions import db

from .mixins import JSONType, TimestampMixin, new_id


class DonationStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    ALL = (PENDING, COMPLETED, FAILED)
    TERMINAL = frozenset({COMPLETED, FAILED})


class PaymentMethod:
    MOBILE_MONEY = "mobile_money"
    CARD = "card"

    ALL = (MOBILE_MONEY, CARD)


class Donation(db.Model, TimestampMixin):
    __tablename__ = "donations"
    __table_args__ = (
        CheckConstraint("amount_minor > 0", name="ck_donations_amount_positive"),
        CheckConstraint("status IN ('pending', 'completed', 'failed')", name="ck_donations_status"),
        Index("ix_donations_user_created", "user_id", "created_at"),
        Index("ix_donations_fund_status", "fund_id", "status"),
    )

    # ---- Identity ----
    id: Mapped[str] = mapped_column(db.String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(db.String(64), nullable=False, index=True)
    fund_id: Mapped[str] = mapped_column(
        db.ForeignKey("funds.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    fund = relationship("Fund", lazy="joined")

    # ---- Money (minor units) ----
    amount_minor: Mapped[int] = mapped_column(db.BigInteger, nullable=False, doc="Amount in minor units")
    currency: Mapped[str] = mapped_column(db.String(3), nullable=False, default="XAF")

    # ---- Lifecycle ----
    status: Mapped[str] = mapped_column(db.String(16), nullable=False, default=DonationStatus.PENDING, index=True)
    provider: Mapped[str] = mapped_column(db.String(32), nullable=False, default="notchpay")
    payment_method: Mapped[str] = mapped_column(db.String(32), nullable=False, default=PaymentMethod.MOBILE_MONEY)
    transaction_id: Mapped[Optional[str]] = mapped_column(
        db.String(255), unique=True, nullable=True, doc="Gateway reference used for reconciliation"
    )
    payment_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    donated_at: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)

    # ---- Donor ----
    donor_email: Mapped[Optional[str]] = mapped_column(db.String(160), nullable=True)
    donor_phone: Mapped[Optional[str]] = mapped_column(db.String(32), nullable=True)
    is_anonymous: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    is_recurring: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)

    @property
    def is_final(self) -> bool:
        return self.status in DonationStatus.TERMINAL

    def as_dict(self, *, public: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "fundId": self.fund_id,
            "amount": money.as_json_number(self.amount_minor, self.currency),
            "amountMinor": int(self.amount_minor),
            "currency": self.currency,
            "status": self.status,
            "isAnonymous": bool(self.is_anonymous),
            "isRecurring": bool(self.is_recurring),
            "donatedAt": self.donated_at.isoformat() if self.donated_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
        if public:
            out["userId"] = None if self.is_anonymous else self.user_id
            return out

        out.update(
            {
                "userId": self.user_id,
                "provider": self.provider,
                "paymentMethod": self.payment_method,
                "transactionId": self.transaction_id,
                "paymentMetadata": self.payment_metadata or {},
                "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            }
        )
        return out

    def __repr__(self) -> str:
        return f"<Donation {self.id} {self.amount_minor} {self.currency} {self.status}>"
