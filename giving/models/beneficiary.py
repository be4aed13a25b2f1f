from __future__ import annotations

from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from giving.extensions import db

from .mixins import TimestampMixin, new_id


class Beneficiary(db.Model, TimestampMixin):
    """NotchPay payout recipient donations are routed to."""

    __tablename__ = "beneficiaries"

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(sa.String(160), nullable=False)
    notchpay_id: Mapped[str] = mapped_column(sa.String(120), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False, index=True)

    @classmethod
    def active(cls) -> Optional["Beneficiary"]:
        return (
            db.session.query(cls)
            .filter(cls.is_active.is_(True))
            .order_by(cls.updated_at.desc())
            .first()
        )

    def __repr__(self) -> str:
        return f"<Beneficiary {self.name} {self.notchpay_id} active={self.is_active}>"
