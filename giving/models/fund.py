from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from giving import money
from giving.extensions import db

from .mixins import TimestampMixin, new_id


class FundType:
    TITHE = "tithe"
    OFFERING = "offering"
    CAMPAIGN = "campaign"

    ALL = (TITHE, OFFERING, CAMPAIGN)


class FundStatus:
    ACTIVE = "active"
    COMPLETED = "completed"
    CLOSED = "closed"

    ALL = (ACTIVE, COMPLETED, CLOSED)


class Fund(db.Model, TimestampMixin):
    __tablename__ = "funds"
    __table_args__ = (
        sa.CheckConstraint("current_amount_minor >= 0", name="ck_funds_current_nonneg"),
        sa.CheckConstraint(
            "target_amount_minor IS NULL OR target_amount_minor > 0", name="ck_funds_target_positive"
        ),
        sa.Index("ix_funds_type_status", "type", "status"),
    )

    # ── Keys ────────────────────────────────────────────────────
    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=new_id)

    # ── Presentation ────────────────────────────────────────────
    title_fr: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    title_en: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    description_fr: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    description_en: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)

    type: Mapped[str] = mapped_column(sa.String(16), nullable=False, default=FundType.OFFERING)

    # ── Money (minor units) ─────────────────────────────────────
    target_amount_minor: Mapped[Optional[int]] = mapped_column(
        sa.BigInteger, nullable=True, doc="Campaign target in minor units (NULL = open-ended)"
    )
    current_amount_minor: Mapped[int] = mapped_column(
        sa.BigInteger, nullable=False, default=0, doc="Sum of completed donations in minor units"
    )
    currency: Mapped[str] = mapped_column(sa.String(3), nullable=False, default="XAF")

    # ── Status / window ─────────────────────────────────────────
    status: Mapped[str] = mapped_column(sa.String(16), nullable=False, default=FundStatus.ACTIVE, index=True)
    start_date: Mapped[Optional[datetime]] = mapped_column(sa.DateTime, nullable=True)
    end_date: Mapped[Optional[datetime]] = mapped_column(sa.DateTime, nullable=True)

    # ── Computed helpers ────────────────────────────────────────
    @property
    def title(self) -> str:
        return self.title_en or self.title_fr

    @property
    def is_active(self) -> bool:
        return self.status == FundStatus.ACTIVE

    @property
    def remaining_minor(self) -> Optional[int]:
        if not self.target_amount_minor:
            return None
        return max(0, int(self.target_amount_minor) - int(self.current_amount_minor or 0))

    @property
    def progress_percentage(self) -> float:
        t = int(self.target_amount_minor or 0)
        if t <= 0:
            return 0.0
        return min(100.0, round((int(self.current_amount_minor or 0) / t) * 100.0, 1))

    @property
    def is_goal_reached(self) -> bool:
        t = int(self.target_amount_minor or 0)
        return t > 0 and int(self.current_amount_minor or 0) >= t

    def as_dict(self) -> Dict[str, Any]:
        target = self.target_amount_minor
        return {
            "id": self.id,
            "titleFr": self.title_fr,
            "titleEn": self.title_en,
            "type": self.type,
            "status": self.status,
            "currency": self.currency,
            "targetAmount": money.as_json_number(target, self.currency) if target else None,
            "currentAmount": money.as_json_number(self.current_amount_minor or 0, self.currency),
            "remainingAmount": money.as_json_number(self.remaining_minor, self.currency) if self.remaining_minor is not None else None,
            "progressPercentage": self.progress_percentage,
            "goalReached": self.is_goal_reached,
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
        }

    def __repr__(self) -> str:
        return (
            f"<Fund {self.id} {self.type} {self.current_amount_minor}/{self.target_amount_minor} "
            f"{self.currency} {self.status}>"
        )
