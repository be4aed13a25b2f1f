"""Fund ledger.

``increment`` is one UPDATE statement: the new balance and the campaign
completion flip are both computed by the database from the row being
updated, so concurrent completions cannot lose an increment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, case, select, update as sa_update

from giving.errors import FundNotAcceptingDonations, FundNotFound, LedgerError
from giving.extensions import tx_commit
from giving.models import Fund, FundStatus, FundType
from giving.models.mixins import utcnow

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerUpdate:
    fund_id: str
    current_amount_minor: int
    target_amount_minor: Optional[int]
    status: str
    goal_reached: bool


class FundLedger:
    def __init__(self, session) -> None:
        self.session = session

    def get_fund(self, fund_id: str) -> Optional[Fund]:
        if not fund_id:
            return None
        return self.session.get(Fund, str(fund_id))

    def get_active_fund(self, fund_id: str) -> Fund:
        fund = self.get_fund(fund_id)
        if fund is None:
            raise FundNotFound()
        if not fund.is_active:
            raise FundNotAcceptingDonations()
        return fund

    def increment(self, fund_id: str, amount_minor: int) -> LedgerUpdate:
        """Add ``amount_minor`` to the fund; does not commit."""
        amount_minor = int(amount_minor)
        if amount_minor <= 0:
            raise LedgerError(f"refusing non-positive increment {amount_minor} for fund {fund_id}")

        new_total = Fund.current_amount_minor + amount_minor
        reaches_target = and_(
            Fund.type == FundType.CAMPAIGN,
            Fund.status == FundStatus.ACTIVE,
            Fund.target_amount_minor.isnot(None),
            new_total >= Fund.target_amount_minor,
        )
        res = self.session.execute(
            sa_update(Fund)
            .where(Fund.id == fund_id)
            .values(
                current_amount_minor=new_total,
                status=case((reaches_target, FundStatus.COMPLETED), else_=Fund.status),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if getattr(res, "rowcount", 0) != 1:
            raise LedgerError(f"Fund {fund_id} not found")

        row = self.session.execute(
            select(Fund.type, Fund.status, Fund.current_amount_minor, Fund.target_amount_minor).where(
                Fund.id == fund_id
            )
        ).one()
        current = int(row.current_amount_minor)
        target = int(row.target_amount_minor) if row.target_amount_minor is not None else None
        goal_reached = bool(
            row.type == FundType.CAMPAIGN
            and row.status == FundStatus.COMPLETED
            and target is not None
            and current - amount_minor < target <= current
        )
        return LedgerUpdate(
            fund_id=str(fund_id),
            current_amount_minor=current,
            target_amount_minor=target,
            status=row.status,
            goal_reached=goal_reached,
        )

    def close_expired_campaigns(self, now: Optional[datetime] = None) -> int:
        """Close active campaigns whose end date has passed. Commits."""
        now = now or utcnow()
        res = self.session.execute(
            sa_update(Fund)
            .where(
                Fund.type == FundType.CAMPAIGN,
                Fund.status == FundStatus.ACTIVE,
                Fund.end_date.isnot(None),
                Fund.end_date < now,
            )
            .values(status=FundStatus.CLOSED, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        tx_commit(self.session)
        closed = int(getattr(res, "rowcount", 0) or 0)
        if closed:
            log.info("Closed %s expired campaign(s)", closed)
        return closed
