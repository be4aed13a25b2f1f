"""Donation record store.

All status changes go through ``transition``: a conditional
``UPDATE ... WHERE status = 'pending'`` whose rowcount says whether this caller
won. ``transition`` never commits; the caller decides what else belongs in the
same transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select, update as sa_update

from giving.extensions import tx_commit
from giving.models import Donation, DonationStatus
from giving.models.mixins import utcnow

log = logging.getLogger(__name__)


class DonationStore:
    def __init__(self, session) -> None:
        self.session = session

    # ---------------- Reads ----------------
    def get(self, donation_id: str) -> Optional[Donation]:
        if not donation_id:
            return None
        return self.session.get(Donation, str(donation_id))

    def get_by_reference(self, reference: str) -> Optional[Donation]:
        if not reference:
            return None
        return self.session.execute(
            select(Donation).where(Donation.transaction_id == str(reference))
        ).scalar_one_or_none()

    def refresh(self, donation: Donation) -> Donation:
        self.session.refresh(donation)
        return donation

    # ---------------- Writes ----------------
    def create_pending(
        self,
        *,
        fund_id: str,
        user_id: str,
        amount_minor: int,
        currency: str,
        payment_method: str,
        donor_email: Optional[str] = None,
        donor_phone: Optional[str] = None,
        is_anonymous: bool = False,
        is_recurring: bool = False,
    ) -> Donation:
        d = Donation(
            fund_id=fund_id,
            user_id=user_id,
            amount_minor=int(amount_minor),
            currency=currency,
            status=DonationStatus.PENDING,
            provider="notchpay",
            payment_method=payment_method,
            donor_email=donor_email,
            donor_phone=donor_phone,
            is_anonymous=bool(is_anonymous),
            is_recurring=bool(is_recurring),
        )
        self.session.add(d)
        tx_commit(self.session)
        log.info("Donation %s created (pending) for fund %s", d.id, fund_id)
        return d

    def attach_payment(self, donation_id: str, transaction_id: str, metadata: Dict[str, Any]) -> None:
        self.session.execute(
            sa_update(Donation)
            .where(Donation.id == donation_id)
            .values(transaction_id=transaction_id, payment_metadata=metadata, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        tx_commit(self.session)

    def transition(
        self,
        donation_id: str,
        to_status: str,
        *,
        metadata: Optional[Dict[str, Any]] = None,
        donated_at: Optional[datetime] = None,
    ) -> bool:
        """Move a pending donation to ``to_status``. False when it was no longer pending."""
        if to_status not in DonationStatus.TERMINAL:
            raise ValueError(f"invalid target status: {to_status}")

        vals: Dict[str, Any] = {"status": to_status, "updated_at": utcnow()}
        if metadata is not None:
            vals["payment_metadata"] = metadata
        if donated_at is not None:
            vals["donated_at"] = donated_at

        res = self.session.execute(
            sa_update(Donation)
            .where(Donation.id == donation_id, Donation.status == DonationStatus.PENDING)
            .values(**vals)
            .execution_options(synchronize_session=False)
        )
        return bool(getattr(res, "rowcount", 0) == 1)

    def mark_failed(self, donation_id: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
        won = self.transition(donation_id, DonationStatus.FAILED, metadata=metadata)
        if won:
            tx_commit(self.session)
        else:
            self.session.rollback()
        return won

    # ---------------- Queries ----------------
    def completed_totals_for_user(self, user_id: str) -> Tuple[int, int]:
        """(count, total minor units) of the user's completed donations."""
        row = self.session.execute(
            select(func.count(Donation.id), func.coalesce(func.sum(Donation.amount_minor), 0)).where(
                Donation.user_id == user_id, Donation.status == DonationStatus.COMPLETED
            )
        ).one()
        return int(row[0] or 0), int(row[1] or 0)

    def history(self, user_id: str, *, page: int = 1, limit: int = 10) -> Tuple[List[Donation], int]:
        q = select(Donation).where(Donation.user_id == user_id)
        total = self.session.execute(
            select(func.count()).select_from(q.subquery())
        ).scalar_one()
        items = (
            self.session.execute(
                q.order_by(Donation.created_at.desc()).offset((page - 1) * limit).limit(limit)
            )
            .scalars()
            .all()
        )
        return list(items), int(total or 0)

    def completed_for_fund(self, fund_id: str, *, limit: int = 50) -> List[Donation]:
        return list(
            self.session.execute(
                select(Donation)
                .where(Donation.fund_id == fund_id, Donation.status == DonationStatus.COMPLETED)
                .order_by(Donation.donated_at.desc())
                .limit(limit)
            )
            .scalars()
            .all()
        )

    def statistics(self, fund_id: Optional[str] = None) -> Dict[str, Any]:
        scope = []
        if fund_id:
            scope.append(Donation.fund_id == fund_id)

        total = self.session.execute(select(func.count(Donation.id)).where(*scope)).scalar_one()
        completed_count, completed_sum = self.session.execute(
            select(func.count(Donation.id), func.coalesce(func.sum(Donation.amount_minor), 0)).where(
                Donation.status == DonationStatus.COMPLETED, *scope
            )
        ).one()
        recent = (
            self.session.execute(
                select(Donation)
                .where(Donation.status == DonationStatus.COMPLETED, *scope)
                .order_by(Donation.donated_at.desc())
                .limit(10)
            )
            .scalars()
            .all()
        )
        completed_count = int(completed_count or 0)
        completed_sum = int(completed_sum or 0)
        return {
            "totalDonations": int(total or 0),
            "completedDonations": completed_count,
            "totalAmountMinor": completed_sum,
            "averageAmountMinor": (completed_sum // completed_count) if completed_count else 0,
            "recent": list(recent),
        }

    def stale_pending_ids(self, older_than: datetime, *, limit: int = 100) -> List[str]:
        rows = self.session.execute(
            select(Donation.id)
            .where(
                Donation.status == DonationStatus.PENDING,
                Donation.transaction_id.isnot(None),
                Donation.created_at < older_than,
            )
            .order_by(Donation.created_at.asc())
            .limit(limit)
        ).scalars()
        return [str(r) for r in rows]
