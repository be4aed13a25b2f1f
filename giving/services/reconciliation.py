"""Reconciliation engine.

Both webhook deliveries and manual verification funnel into ``reconcile``.
A donation leaves ``pending`` at most once: the status change is a
compare-and-swap, and the fund increment rides in the same transaction as a
winning completion. Late, duplicate or concurrent calls are no-ops.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import OperationalError

from giving.errors import LedgerError
from giving.extensions import tx_commit, with_db_retry
from giving.models import Donation, DonationStatus
from giving.models.mixins import utcnow
from giving.services.ledger import FundLedger
from giving.services.notchpay import Outcome
from giving.services.store import DonationStore

log = logging.getLogger(__name__)


class ReconcileResult:
    UNKNOWN_REFERENCE = "unknown_reference"
    ALREADY_FINAL = "already_final"
    IGNORED = "ignored"
    COMPLETED = "completed"
    FAILED = "failed"
    LOST_RACE = "lost_race"


def merge_metadata(stored: Optional[Dict[str, Any]], incoming: Optional[Dict[str, Any]], **stamps: Any) -> Dict[str, Any]:
    merged: Dict[str, Any] = dict(stored or {})
    merged.update(incoming or {})
    merged.update(stamps)
    return merged


class ReconciliationEngine:
    def __init__(self, store: DonationStore, ledger: FundLedger, notifier=None, *, session) -> None:
        self.store = store
        self.ledger = ledger
        self.notifier = notifier
        self.session = session

    def reconcile(self, reference: str, outcome: str, metadata: Optional[Dict[str, Any]] = None) -> str:
        donation = self.store.get_by_reference(reference)
        if donation is None:
            log.warning("Reconcile: no donation for reference %s (outcome=%s)", reference, outcome)
            return ReconcileResult.UNKNOWN_REFERENCE

        if donation.is_final:
            log.info(
                "Reconcile: donation %s already %s, ignoring %s for %s",
                donation.id, donation.status, outcome, reference,
            )
            return ReconcileResult.ALREADY_FINAL

        if outcome == Outcome.COMPLETE:
            return self._complete(donation.id, metadata)
        if outcome == Outcome.FAILED:
            return self._fail(donation.id, metadata)

        log.debug("Reconcile: donation %s still %s at gateway", donation.id, outcome)
        return ReconcileResult.IGNORED

    @with_db_retry(retries=2, backoff=0.1, retry_on=(OperationalError,))
    def _complete(self, donation_id: str, metadata: Optional[Dict[str, Any]]) -> str:
        donation = self.store.get(donation_id)
        if donation is None or donation.is_final:
            self.session.rollback()
            return ReconcileResult.LOST_RACE

        fund_id, amount_minor = donation.fund_id, donation.amount_minor
        now = utcnow()
        merged = merge_metadata(donation.payment_metadata, metadata, completedAt=now.isoformat())

        if not self.store.transition(donation_id, DonationStatus.COMPLETED, metadata=merged, donated_at=now):
            self.session.rollback()
            log.info("Reconcile: donation %s was finalized concurrently, skipping", donation_id)
            return ReconcileResult.LOST_RACE

        try:
            update = self.ledger.increment(fund_id, amount_minor)
        except LedgerError:
            self.session.rollback()
            log.error("Reconcile: ledger update failed for donation %s, left pending", donation_id)
            raise
        tx_commit(self.session)

        log.info(
            "Donation %s completed: fund %s now at %s",
            donation_id, fund_id, update.current_amount_minor,
        )
        if update.goal_reached:
            log.info("Campaign %s reached its target (%s)", fund_id, update.target_amount_minor)

        self._notify(donation_id)
        return ReconcileResult.COMPLETED

    @with_db_retry(retries=2, backoff=0.1, retry_on=(OperationalError,))
    def _fail(self, donation_id: str, metadata: Optional[Dict[str, Any]]) -> str:
        donation = self.store.get(donation_id)
        if donation is None or donation.is_final:
            self.session.rollback()
            return ReconcileResult.LOST_RACE

        merged = merge_metadata(donation.payment_metadata, metadata, failedAt=utcnow().isoformat())
        if not self.store.transition(donation_id, DonationStatus.FAILED, metadata=merged):
            self.session.rollback()
            log.info("Reconcile: donation %s was finalized concurrently, skipping", donation_id)
            return ReconcileResult.LOST_RACE

        tx_commit(self.session)
        log.info("Donation %s marked failed", donation_id)
        return ReconcileResult.FAILED

    def _notify(self, donation_id: str) -> None:
        if self.notifier is None:
            return
        try:
            donation: Optional[Donation] = self.store.get(donation_id)
            if donation is None:
                return
            count, total = self.store.completed_totals_for_user(donation.user_id)
            fund = donation.fund
            self.notifier.notify_donation_confirmed(
                user_id=donation.user_id,
                donation_id=donation.id,
                amount_minor=donation.amount_minor,
                currency=donation.currency,
                fund_name=fund.title if fund is not None else "",
                fund_type=fund.type if fund is not None else None,
                donation_count=count,
                total_minor=total,
                email=donation.donor_email,
            )
        except Exception:
            # Completion is already committed; a notification failure must not surface.
            self.session.rollback()
            log.exception("Confirmation notification failed for donation %s", donation_id)
