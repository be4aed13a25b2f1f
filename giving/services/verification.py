"""Poll-based fallback when a webhook never arrives."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List

from giving.errors import DonationNotFound, GivingError, NoTransaction
from giving.models import Donation, DonationStatus
from giving.models.mixins import utcnow
from giving.services.notchpay import NotchPayClient
from giving.services.reconciliation import ReconciliationEngine
from giving.services.store import DonationStore

log = logging.getLogger(__name__)


@dataclass
class SweepReport:
    checked: int = 0
    results: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)


class ManualVerification:
    def __init__(self, store: DonationStore, gateway: NotchPayClient, engine: ReconciliationEngine) -> None:
        self.store = store
        self.gateway = gateway
        self.engine = engine

    def verify_payment(self, donation_id: str) -> Donation:
        donation = self.store.get(donation_id)
        if donation is None:
            raise DonationNotFound()
        if not donation.transaction_id:
            raise NoTransaction()
        if donation.status == DonationStatus.COMPLETED:
            return donation

        reference = donation.transaction_id
        status = self.gateway.get_transaction(reference)
        result = self.engine.reconcile(reference, status.outcome, status.metadata)
        log.info(
            "Verified donation %s: gateway=%s outcome=%s result=%s",
            donation_id, status.raw_status or "?", status.outcome, result,
        )

        donation = self.store.get(donation_id)
        if donation is None:
            raise DonationNotFound()
        return self.store.refresh(donation)

    def sweep_pending(self, *, older_than_minutes: int = 30, limit: int = 100) -> SweepReport:
        """Verify pending donations older than the cutoff. Operator tool; never fails donations on its own."""
        cutoff = utcnow() - timedelta(minutes=max(0, int(older_than_minutes)))
        report = SweepReport()
        for donation_id in self.store.stale_pending_ids(cutoff, limit=limit):
            report.checked += 1
            try:
                donation = self.verify_payment(donation_id)
            except GivingError as e:
                log.warning("Sweep: verification failed for donation %s: %s", donation_id, e.message)
                report.errors.append(donation_id)
                continue
            report.results[donation.status] = report.results.get(donation.status, 0) + 1
        return report
