import threading

import pytest

from giving.errors import LedgerError
from giving.extensions import db
from giving.models import Donation, DonationStatus, Fund, FundStatus, FundType, Notification
from giving.services import get_services
from giving.services.notchpay import Outcome
from giving.services.reconciliation import ReconcileResult, ReconciliationEngine, merge_metadata


def test_complete_moves_donation_and_fund_together(services, make_fund, make_pending, fresh):
    fund_id = make_fund(current_amount_minor=1_000)
    donation_id, ref = make_pending(fund_id, 10_000)

    result = services.engine.reconcile(ref, Outcome.COMPLETE, {"status": "complete", "amount": 10000})

    assert result == ReconcileResult.COMPLETED
    d = fresh(Donation, donation_id)
    assert d.status == DonationStatus.COMPLETED
    assert d.donated_at is not None
    assert d.payment_metadata["status"] == "complete"
    assert d.payment_metadata["authorization_url"].endswith(ref)
    assert "completedAt" in d.payment_metadata
    assert fresh(Fund, fund_id).current_amount_minor == 11_000


def test_campaign_goal_reached_on_completion(services, make_fund, make_pending, fresh):
    fund_id = make_fund(type=FundType.CAMPAIGN, target_amount_minor=100_000, current_amount_minor=95_000)
    _, ref = make_pending(fund_id, 10_000)

    assert services.engine.reconcile(ref, Outcome.COMPLETE, {}) == ReconcileResult.COMPLETED

    fund = fresh(Fund, fund_id)
    assert fund.current_amount_minor == 105_000
    assert fund.status == FundStatus.COMPLETED


def test_failed_outcome_leaves_fund_untouched(services, make_fund, make_pending, fresh):
    fund_id = make_fund(current_amount_minor=1_000)
    donation_id, ref = make_pending(fund_id)

    assert services.engine.reconcile(ref, Outcome.FAILED, {"status": "failed"}) == ReconcileResult.FAILED

    d = fresh(Donation, donation_id)
    assert d.status == DonationStatus.FAILED
    assert d.donated_at is None
    assert "failedAt" in d.payment_metadata
    assert fresh(Fund, fund_id).current_amount_minor == 1_000


def test_pending_outcome_is_ignored(services, make_fund, make_pending, fresh):
    fund_id = make_fund()
    donation_id, ref = make_pending(fund_id)

    assert services.engine.reconcile(ref, Outcome.PENDING, {}) == ReconcileResult.IGNORED
    assert fresh(Donation, donation_id).status == DonationStatus.PENDING


def test_unknown_reference(services):
    assert services.engine.reconcile("trx.unknown", Outcome.COMPLETE, {}) == ReconcileResult.UNKNOWN_REFERENCE


def test_terminal_states_are_final(services, make_fund, make_pending, fresh):
    fund_id = make_fund()
    completed_id, completed_ref = make_pending(fund_id, 10_000)
    failed_id, failed_ref = make_pending(fund_id, 5_000)

    services.engine.reconcile(completed_ref, Outcome.COMPLETE, {})
    services.engine.reconcile(failed_ref, Outcome.FAILED, {})

    assert services.engine.reconcile(completed_ref, Outcome.FAILED, {}) == ReconcileResult.ALREADY_FINAL
    assert services.engine.reconcile(completed_ref, Outcome.COMPLETE, {}) == ReconcileResult.ALREADY_FINAL
    assert services.engine.reconcile(failed_ref, Outcome.COMPLETE, {}) == ReconcileResult.ALREADY_FINAL

    assert fresh(Donation, completed_id).status == DonationStatus.COMPLETED
    assert fresh(Donation, failed_id).status == DonationStatus.FAILED
    assert fresh(Fund, fund_id).current_amount_minor == 10_000


def test_concurrent_completions_credit_the_fund_once(app, make_fund, make_pending, fresh):
    fund_id = make_fund(current_amount_minor=0)
    donation_id, ref = make_pending(fund_id, 10_000)

    workers = 6
    barrier = threading.Barrier(workers)
    results, errors = [], []

    def deliver():
        with app.app_context():
            try:
                barrier.wait()
                results.append(get_services().engine.reconcile(ref, Outcome.COMPLETE, {"status": "complete"}))
            except Exception as e:  # surfaced by the assertions below
                errors.append(e)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=deliver) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert errors == []
    assert results.count(ReconcileResult.COMPLETED) == 1
    assert set(results) <= {ReconcileResult.COMPLETED, ReconcileResult.LOST_RACE, ReconcileResult.ALREADY_FINAL}
    assert fresh(Donation, donation_id).status == DonationStatus.COMPLETED
    assert fresh(Fund, fund_id).current_amount_minor == 10_000


def test_ledger_failure_keeps_donation_pending(services, make_fund, make_pending, fresh):
    fund_id = make_fund()
    donation_id, ref = make_pending(fund_id)
    db.session.execute(Donation.__table__.update().where(Donation.id == donation_id).values(fund_id="gone"))
    db.session.commit()

    with pytest.raises(LedgerError):
        services.engine.reconcile(ref, Outcome.COMPLETE, {})

    assert fresh(Donation, donation_id).status == DonationStatus.PENDING


def test_completion_creates_notification(services, make_fund, make_pending):
    fund_id = make_fund(type=FundType.TITHE)
    donation_id, ref = make_pending(fund_id, 10_000, user_id="user-42")

    services.engine.reconcile(ref, Outcome.COMPLETE, {})

    n = db.session.query(Notification).filter_by(user_id="user-42").one()
    assert n.trigger == "donation_first"
    assert n.data["donationId"] == donation_id
    assert n.data["deepLink"] == f"/donations/{donation_id}"


class ExplodingNotifier:
    def __init__(self):
        self.calls = 0

    def notify_donation_confirmed(self, **kwargs):
        self.calls += 1
        raise RuntimeError("push service down")


def test_notifier_failure_does_not_undo_completion(services, make_fund, make_pending, fresh):
    notifier = ExplodingNotifier()
    engine = ReconciliationEngine(services.store, services.ledger, notifier, session=db.session)
    fund_id = make_fund()
    donation_id, ref = make_pending(fund_id, 10_000)

    assert engine.reconcile(ref, Outcome.COMPLETE, {}) == ReconcileResult.COMPLETED

    assert notifier.calls == 1
    assert fresh(Donation, donation_id).status == DonationStatus.COMPLETED
    assert fresh(Fund, fund_id).current_amount_minor == 10_000


def test_merge_metadata_layers_stamps_last():
    merged = merge_metadata({"reference": "r", "status": "pending"}, {"status": "complete"}, completedAt="t")
    assert merged == {"reference": "r", "status": "complete", "completedAt": "t"}
    assert merge_metadata(None, None) == {}
