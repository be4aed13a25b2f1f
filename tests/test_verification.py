from datetime import timedelta

import pytest

from giving.errors import DonationNotFound, GatewayError, NoTransaction
from giving.extensions import db
from giving.models import Donation, DonationStatus, Fund
from giving.models.mixins import utcnow


def test_completed_donation_skips_the_gateway(services, gateway, make_fund, make_pending):
    donation_id, _ = make_pending(make_fund(), status=DonationStatus.COMPLETED)

    d = services.verification.verify_payment(donation_id)

    assert d.status == DonationStatus.COMPLETED
    assert gateway.lookups == []


def test_pending_donation_completed_by_poll(services, gateway, make_fund, make_pending, fresh):
    fund_id = make_fund()
    donation_id, ref = make_pending(fund_id, 10_000)
    gateway.set_status(ref, "complete", amount=10_000)

    d = services.verification.verify_payment(donation_id)

    assert gateway.lookups == [ref]
    assert d.status == DonationStatus.COMPLETED
    assert d.payment_metadata["status"] == "complete"
    assert fresh(Fund, fund_id).current_amount_minor == 10_000


def test_gateway_still_pending_leaves_donation_pending(services, gateway, make_fund, make_pending):
    donation_id, ref = make_pending(make_fund())

    d = services.verification.verify_payment(donation_id)

    assert gateway.lookups == [ref]
    assert d.status == DonationStatus.PENDING


def test_failed_donation_is_not_revived(services, gateway, make_fund, make_pending, fresh):
    fund_id = make_fund()
    donation_id, ref = make_pending(fund_id, status=DonationStatus.FAILED)
    gateway.set_status(ref, "complete")

    d = services.verification.verify_payment(donation_id)

    assert d.status == DonationStatus.FAILED
    assert fresh(Fund, fund_id).current_amount_minor == 0


def test_missing_donation_and_transaction(services, make_fund):
    with pytest.raises(DonationNotFound):
        services.verification.verify_payment("nope")

    d = Donation(fund_id=make_fund(), user_id="u", amount_minor=1000, currency="XAF", status="pending")
    db.session.add(d)
    db.session.commit()
    with pytest.raises(NoTransaction):
        services.verification.verify_payment(d.id)


def test_gateway_error_propagates_without_changes(services, gateway, make_fund, make_pending, fresh):
    donation_id, ref = make_pending(make_fund())
    gateway.statuses[ref] = GatewayError("NotchPay unreachable: Timeout")

    with pytest.raises(GatewayError):
        services.verification.verify_payment(donation_id)

    assert fresh(Donation, donation_id).status == DonationStatus.PENDING


def _age(donation_id, minutes):
    db.session.execute(
        Donation.__table__.update()
        .where(Donation.id == donation_id)
        .values(created_at=utcnow() - timedelta(minutes=minutes))
    )
    db.session.commit()


def test_sweep_verifies_only_stale_pending(services, gateway, make_fund, make_pending, fresh):
    fund_id = make_fund()
    stale_ok, ref_ok = make_pending(fund_id, 1_000)
    stale_bad, ref_bad = make_pending(fund_id, 2_000)
    stale_err, ref_err = make_pending(fund_id, 3_000)
    recent, _ = make_pending(fund_id, 4_000)
    for donation_id in (stale_ok, stale_bad, stale_err):
        _age(donation_id, 90)

    gateway.set_status(ref_ok, "complete")
    gateway.set_status(ref_bad, "expired")
    gateway.statuses[ref_err] = GatewayError("NotchPay returned HTTP 503", http_status=503)

    report = services.verification.sweep_pending(older_than_minutes=30)

    assert report.checked == 3
    assert report.results == {"completed": 1, "failed": 1}
    assert report.errors == [stale_err]
    assert fresh(Donation, recent).status == DonationStatus.PENDING
    assert fresh(Fund, fund_id).current_amount_minor == 1_000
