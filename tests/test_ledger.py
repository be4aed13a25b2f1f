from datetime import timedelta

import pytest

from giving.errors import FundNotAcceptingDonations, FundNotFound, LedgerError
from giving.extensions import db
from giving.models import Fund, FundStatus, FundType
from giving.models.mixins import utcnow


def test_increment_adds_amount(services, make_fund, fresh):
    fund_id = make_fund(current_amount_minor=2_000)

    update = services.ledger.increment(fund_id, 500)
    db.session.commit()

    assert update.current_amount_minor == 2_500
    assert update.goal_reached is False
    assert fresh(Fund, fund_id).current_amount_minor == 2_500


def test_campaign_completes_when_target_crossed(services, make_fund, fresh):
    fund_id = make_fund(
        type=FundType.CAMPAIGN, target_amount_minor=100_000, current_amount_minor=95_000, title_en="New roof"
    )

    update = services.ledger.increment(fund_id, 10_000)
    db.session.commit()

    assert update.current_amount_minor == 105_000
    assert update.status == FundStatus.COMPLETED
    assert update.goal_reached is True
    fund = fresh(Fund, fund_id)
    assert fund.status == FundStatus.COMPLETED
    assert fund.progress_percentage == 100


def test_increment_on_completed_campaign_keeps_status(services, make_fund):
    fund_id = make_fund(
        type=FundType.CAMPAIGN,
        target_amount_minor=100_000,
        current_amount_minor=120_000,
        status=FundStatus.COMPLETED,
    )

    update = services.ledger.increment(fund_id, 1_000)
    db.session.commit()

    assert update.current_amount_minor == 121_000
    assert update.status == FundStatus.COMPLETED
    assert update.goal_reached is False


@pytest.mark.parametrize("fund_type", [FundType.TITHE, FundType.OFFERING])
def test_non_campaign_funds_never_complete(services, make_fund, fund_type):
    fund_id = make_fund(type=fund_type, target_amount_minor=1_000)

    update = services.ledger.increment(fund_id, 5_000)
    db.session.commit()

    assert update.status == FundStatus.ACTIVE
    assert update.goal_reached is False


def test_increment_rejects_bad_input(services, make_fund):
    fund_id = make_fund()
    with pytest.raises(LedgerError):
        services.ledger.increment(fund_id, 0)
    with pytest.raises(LedgerError, match="not found"):
        services.ledger.increment("missing-fund", 100)
    db.session.rollback()


def test_active_fund_lookup(services, make_fund):
    with pytest.raises(FundNotFound):
        services.ledger.get_active_fund("nope")

    closed = make_fund(status=FundStatus.CLOSED)
    with pytest.raises(FundNotAcceptingDonations):
        services.ledger.get_active_fund(closed)

    active = make_fund()
    assert services.ledger.get_active_fund(active).id == active


def test_close_expired_campaigns(services, make_fund, fresh):
    now = utcnow()
    expired = make_fund(type=FundType.CAMPAIGN, target_amount_minor=50_000, end_date=now - timedelta(days=1))
    running = make_fund(type=FundType.CAMPAIGN, target_amount_minor=50_000, end_date=now + timedelta(days=1))
    offering = make_fund(end_date=now - timedelta(days=1))

    assert services.ledger.close_expired_campaigns(now) == 1

    assert fresh(Fund, expired).status == FundStatus.CLOSED
    assert fresh(Fund, running).status == FundStatus.ACTIVE
    assert fresh(Fund, offering).status == FundStatus.ACTIVE
