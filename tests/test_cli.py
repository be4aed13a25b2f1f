from datetime import timedelta

from giving.extensions import db
from giving.models import Donation, DonationStatus, Fund, FundStatus, FundType
from giving.models.mixins import utcnow


def test_create_fund_command(app, fresh):
    runner = app.test_cli_runner()

    result = runner.invoke(
        args=["funds", "create", "--title-fr", "Toiture", "--title-en", "Roof", "--type", "campaign", "--target", "250000"]
    )

    assert result.exit_code == 0, result.output
    fund = db.session.query(Fund).filter_by(title_en="Roof").one()
    assert fund.type == FundType.CAMPAIGN
    assert fund.currency == "XAF"
    assert fund.target_amount_minor == 250_000
    assert fund.id in result.output


def test_create_fund_rejects_bad_target(app):
    result = app.test_cli_runner().invoke(
        args=["funds", "create", "--title-fr", "X", "--title-en", "X", "--target", "12.5"]
    )
    assert result.exit_code != 0
    assert "decimal places" in result.output


def test_close_expired_command(app, make_fund, fresh):
    fund_id = make_fund(type=FundType.CAMPAIGN, target_amount_minor=10_000, end_date=utcnow() - timedelta(days=2))

    result = app.test_cli_runner().invoke(args=["funds", "close-expired"])

    assert result.exit_code == 0, result.output
    assert "Closed 1 expired campaign" in result.output
    assert fresh(Fund, fund_id).status == FundStatus.CLOSED


def test_reconcile_pending_command(app, gateway, make_fund, make_pending, fresh):
    fund_id = make_fund()
    donation_id, ref = make_pending(fund_id, 10_000)
    db.session.execute(
        Donation.__table__.update()
        .where(Donation.id == donation_id)
        .values(created_at=utcnow() - timedelta(hours=2))
    )
    db.session.commit()
    gateway.set_status(ref, "complete")

    result = app.test_cli_runner().invoke(args=["donations", "reconcile-pending", "--older-than", "30"])

    assert result.exit_code == 0, result.output
    assert "Checked 1 pending donation" in result.output
    assert "completed: 1" in result.output
    assert fresh(Donation, donation_id).status == DonationStatus.COMPLETED
    assert fresh(Fund, fund_id).current_amount_minor == 10_000

