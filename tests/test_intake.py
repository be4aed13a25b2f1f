import pytest
import requests

from giving.errors import FundNotAcceptingDonations, FundNotFound, GatewayError, ValidationError
from giving.extensions import db
from giving.models import Beneficiary, Donation, DonationStatus, FundStatus
from giving.services.intake import DonationIntake, DonationRequest
from giving.services.notchpay import NotchPayClient, PaymentInit


def _request(fund_id, **kw):
    data = {"fundId": fund_id, "amount": 10_000, "donorId": "user-1"}
    data.update(kw)
    return DonationRequest.from_payload(data)


def test_creates_pending_donation_with_payment_url(services, gateway, make_fund):
    fund_id = make_fund(title_en="Building fund")

    result = services.intake.create_donation(_request(fund_id, email="Donor@Example.org"))

    d = result.donation
    assert d.status == DonationStatus.PENDING
    assert d.amount_minor == 10_000
    assert d.currency == "XAF"
    assert d.donor_email == "donor@example.org"
    assert d.transaction_id == f"trx.{d.id[:8]}"
    assert result.payment_url == f"https://pay.notchpay.test/{d.transaction_id}"
    assert d.payment_metadata["authorization_url"] == result.payment_url

    sent = gateway.created[0]
    assert sent.reference == d.id
    assert sent.amount_minor == 10_000
    assert sent.description == "Donation to Building fund"
    assert sent.beneficiary_id is None


def test_active_beneficiary_is_forwarded(services, gateway, make_fund):
    db.session.add(Beneficiary(name="IFA Yaoundé", notchpay_id="ben_ifa", is_active=True))
    db.session.commit()
    fund_id = make_fund()

    result = services.intake.create_donation(_request(fund_id))

    assert gateway.created[0].beneficiary_id == "ben_ifa"
    assert result.donation.payment_metadata["beneficiaryName"] == "IFA Yaoundé"


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"donorId": None}, "donorId"),
        ({"amount": None}, "amount is required"),
        ({"amount": "ten"}, "number"),
        ({"amount": -50}, "positive"),
        ({"amount": 50}, "Minimum donation"),
        ({"currency": "EUR"}, "does not match"),
        ({"email": "not-an-email"}, "email"),
        ({"paymentMethod": "cheque"}, "paymentMethod"),
    ],
)
def test_validation_errors_create_nothing(services, gateway, make_fund, overrides, message):
    fund_id = make_fund()

    with pytest.raises(ValidationError, match=message):
        services.intake.create_donation(_request(fund_id, **overrides))

    assert db.session.query(Donation).count() == 0
    assert gateway.created == []


def test_unknown_and_closed_funds(services, make_fund):
    with pytest.raises(FundNotFound):
        services.intake.create_donation(_request("no-such-fund"))

    closed = make_fund(status=FundStatus.CLOSED)
    with pytest.raises(FundNotAcceptingDonations):
        services.intake.create_donation(_request(closed))


def test_gateway_error_marks_donation_failed(services, gateway, make_fund):
    gateway.next_init = GatewayError("NotchPay returned HTTP 503", http_status=503)
    fund_id = make_fund()

    with pytest.raises(GatewayError) as exc:
        services.intake.create_donation(_request(fund_id))

    d = db.session.query(Donation).one()
    assert exc.value.extra["donationId"] == d.id
    assert d.status == DonationStatus.FAILED
    assert d.payment_metadata["failureReason"] == "NotchPay returned HTTP 503"


def test_missing_authorization_url_marks_donation_failed(services, gateway, make_fund):
    gateway.next_init = PaymentInit(url=None, reference="trx.1", raw={"status": "Accepted"})
    fund_id = make_fund()

    with pytest.raises(GatewayError, match="payment URL"):
        services.intake.create_donation(_request(fund_id))

    d = db.session.query(Donation).one()
    assert d.status == DonationStatus.FAILED
    assert d.payment_metadata["failureReason"] == "missing_authorization_url"
    assert d.transaction_id is None


def test_missing_reference_falls_back_to_donation_id(services, gateway, make_fund):
    gateway.next_init = PaymentInit(url="https://pay/abc", reference=None, raw={})
    fund_id = make_fund()

    result = services.intake.create_donation(_request(fund_id))

    assert result.donation.transaction_id == result.donation.id


def test_payload_accepts_snake_case_and_header_donor():
    req = DonationRequest.from_payload(
        {"fund_id": "f1", "amount": "500", "is_anonymous": "true", "payment_method": "CARD"}, donor_id="hdr-user"
    )
    assert req.fund_id == "f1"
    assert req.donor_id == "hdr-user"
    assert req.anonymous is True
    assert req.recurring is False
    assert req.payment_method == "card"


class _BrokenSession:
    def __init__(self, exc):
        self.exc = exc
        self.calls = 0

    def request(self, method, url, **kwargs):
        self.calls += 1
        raise self.exc


def test_any_request_failure_marks_donation_failed(services, make_fund):
    session = _BrokenSession(requests.TooManyRedirects("Exceeded 30 redirects."))
    client = NotchPayClient(
        public_key="pk_test", private_key="sk_test", api_url="https://notchpay.test", max_retries=0, session=session
    )
    intake = DonationIntake(services.store, services.ledger, client, callback_url="https://app.ifa.church/cb")

    with pytest.raises(GatewayError) as exc:
        intake.create_donation(_request(make_fund()))

    d = db.session.query(Donation).one()
    assert session.calls == 1
    assert exc.value.extra["donationId"] == d.id
    assert d.status == DonationStatus.FAILED
    assert d.payment_metadata["failureReason"] == "NotchPay request failed: TooManyRedirects"


def test_reused_gateway_reference_marks_second_donation_failed(services, gateway, make_fund):
    gateway.next_init = PaymentInit(url="https://pay.notchpay.test/trx.same", reference="trx.same", raw={})
    fund_id = make_fund()

    first = services.intake.create_donation(_request(fund_id))
    with pytest.raises(GatewayError) as exc:
        services.intake.create_donation(_request(fund_id, donorId="user-2"))

    db.session.expire_all()
    second = db.session.get(Donation, exc.value.extra["donationId"])
    assert db.session.get(Donation, first.donation.id).status == DonationStatus.PENDING
    assert second.status == DonationStatus.FAILED
    assert second.transaction_id is None
    assert second.payment_metadata["failureReason"] == "attach_failed"
    assert second.payment_metadata["reference"] == "trx.same"
