from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

import pytest

from giving import create_app
from giving.config import TestingConfig
from giving.extensions import db
from giving.models import Donation, DonationStatus, Fund, FundStatus, FundType
from giving.services import get_services
from giving.services.notchpay import NotchPayClient, PaymentInit, PaymentRequest, TransactionStatus, map_status

WEBHOOK_SECRET = TestingConfig.NOTCHPAY_WEBHOOK_SECRET


class FakeGateway(NotchPayClient):
    """NotchPay client with canned payment/transaction responses; signatures stay real."""

    def __init__(self, webhook_secret: str = WEBHOOK_SECRET) -> None:
        super().__init__(
            public_key="pk_test_giving",
            private_key="sk_test_giving",
            webhook_secret=webhook_secret,
            api_url="https://notchpay.test",
        )
        self.created: List[PaymentRequest] = []
        self.lookups: List[str] = []
        self.next_init: Union[PaymentInit, Exception, None] = None
        self.statuses: Dict[str, Union[TransactionStatus, Exception]] = {}

    def create_payment(self, req: PaymentRequest) -> PaymentInit:
        self.created.append(req)
        if isinstance(self.next_init, Exception):
            raise self.next_init
        if self.next_init is not None:
            return self.next_init
        ref = f"trx.{req.reference[:8]}"
        return PaymentInit(
            url=f"https://pay.notchpay.test/{ref}",
            reference=ref,
            raw={"status": "Accepted", "transaction": {"reference": ref}, "authorization_url": f"https://pay.notchpay.test/{ref}"},
        )

    def get_transaction(self, reference: str) -> TransactionStatus:
        self.lookups.append(reference)
        st = self.statuses.get(reference)
        if isinstance(st, Exception):
            raise st
        return st or TransactionStatus(reference=reference, outcome="pending", raw_status="pending")

    def set_status(self, reference: str, raw_status: str, **extra: Any) -> None:
        self.statuses[reference] = TransactionStatus(
            reference=reference,
            outcome=map_status(raw_status),
            raw_status=raw_status,
            metadata={"reference": reference, "status": raw_status, **extra},
        )


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def config_class(tmp_path):
    # File-backed SQLite so worker threads get their own connections.
    class _Config(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'giving.db'}"

    return _Config


@pytest.fixture
def app(config_class, gateway):
    app = create_app(config_class, gateway=gateway)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    return get_services()


@pytest.fixture
def make_fund(app):
    def _make(**kw: Any) -> str:
        fields: Dict[str, Any] = {
            "title_fr": "Offrandes",
            "title_en": "Offerings",
            "type": FundType.OFFERING,
            "currency": "XAF",
            "status": FundStatus.ACTIVE,
            "current_amount_minor": 0,
        }
        fields.update(kw)
        fund = Fund(**fields)
        db.session.add(fund)
        db.session.commit()
        return fund.id

    return _make


@pytest.fixture
def make_pending(app):
    def _make(
        fund_id: str,
        amount_minor: int = 10_000,
        *,
        user_id: str = "user-1",
        reference: Optional[str] = None,
        email: Optional[str] = None,
        status: str = DonationStatus.PENDING,
    ):
        reference = reference or f"trx.{uuid4().hex[:12]}"
        d = Donation(
            fund_id=fund_id,
            user_id=user_id,
            amount_minor=amount_minor,
            currency="XAF",
            status=status,
            transaction_id=reference,
            donor_email=email,
            payment_metadata={"reference": reference, "authorization_url": f"https://pay.notchpay.test/{reference}"},
        )
        db.session.add(d)
        db.session.commit()
        return d.id, reference

    return _make


@pytest.fixture
def send_webhook(client):
    def _send(
        event: str,
        reference: Optional[str],
        *,
        data: Optional[Dict[str, Any]] = None,
        secret: str = WEBHOOK_SECRET,
        signature: Optional[str] = None,
        raw: Optional[bytes] = None,
    ):
        if raw is None:
            payload = {"event": event, "data": dict(data or {})}
            if reference is not None:
                payload["data"].setdefault("reference", reference)
            raw = json.dumps(payload).encode("utf-8")
        headers = {}
        sig = signature if signature is not None else (sign(raw, secret) if secret else None)
        if sig:
            headers["X-Notchpay-Signature"] = sig
        return client.post(
            "/donations/webhook/notchpay", data=raw, headers=headers, content_type="application/json"
        )

    return _send


def reload(model, pk):
    db.session.expire_all()
    return db.session.get(model, pk)


@pytest.fixture
def fresh():
    return reload
