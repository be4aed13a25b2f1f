"""Service wiring.

Components are plain objects built with explicit collaborators; the bundle
lives on ``app.extensions["giving"]``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from flask import Flask, current_app

from giving.extensions import db
from giving.services.intake import DonationIntake
from giving.services.ledger import FundLedger
from giving.services.notchpay import NotchPayClient
from giving.services.notifications import NotificationDispatcher
from giving.services.reconciliation import ReconciliationEngine
from giving.services.store import DonationStore
from giving.services.verification import ManualVerification
from giving.services.webhooks import WebhookHandler

EXTENSION_KEY = "giving"


@dataclass
class GivingServices:
    gateway: NotchPayClient
    store: DonationStore
    ledger: FundLedger
    notifier: Any
    engine: ReconciliationEngine
    intake: DonationIntake
    verification: ManualVerification
    webhooks: WebhookHandler


def build_services(app: Flask, *, gateway: Optional[NotchPayClient] = None, notifier: Any = None) -> GivingServices:
    cfg = app.config
    session = db.session

    gateway = gateway or NotchPayClient.from_config(cfg)
    store = DonationStore(session)
    ledger = FundLedger(session)
    if notifier is None:
        notifier = NotificationDispatcher(
            session,
            large_amount=cfg.get("LARGE_DONATION_AMOUNT", 50_000),
            receipts_enabled=cfg.get("DONATION_RECEIPTS_ENABLED", False),
        )
    engine = ReconciliationEngine(store, ledger, notifier, session=session)

    services = GivingServices(
        gateway=gateway,
        store=store,
        ledger=ledger,
        notifier=notifier,
        engine=engine,
        intake=DonationIntake(
            store,
            ledger,
            gateway,
            callback_url=cfg.get("DONATION_CALLBACK_URL") or "",
            min_amount=cfg.get("MIN_DONATION_AMOUNT", 100),
        ),
        verification=ManualVerification(store, gateway, engine),
        webhooks=WebhookHandler(gateway, engine, allow_unsigned=cfg.get("WEBHOOK_ALLOW_UNSIGNED", False)),
    )
    app.extensions[EXTENSION_KEY] = services
    return services


def get_services() -> GivingServices:
    return current_app.extensions[EXTENSION_KEY]


__all__ = ["GivingServices", "build_services", "get_services"]
