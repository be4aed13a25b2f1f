"""Donor notifications for confirmed donations.

Picks a trigger (first gift, milestone, fund type, large gift), renders the
bilingual template, stores an in-app ``Notification`` and optionally queues a
receipt email on the background executor.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from giving import money
from giving.errors import NotificationError
from giving.extensions import send_email_async, tx_commit
from giving.models import FundType, Notification

log = logging.getLogger(__name__)

MILESTONES = (5, 10, 25, 50, 100)
DEFAULT_FIRST_NAME = "Frère/Sœur"


class Trigger:
    FIRST = "donation_first"
    MILESTONE = "donation_milestone"
    TITHE = "donation_tithe"
    OFFERING = "donation_offering"
    CAMPAIGN = "donation_campaign"
    CONFIRMED = "donation_confirmed"
    LARGE_AMOUNT = "donation_large_amount"


_TEMPLATES: Dict[str, Dict[str, str]] = {
    Trigger.FIRST: {
        "title_fr": "Merci pour votre premier don !",
        "title_en": "Thank you for your first gift!",
        "body_fr": "{firstName}, votre premier don de {amount} pour {fundName} a bien été reçu. Que Dieu vous bénisse !",
        "body_en": "{firstName}, your first gift of {amount} to {fundName} has been received. God bless you!",
    },
    Trigger.MILESTONE: {
        "title_fr": "{donationCount} dons, merci !",
        "title_en": "{donationCount} gifts, thank you!",
        "body_fr": "{firstName}, vous venez de faire votre {donationCount}e don ({amount} pour {fundName}). Total donné : {totalAmount}.",
        "body_en": "{firstName}, you just made gift number {donationCount} ({amount} to {fundName}). Total given: {totalAmount}.",
    },
    Trigger.TITHE: {
        "title_fr": "Dîme reçue",
        "title_en": "Tithe received",
        "body_fr": "{firstName}, votre dîme de {amount} a bien été reçue. Merci pour votre fidélité.",
        "body_en": "{firstName}, your tithe of {amount} has been received. Thank you for your faithfulness.",
    },
    Trigger.OFFERING: {
        "title_fr": "Offrande reçue",
        "title_en": "Offering received",
        "body_fr": "{firstName}, votre offrande de {amount} pour {fundName} a bien été reçue. Merci !",
        "body_en": "{firstName}, your offering of {amount} to {fundName} has been received. Thank you!",
    },
    Trigger.CAMPAIGN: {
        "title_fr": "Merci de soutenir {fundName}",
        "title_en": "Thank you for supporting {fundName}",
        "body_fr": "{firstName}, votre don de {amount} pour la campagne {fundName} a bien été reçu.",
        "body_en": "{firstName}, your gift of {amount} to the {fundName} campaign has been received.",
    },
    Trigger.CONFIRMED: {
        "title_fr": "Don confirmé",
        "title_en": "Donation confirmed",
        "body_fr": "{firstName}, votre don de {amount} pour {fundName} a été confirmé.",
        "body_en": "{firstName}, your gift of {amount} to {fundName} has been confirmed.",
    },
    Trigger.LARGE_AMOUNT: {
        "title_fr": "Un immense merci",
        "title_en": "Our heartfelt thanks",
        "body_fr": "{firstName}, votre don généreux de {amount} pour {fundName} a bien été reçu. Que Dieu vous le rende !",
        "body_en": "{firstName}, your generous gift of {amount} to {fundName} has been received. May God repay you!",
    },
}

_RECEIPT_TEXT = (
    "{firstName},\n\n"
    "We received your gift of {amount} to {fundName}.\n"
    "Reference: {donationId}\n\n"
    "Thank you for your generosity.\n"
    "IFA Church\n"
)


def select_trigger(*, donation_count: int, fund_type: Optional[str], amount_major: Any, large_amount: int) -> str:
    if donation_count == 1:
        trigger = Trigger.FIRST
    elif donation_count in MILESTONES:
        trigger = Trigger.MILESTONE
    elif fund_type == FundType.TITHE:
        trigger = Trigger.TITHE
    elif fund_type == FundType.OFFERING:
        trigger = Trigger.OFFERING
    elif fund_type == FundType.CAMPAIGN:
        trigger = Trigger.CAMPAIGN
    else:
        trigger = Trigger.CONFIRMED

    if large_amount and amount_major >= large_amount:
        trigger = Trigger.LARGE_AMOUNT
    return trigger


def render(trigger: str, variables: Dict[str, Any]) -> Dict[str, str]:
    tpl = _TEMPLATES.get(trigger) or _TEMPLATES[Trigger.CONFIRMED]
    return {key: text.format(**variables) for key, text in tpl.items()}


class NotificationDispatcher:
    def __init__(
        self,
        session,
        *,
        large_amount: int = 50_000,
        receipts_enabled: bool = False,
        mailer: Callable[..., Any] = send_email_async,
    ) -> None:
        self.session = session
        self.large_amount = int(large_amount or 0)
        self.receipts_enabled = bool(receipts_enabled)
        self.mailer = mailer

    def notify_donation_confirmed(
        self,
        *,
        user_id: str,
        donation_id: str,
        amount_minor: int,
        currency: str,
        fund_name: str,
        fund_type: Optional[str],
        donation_count: int,
        total_minor: int,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
    ) -> Notification:
        trigger = select_trigger(
            donation_count=donation_count,
            fund_type=fund_type,
            amount_major=money.to_major(amount_minor, currency),
            large_amount=self.large_amount,
        )
        variables = {
            "firstName": first_name or DEFAULT_FIRST_NAME,
            "amount": money.format_amount(amount_minor, currency),
            "currency": currency,
            "fundName": fund_name,
            "donationCount": donation_count,
            "totalAmount": money.format_amount(total_minor, currency),
            "donationId": donation_id,
        }

        try:
            texts = render(trigger, variables)
        except (KeyError, IndexError, ValueError) as e:
            raise NotificationError(f"template {trigger} failed to render: {e}") from e

        n = Notification(
            user_id=user_id,
            type="donation",
            trigger=trigger,
            data={"donationId": donation_id, "deepLink": f"/donations/{donation_id}"},
            **texts,
        )
        try:
            self.session.add(n)
            tx_commit(self.session)
        except SQLAlchemyError as e:
            raise NotificationError(f"could not store notification for donation {donation_id}") from e

        log.info("Notification %s queued for user %s (donation %s)", trigger, user_id, donation_id)

        if self.receipts_enabled and email:
            self._send_receipt(email, variables)
        return n

    def _send_receipt(self, email: str, variables: Dict[str, Any]) -> None:
        app = current_app._get_current_object()
        self.mailer(
            app,
            f"Donation receipt: {variables['amount']}",
            [email],
            text_template=_RECEIPT_TEXT,
            context=variables,
        )
