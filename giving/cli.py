# giving/cli.py
# =============================================================================
# Operator commands (run through `flask`):
#   flask donations reconcile-pending   poll NotchPay for stale pending donations
#   flask funds close-expired           close campaigns past their end date
#   flask funds create                  add a fund (local setup)
# =============================================================================

from __future__ import annotations

from datetime import datetime
from typing import Optional

import click
from flask import current_app
from flask.cli import AppGroup
from sqlalchemy.exc import SQLAlchemyError

from giving import money
from giving.errors import ValidationError
from giving.extensions import db, tx_commit
from giving.models import Fund, FundStatus, FundType
from giving.models.mixins import utcnow
from giving.services import get_services

donations_cli = AppGroup("donations", help="Donation lifecycle maintenance.")
funds_cli = AppGroup("funds", help="Fund management.")


@donations_cli.command("reconcile-pending")
@click.option("--older-than", "older_than", default=30, show_default=True, help="Minutes a donation must have been pending.")
@click.option("--limit", default=100, show_default=True, help="Maximum donations to verify in one run.")
def reconcile_pending_cmd(older_than: int, limit: int) -> None:
    """Verify stale pending donations against NotchPay."""
    report = get_services().verification.sweep_pending(older_than_minutes=older_than, limit=limit)

    click.secho(f"Checked {report.checked} pending donation(s)", fg="green")
    for status, count in sorted(report.results.items()):
        click.echo(f"  ↳ {status}: {count}")
    if report.errors:
        click.secho(f"  ↳ {len(report.errors)} could not be verified: {', '.join(report.errors)}", fg="yellow")


@funds_cli.command("close-expired")
def close_expired_cmd() -> None:
    """Close active campaigns whose end date has passed."""
    closed = get_services().ledger.close_expired_campaigns()
    click.secho(f"Closed {closed} expired campaign(s)", fg="green")


@funds_cli.command("create")
@click.option("--title-fr", required=True)
@click.option("--title-en", required=True)
@click.option("--type", "fund_type", type=click.Choice(FundType.ALL), default=FundType.OFFERING, show_default=True)
@click.option("--currency", default=None, help="ISO code (defaults to DEFAULT_CURRENCY).")
@click.option("--target", type=str, default=None, help="Campaign target in major units.")
@click.option("--end-date", type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
def create_fund_cmd(
    title_fr: str,
    title_en: str,
    fund_type: str,
    currency: Optional[str],
    target: Optional[str],
    end_date: Optional[datetime],
) -> None:
    """Create a fund and print its id."""
    cur = money.normalize_currency(currency or current_app.config.get("DEFAULT_CURRENCY"), "XAF")
    try:
        target_minor = money.to_minor(target, cur) if target is not None else None
    except ValidationError as e:
        raise click.BadParameter(e.message, param_hint="--target") from e

    fund = Fund(
        title_fr=title_fr,
        title_en=title_en,
        type=fund_type,
        currency=cur,
        target_amount_minor=target_minor,
        status=FundStatus.ACTIVE,
        start_date=utcnow(),
        end_date=end_date,
    )
    try:
        db.session.add(fund)
        tx_commit()
    except SQLAlchemyError as e:
        click.secho(f"Fund creation failed: {e}", fg="red", bold=True)
        raise SystemExit(1) from e

    click.secho(f"Created fund {fund.id} ({fund.type}, {fund.currency})", fg="green")
