# Overview: Flask CLI command groups for billing setup and outbox maintenance.

# backend/oms/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to oms (PowerShell: $env:FLASK_APP="oms").
# - Use: python -m flask <group> <command> [options]
#
# Billing:
# - python -m flask billing init --merchant-id 1 --state-code 27 [--prefix "INV-"] [--gstin ...] [--legal-name ...]
#   Create or update a merchant's billing profile (required before any invoice is issued).
# - python -m flask billing show --merchant-id 1
#   Print the billing profile and the next invoice number.
#
# Outbox (post-commit work such as return restocks):
# - python -m flask outbox list [--status FAILED] [--limit 50]
#   List recent outbox events.
# - python -m flask outbox dispatch [--limit 100]
#   Re-run PENDING and FAILED events and stale PROCESSING claims (crash recovery).

import click
from flask import current_app
from flask.cli import with_appcontext

from .cache import get_view_cache
from .extensions import db
from .models import Merchant, MerchantBillingProfile
from .notifications import get_notification_bus
from .services import outbox_service


@click.group('billing')
def billing_group():
    """Merchant billing profile commands."""


@billing_group.command('init')
@click.option('--merchant-id', type=int, required=True, help='Merchant ID')
@click.option('--state-code', default=None, help='Merchant GST state code')
@click.option('--prefix', default=None, help='Invoice prefix (default: DEFAULT_INVOICE_PREFIX)')
@click.option('--gstin', default=None, help='GSTIN')
@click.option('--legal-name', default=None, help='Legal name printed on invoices')
@click.option('--start-number', type=int, default=None, help='Next invoice number (new profiles default to 1)')
@with_appcontext
def init_billing(merchant_id, state_code, prefix, gstin, legal_name, start_number):
    """
    Create or update a merchant's billing profile.

    Idempotent: options left out keep their current values. --start-number
    only moves the counter forward, never backwards, so issued numbers are
    never reused.
    """
    merchant = db.session.get(Merchant, merchant_id)
    if not merchant:
        raise click.ClickException(f"Merchant {merchant_id} not found")

    profile = db.session.query(MerchantBillingProfile).filter_by(merchant_id=merchant_id).first()
    created = profile is None
    if created:
        profile = MerchantBillingProfile(merchant_id=merchant_id, next_invoice_number=1)
        db.session.add(profile)

    if state_code is not None:
        profile.state_code = state_code.strip()
    if prefix is not None:
        profile.invoice_prefix = prefix
    elif profile.invoice_prefix is None:
        profile.invoice_prefix = current_app.config.get("DEFAULT_INVOICE_PREFIX", "INV-")
    if gstin is not None:
        profile.gstin = gstin.strip().upper()
    if legal_name is not None:
        profile.legal_name = legal_name

    if start_number is not None:
        if start_number < (profile.next_invoice_number or 1):
            raise click.ClickException(
                f"--start-number {start_number} is below the current counter ({profile.next_invoice_number})"
            )
        profile.next_invoice_number = start_number

    db.session.commit()
    verb = "Created" if created else "Updated"
    click.echo(
        f"PASS {verb} billing profile for merchant {merchant.name} (ID: {merchant.id}): "
        f"prefix={profile.invoice_prefix!r} state={profile.state_code!r} "
        f"next_invoice_number={profile.next_invoice_number}"
    )


@billing_group.command('show')
@click.option('--merchant-id', type=int, required=True, help='Merchant ID')
@with_appcontext
def show_billing(merchant_id):
    """Print a merchant's billing profile."""
    profile = db.session.query(MerchantBillingProfile).filter_by(merchant_id=merchant_id).first()
    if not profile:
        raise click.ClickException(f"Merchant {merchant_id} has no billing profile")
    for key, value in profile.to_dict().items():
        click.echo(f"{key:20} {value}")


@click.group('outbox')
def outbox_group():
    """Post-commit outbox commands."""


@outbox_group.command('list')
@click.option('--status', type=click.Choice(['PENDING', 'PROCESSING', 'DONE', 'FAILED']), default=None)
@click.option('--limit', type=int, default=50, show_default=True)
@with_appcontext
def list_outbox(status, limit):
    """List recent outbox events."""
    events = outbox_service.list_events(status=status, limit=limit)
    if not events:
        click.echo("No outbox events.")
        return
    for event in events:
        click.echo(
            f"{event.id:6} {event.event_type:16} {event.status:8} attempts={event.attempts} "
            f"created={event.created_at} error={event.last_error or '-'}"
        )


@outbox_group.command('dispatch')
@click.option('--limit', type=int, default=100, show_default=True)
@with_appcontext
def dispatch_outbox(limit):
    """Re-run PENDING and FAILED outbox events."""
    outcome = outbox_service.dispatch_pending(
        bus=get_notification_bus(),
        cache=get_view_cache(),
        limit=limit,
    )
    click.echo(
        f"Dispatched: {len(outcome.done)} done, {len(outcome.failed)} failed, "
        f"{len(outcome.skipped)} claimed elsewhere"
    )
    for event_id, error in sorted(outcome.failed.items()):
        click.echo(f"FAIL event {event_id}: {error}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(billing_group)
    app.cli.add_command(outbox_group)
