# Overview: Flask CLI command groups for bootstrap and ledger maintenance.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to shopledger (PowerShell: $env:FLASK_APP="shopledger").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent).
#
# Ledger maintenance (all take --tenant, default DEFAULT_TENANT):
# - python -m flask ledger reconcile [--product-id ID] [--fix]
#   Compare cached currentStock with the replayed stock movements.
# - python -m flask ledger recover
#   Repair stock and old-battery aggregates named by unfinished intents.
# - python -m flask ledger rebuild-old-batteries
#   Recompute every old-battery aggregate from collection/consumption facts.
#
# Invoices:
# - python -m flask invoices next --series sale
#   Print the next invoice number of a series.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .services import maintenance_service
from .services.document_service import next_invoice_number
from .services.document_store import DocumentStore


def _store(tenant: str | None) -> DocumentStore:
    return DocumentStore.for_tenant(tenant or current_app.config.get("DEFAULT_TENANT"))


tenant_option = click.option("--tenant", default=None, help="Tenant id (default: DEFAULT_TENANT)")


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables."""
    db.create_all()
    click.echo("PASS Database tables created")


@click.group('ledger')
def ledger_group():
    """Stock ledger and old-battery maintenance."""


@ledger_group.command('reconcile')
@tenant_option
@click.option('--product-id', default=None, help='Only check this product')
@click.option('--fix', is_flag=True, help='Rewrite cached stock to the replayed value')
@with_appcontext
def reconcile(tenant, product_id, fix):
    """Report products whose cached stock differs from their movements."""
    try:
        reports = maintenance_service.reconcile(_store(tenant), product_id, fix=fix)
    except LedgerError as e:
        raise click.ClickException(e.message)

    if not reports:
        click.echo("PASS No stock drift found")
        return
    for report in reports:
        click.echo(
            f"DRIFT {report['productId']}: cached={report['cached']} "
            f"replayed={report['replayed']} drift={report['drift']}"
        )
    if fix:
        click.echo(f"PASS Fixed {len(reports)} product(s)")
    else:
        click.echo("Run again with --fix to rewrite the cached stock")


@ledger_group.command('recover')
@tenant_option
@with_appcontext
def recover(tenant):
    """Recover lifecycle operations that did not finish."""
    recovered = maintenance_service.recover_intents(_store(tenant))
    if not recovered:
        click.echo("PASS No unfinished operations")
        return
    for item in recovered:
        click.echo(
            f"RECOVERED {item['intentId']} ({item['operation']}): "
            f"{len(item['stockCorrections'])} stock correction(s)"
        )


@ledger_group.command('rebuild-old-batteries')
@tenant_option
@with_appcontext
def rebuild_old_batteries(tenant):
    """Recompute old-battery aggregates from their facts."""
    rebuilt = maintenance_service.rebuild_old_batteries(_store(tenant))
    for aggregate in rebuilt:
        click.echo(
            f"{aggregate['name']}: quantity={aggregate['totalQuantity']} "
            f"weight={aggregate['totalWeight']} rate={aggregate['blendedRatePerKg']}"
        )
    click.echo(f"PASS Rebuilt {len(rebuilt)} aggregate(s)")


@click.group('invoices')
def invoices_group():
    """Invoice numbering."""


@invoices_group.command('next')
@tenant_option
@click.option('--series', default='sale', help='sale | purchase | old_battery')
@with_appcontext
def next_invoice(tenant, series):
    """Print the next invoice number of a series."""
    try:
        invoice_number = next_invoice_number(_store(tenant), series)
        db.session.commit()
    except LedgerError as e:
        raise click.ClickException(e.message)
    click.echo(invoice_number)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(invoices_group)
