# Overview: Flask CLI command groups for bootstrap, inspection, and ledger maintenance.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create all tables (idempotent). Use `flask db upgrade` for migrated databases.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stores:
# - python -m flask stores list [--all]
# - python -m flask stores create --name "T Nagar" --address "12 Usman Rd" [--phone "044..."]
#
# Ledger:
# - python -m flask ledger reconcile [--saree-id 7]
#   Compare cached counters with the movement log; exits 1 on discrepancies.
# - python -m flask ledger movements --saree-id 7 [--store-id 2] [--limit 50]
#   Shows the newest --limit movements in chronological order.

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .services import ledger_service, reconciliation_service, store_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create every ledger table that does not exist yet."""
    click.echo("START Initializing saree ledger schema...")
    db.create_all()
    click.echo("PASS Schema ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the stock movement history!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('stores')
def stores_group():
    """Store management commands."""


@stores_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include deactivated stores')
@with_appcontext
def list_stores_cli(include_inactive):
    """List stores."""
    stores = store_service.list_stores(include_inactive=include_inactive)

    if not stores:
        click.echo("No stores found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Phone':<18} {'Active'}")
    click.echo("="*80)

    for store in stores:
        active_str = "Yes" if store.is_active else "No"
        click.echo(f"{store.id:<5} {store.name:<30} {store.phone or '-':<18} {active_str}")

    click.echo("="*80 + "\n")


@stores_group.command('create')
@click.option('--name', required=True, help='Store name')
@click.option('--address', required=True, help='Street address')
@click.option('--phone', default=None, help='Contact number')
@with_appcontext
def create_store_cli(name, address, phone):
    """Create a store."""
    payload = {"name": name, "address": address}
    if phone:
        payload["phone"] = phone
    try:
        store = store_service.create_store(payload)
    except LedgerError as exc:
        raise click.ClickException(exc.message)
    click.echo(f"PASS Created store: {store.name} (ID: {store.id})")


@click.group('ledger')
def ledger_group():
    """Stock ledger inspection and reconciliation."""


@ledger_group.command('reconcile')
@click.option('--saree-id', type=int, default=None, help='Check a single saree')
@with_appcontext
def reconcile_cli(saree_id):
    """Recompute counters from the movement log and report mismatches."""
    try:
        report = reconciliation_service.reconcile(saree_id)
    except LedgerError as exc:
        raise click.ClickException(exc.message)

    for issue in report["discrepancies"]:
        details = ", ".join(f"{k}={v}" for k, v in issue.items() if k not in ("saree_id", "check"))
        click.echo(f"FAIL saree {issue['saree_id']} {issue['check']}: {details}")

    if not report["ok"]:
        click.echo(f"FAIL {len(report['discrepancies'])} discrepancies across {report['checked']} sarees")
        raise SystemExit(1)
    click.echo(f"PASS {report['checked']} sarees reconciled")


@ledger_group.command('movements')
@click.option('--saree-id', type=int, required=True, help='Saree ID')
@click.option('--store-id', type=int, default=None, help='Restrict to one store')
@click.option('--limit', type=int, default=50, help='Newest rows to show')
@with_appcontext
def movements_cli(saree_id, store_id, limit):
    """Print the most recent movements of a saree, oldest first."""
    movements = ledger_service.list_movements(saree_id=saree_id, store_id=store_id, limit=limit)

    if not movements:
        click.echo("No movements found.")
        return

    click.echo(f"{'ID':<6} {'When':<21} {'Type':<11} {'Source':<10} {'Qty':>6}  {'Store':<6} Ref")
    for m in movements:
        when = m.created_at.strftime("%Y-%m-%d %H:%M:%S") if m.created_at else "-"
        click.echo(
            f"{m.id:<6} {when:<21} {m.movement_type:<11} {m.source:<10} {m.quantity:>6}  "
            f"{m.store_id or '-':<6} {m.order_ref_id}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(ledger_group)
