# Overview: Flask CLI command groups for bootstrap, scheduled ledger jobs and catalog maintenance.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to backoffice (PowerShell: $env:FLASK_APP="backoffice").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (use `flask db upgrade` for managed schemas).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Scheduled ledger jobs (run once per day from cron or a task scheduler):
# - python -m flask ledger accrue-late-charges [--as-of 2024-03-01]
#   Recompute interest and penalty on every overdue open entry.
# - python -m flask ledger roll-recurrences [--as-of 2024-03-01]
#   Generate the next installment of settled recurring entries.
#
# Catalog maintenance:
# - python -m flask catalog rebuild-paths
#   Recompute the cached path and level of every category.
# - python -m flask catalog low-stock
#   List products at or below their minimum stock.

import click
from flask.cli import with_appcontext

from .errors import EngineError
from .extensions import db
from .services import catalog_service, finance_service
from .time_utils import parse_iso_date, today


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


def _as_of(value):
    if value is None:
        return today()
    try:
        return parse_iso_date(value)
    except EngineError:
        raise click.BadParameter(f"expected YYYY-MM-DD, got {value!r}", param_hint="--as-of")


@click.group('ledger')
def ledger_group():
    """Scheduled jobs for receivables and payables."""


@ledger_group.command('accrue-late-charges')
@click.option('--as-of', 'as_of', default=None, help='Reference date (YYYY-MM-DD), defaults to today')
@with_appcontext
def accrue_late_charges(as_of):
    """
    Recompute late charges on every overdue entry.

    Charges are recomputed from scratch, so running this more than once for
    the same date is harmless.
    """
    as_of = _as_of(as_of)
    entries = finance_service.overdue_entries(as_of)
    failures = 0

    for entry in entries:
        try:
            charges = finance_service.accrue_late_charges(entry.id, as_of)
        except EngineError as e:
            failures += 1
            click.echo(f"FAIL entry {entry.id}: {e}", err=True)
            continue
        click.echo(
            f"  {entry.kind:<10} {entry.document_number:<20} {charges.days_late:>4}d "
            f"interest={charges.interest} penalty={charges.penalty}"
        )

    click.echo(f"PASS {len(entries) - failures} of {len(entries)} overdue entries accrued as of {as_of.isoformat()}")
    if failures:
        raise SystemExit(1)


@ledger_group.command('roll-recurrences')
@click.option('--as-of', 'as_of', default=None, help='Reference date (YYYY-MM-DD), defaults to today')
@with_appcontext
def roll_recurrences(as_of):
    """Generate the next installment of settled recurring entries."""
    as_of = _as_of(as_of)
    entries = finance_service.entries_due_for_rollover(as_of)

    for entry in entries:
        clone = finance_service.generate_next_recurrence(entry.id)
        click.echo(f"  {entry.document_number:<20} {entry.due_date.isoformat()} -> {clone.due_date.isoformat()}")

    click.echo(f"PASS {len(entries)} recurring entries rolled over")


@click.group('catalog')
def catalog_group():
    """Catalog maintenance commands."""


@catalog_group.command('rebuild-paths')
@with_appcontext
def rebuild_paths():
    """Recompute the cached path and level of every category."""
    count = catalog_service.rebuild_paths()
    click.echo(f"PASS {count} categories refreshed")


@catalog_group.command('low-stock')
@with_appcontext
def low_stock():
    """List products at or below their minimum stock."""
    products = catalog_service.low_stock_products()
    if not products:
        click.echo("No products below minimum stock.")
        return

    click.echo(f"{'Code':<20} {'Current':>12} {'Minimum':>12}  Description")
    click.echo("-" * 72)
    for product in products:
        click.echo(f"{product.code:<20} {product.stock_current:>12} {product.stock_min:>12}  {product.description}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(catalog_group)
