# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/shoeledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to the package (PowerShell: $env:FLASK_APP="shoeledger").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent; never drops data).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Exchange rate:
# - python -m flask rates set 1500
#   Record a new current rate.
# - python -m flask rates current
#   Show the current rate.
#
# Inspection:
# - python -m flask stock low [--threshold 5]
#   List variants strictly below the threshold (default LOW_STOCK_THRESHOLD).
# - python -m flask suppliers balance 3
#   Show a supplier's recomputed balance.
# - python -m flask expenses summary [--month]
#   Totals for today (or the current month) by category.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import EngineError
from .extensions import db
from .services import exchange_rate_service, expense_service, inventory_service, payment_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create tables that do not exist yet."""
    db.create_all()
    click.echo("OK  Tables ready")


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

    click.echo("OK  Database reset complete")


@click.group('rates')
def rates_group():
    """Exchange rate commands."""


@rates_group.command('set')
@click.argument('rate')
@with_appcontext
def set_rate(rate):
    """Record RATE as the current foreign-to-local exchange rate."""
    try:
        record = exchange_rate_service.set_rate(rate)
    except EngineError as e:
        raise click.ClickException(str(e))
    click.echo(f"OK  Rate {record.to_dict()['rate']} recorded at {record.to_dict()['recorded_at']}")


@rates_group.command('current')
@with_appcontext
def current_rate():
    try:
        record = exchange_rate_service.current_rate_record()
    except EngineError as e:
        raise click.ClickException(str(e))
    data = record.to_dict()
    click.echo(f"{data['rate']} (since {data['recorded_at']})")


@click.group('stock')
def stock_group():
    """Stock inspection commands."""


@stock_group.command('low')
@click.option('--threshold', type=int, default=None, help='Defaults to LOW_STOCK_THRESHOLD')
@with_appcontext
def low_stock(threshold):
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    try:
        entries = inventory_service.list_below(threshold)
    except EngineError as e:
        raise click.ClickException(str(e))

    if not entries:
        click.echo(f"No variants below {threshold}")
        return
    for entry in entries:
        click.echo(f"{entry.shoe.sku:<20} {entry.shoe.name:<30} size {entry.size:<6} qty {entry.quantity}")


@click.group('suppliers')
def suppliers_group():
    """Supplier inspection commands."""


@suppliers_group.command('balance')
@click.argument('supplier_id', type=int)
@with_appcontext
def supplier_balance(supplier_id):
    try:
        balance = payment_service.get_supplier_balance(supplier_id)
    except EngineError as e:
        raise click.ClickException(str(e))

    click.echo(f"Total credit:  {balance.total_credit}")
    click.echo(f"Total paid:    {balance.total_paid}")
    click.echo(f"Outstanding:   {balance.outstanding_balance}")
    if balance.is_overpaid:
        click.echo("WARN Supplier is overpaid (credit in the store's favor)")


@click.group('expenses')
def expenses_group():
    """Expense inspection commands."""


@expenses_group.command('summary')
@click.option('--month', is_flag=True, help='Current month instead of today')
@with_appcontext
def expenses_summary(month):
    stats = expense_service.get_month_expense_stats() if month else expense_service.get_today_expense_stats()

    click.echo(f"Expenses:  {stats['count']}")
    click.echo(f"Total:     {stats['total_expenses']}")
    for category, amount in sorted(stats["by_category"].items()):
        click.echo(f"  {category:<12} {amount}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(rates_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(suppliers_group)
    app.cli.add_command(expenses_group)
