# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/salesdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, default users (one per role) and a seller.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Units of measure:
# - python -m flask units list
# - python -m flask units toggle KG
#
# Sales:
# - python -m flask sales list [--status PENDING]
# - python -m flask sales cancel 42 [--manager-id 1]
#
# Reports:
# - python -m flask reports dashboard

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import SaleError
from .extensions import db
from .models import Seller, User, VALID_SALE_STATUSES, ROLE_MANAGER, ROLE_SALESPERSON, ROLE_CASHIER
from .money import format_money
from .services import people_service, reporting_service, sales_service
from .services.units_service import get_catalog


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--password', default='Password123!', show_default=True, help='Password for the default users')
@with_appcontext
def init_system(password):
    """
    Initialize the sales desk: schema, one user per role and a default seller.

    Creates:
    - Users: manager, salesperson, cashier (roles MANAGER, SALESPERSON, CASHIER)
    - Seller: "House" (responsible salesperson roster entry)

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing sales desk...")

    db.create_all()
    click.echo("PASS Schema ready")

    default_users = [
        ("Manager", "manager", ROLE_MANAGER),
        ("Salesperson", "salesperson", ROLE_SALESPERSON),
        ("Cashier", "cashier", ROLE_CASHIER),
    ]

    click.echo("\nUSERS Creating default users...")
    for name, username, role in default_users:
        existing = db.session.query(User).filter_by(username=username).first()
        if existing:
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            people_service.create_user(name=name, username=username, password=password, role=role)
            click.echo(f"PASS Created user: {username} with role '{role}'")
        except SaleError as e:
            click.echo(f"FAIL Failed to create user '{username}': {str(e)}")

    if not db.session.query(Seller).first():
        seller = people_service.create_seller("House")
        click.echo(f"PASS Created seller: {seller.name} (ID: {seller.id})")
    else:
        click.echo("WARN  Sellers already exist, skipping...")

    click.echo("\n" + "="*60)
    click.echo("DONE Sales desk initialized")
    click.echo("="*60)


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

    current_app.extensions["sales_board"].invalidate()
    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('units')
def units_group():
    """Unit-of-measure catalog."""


@units_group.command('list')
@with_appcontext
def list_units():
    """List units of measure and whether products may use them."""
    for unit in get_catalog().all():
        active_str = "Yes" if unit.active else "No"
        click.echo(f"{unit.code:<6} {unit.name:<12} {active_str}")


@units_group.command('toggle')
@click.argument('code')
@with_appcontext
def toggle_unit(code):
    """Switch a unit of measure on or off."""
    try:
        unit = get_catalog().toggle(code.upper())
    except SaleError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {unit.code} is now {'active' if unit.active else 'inactive'}")


@click.group('sales')
def sales_group():
    """Sale inspection and maintenance."""


@sales_group.command('list')
@click.option('--status', type=click.Choice(VALID_SALE_STATUSES), help='Filter by status')
@with_appcontext
def list_sales(status):
    """List sales in board order."""
    entries = current_app.extensions["sales_board"].entries(status)
    if not entries:
        click.echo("No sales found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<6} {'Status':<10} {'Client':<30} {'Salesperson':<20} {'Total':>12}")
    click.echo("="*90)
    for entry in entries:
        click.echo(
            f"{entry['id']:<6} {entry['status']:<10} {entry['client_name'][:30]:<30} "
            f"{entry['salesperson_name'][:20]:<20} {format_money(entry['total_value']):>12}"
        )
    click.echo("="*90 + "\n")


@sales_group.command('cancel')
@click.argument('sale_id', type=int)
@click.option('--manager-id', type=int, help='Manager authorizing the cancellation')
@with_appcontext
def cancel_sale(sale_id, manager_id):
    """Cancel a sale (restocks a completed one)."""
    try:
        sale = sales_service.cancel_sale(sale_id, manager_id=manager_id)
    except SaleError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Sale {sale.id} is {sale.status}")


@click.group('reports')
def reports_group():
    """Reports."""


@reports_group.command('dashboard')
@with_appcontext
def dashboard():
    """Print the counter dashboard."""
    symbol = current_app.config["CURRENCY_SYMBOL"]
    report = reporting_service.dashboard()
    click.echo(f"Revenue:   {symbol} {format_money(report['revenue'])}")
    click.echo(f"Completed: {report['completed_count']}")
    click.echo(f"Pending:   {report['pending_count']}")
    click.echo(f"Cancelled: {report['cancelled_count']}")
    click.echo(f"Budgets:   {report['budget_count']}")
    for point in report["recent_sales"]:
        click.echo(f"  #{point['sale_id']:<6} {point['time']:<6} {symbol} {format_money(point['value'])}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(units_group)
    app.cli.add_command(sales_group)
    app.cli.add_command(reports_group)
