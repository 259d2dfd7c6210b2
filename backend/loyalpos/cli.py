# Overview: Flask CLI command groups for tenant bootstrap, inventory inspection, and maintenance.

# backend/loyalpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Business (tenant) management:
# - python -m flask businesses list [--all]
#   List businesses (use --all to include inactive).
# - python -m flask businesses create --name "Corner Cafe" --slug corner-cafe [--cents-per-point 10000]
#   Create a new business.
#
# Inventory inspection:
# - python -m flask inventory low-stock --business-id 1 [--threshold 5]
#   Print products at or below their low-stock threshold.
# - python -m flask inventory verify --business-id 1
#   Check that every product's stock equals the sum of its movements (exit 1 on mismatch).
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import PosError
from .services import inventory_service, tenant_service


# =============================================================================
# BUSINESS MANAGEMENT COMMANDS
# =============================================================================

@click.group('businesses')
def businesses_group():
    """Business (tenant) management commands."""


@businesses_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive businesses')
@with_appcontext
def list_businesses_cli(include_inactive):
    """List businesses."""
    businesses = tenant_service.list_businesses(include_inactive=include_inactive)

    if not businesses:
        click.echo("No businesses found.")
        return

    click.echo("\n" + "="*72)
    click.echo(f"{'ID':<5} {'Name':<30} {'Slug':<24} {'Active'}")
    click.echo("="*72)

    for business in businesses:
        active_str = "Yes" if business.is_active else "No"
        click.echo(f"{business.id:<5} {business.name:<30} {business.slug:<24} {active_str}")

    click.echo("="*72 + "\n")


@businesses_group.command('create')
@click.option('--name', required=True, help='Business name')
@click.option('--slug', required=True, help='URL-safe unique slug')
@click.option('--cents-per-point', type=int, default=None, help='Spend (cents) per loyalty point')
@click.option('--max-points', type=int, default=None, help='Max points per sale')
@with_appcontext
def create_business_cli(name, slug, cents_per_point, max_points):
    """Create a new business (tenant)."""
    try:
        business = tenant_service.create_business(
            name=name,
            slug=slug,
            cents_per_point=cents_per_point,
            max_points_per_transaction=max_points,
        )
    except PosError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created business: {business.name} (ID: {business.id}, Slug: {business.slug})")


# =============================================================================
# INVENTORY COMMANDS
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('low-stock')
@click.option('--business-id', type=int, required=True, help='Business ID')
@click.option('--threshold', type=int, default=None, help='Override per-product thresholds')
@with_appcontext
def low_stock_cli(business_id, threshold):
    """List products at or below their low-stock threshold."""
    try:
        tenant_service.require_business(business_id)
        products = inventory_service.get_low_stock(business_id=business_id, threshold=threshold)
    except PosError as e:
        raise click.ClickException(str(e))

    if not products:
        click.echo("No low-stock products.")
        return

    click.echo(f"{'ID':<6} {'SKU':<16} {'Name':<32} {'Qty':>6} {'Threshold':>10}")
    for p in products:
        click.echo(f"{p.id:<6} {p.sku or '-':<16} {p.name[:32]:<32} {p.stock_quantity:>6} {p.low_stock_threshold:>10}")


@inventory_group.command('verify')
@click.option('--business-id', type=int, required=True, help='Business ID')
@with_appcontext
def verify_ledger_cli(business_id):
    """Verify stock_quantity == SUM(movements) for every product."""
    try:
        tenant_service.require_business(business_id, require_active=False)
    except PosError as e:
        raise click.ClickException(str(e))

    discrepancies = inventory_service.find_ledger_discrepancies(business_id=business_id)
    if not discrepancies:
        click.echo("PASS Ledger consistent")
        return

    for row in discrepancies:
        click.echo(
            f"FAIL product {row['product_id']} ({row['name']}): "
            f"stock={row['stock_quantity']} ledger={row['ledger_quantity']}"
        )
    raise SystemExit(1)


# =============================================================================
# SYSTEM COMMANDS
# =============================================================================

@click.group('system')
def system_group():
    """System maintenance commands."""


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


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(businesses_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(system_group)
