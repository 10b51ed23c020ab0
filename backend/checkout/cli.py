# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/checkout/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Create a demo business, branch, cash register, catalog, stock and payment methods.
#
# Sales inspection:
# - python -m flask sales summary --branch-id 1
#   Print counts and amounts by status (also --business-id / --user-id).
# - python -m flask sales next-ticket --branch-id 1
#   Show the next ticket number without consuming it.

import click
from flask.cli import with_appcontext

from .errors import SaleError
from .extensions import db
from .models import Branch, Brand, Business, Category, PaymentMethod, Product, ProductStock
from .services.register_service import create_cash_register
from .services.reporting_service import sale_summary
from .services.ticket_service import peek_next_ticket_number


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema ready.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' to add demo data.")


DEMO_CATALOG = [
    # (category, brand, product, flavor, vat_exempt, qty, sale_cents, purchase_cents)
    ("Beverages", "Polar", "Malta", None, False, 48, 150, 90),
    ("Beverages", "Coca-Cola", "Soda", "Cola", False, 36, 200, 120),
    ("Bakery", None, "Bread", None, True, 20, 100, 60),
    ("Snacks", "Savoy", "Chocolate bar", "Milk", False, 30, 250, 140),
]

DEMO_PAYMENT_METHODS = [
    ("Cash", "USD"),
    ("Card", "USD"),
    ("Mobile payment", "VES"),
]


@system_group.command('seed-demo')
@click.option('--business', 'business_name', default='Demo Business', help='Business name')
@with_appcontext
def seed_demo(business_name):
    """
    Create demo data for local use (idempotent on business name).

    Creates: one business with one branch and cash register, a small catalog
    with stock, and the standard payment methods.
    """
    business = db.session.query(Business).filter_by(name=business_name).first()
    if business:
        click.echo(f"SKIP  Business '{business_name}' already exists (id={business.id})")
        return

    business = Business(name=business_name, rif="J-00000000-0")
    db.session.add(business)
    db.session.flush()

    branch = Branch(business_id=business.id, country="VE", city="Caracas", address="Main street 1")
    db.session.add(branch)
    db.session.flush()

    categories = {}
    brands = {}
    for category_name, brand_name, product_name, flavor, vat_exempt, qty, sale_cents, purchase_cents in DEMO_CATALOG:
        category = categories.get(category_name)
        if category is None:
            category = db.session.query(Category).filter_by(name=category_name).first() or Category(name=category_name)
            db.session.add(category)
            categories[category_name] = category

        brand = None
        if brand_name:
            brand = brands.get(brand_name)
            if brand is None:
                brand = db.session.query(Brand).filter_by(name=brand_name).first() or Brand(name=brand_name)
                db.session.add(brand)
                brands[brand_name] = brand

        product = Product(name=product_name, flavor=flavor, brand=brand, category=category, vat_exempt=vat_exempt)
        db.session.add(product)
        db.session.flush()
        db.session.add(ProductStock(
            branch_id=branch.id,
            product_id=product.id,
            quantity=qty,
            sale_price_cents=sale_cents,
            purchase_price_cents=purchase_cents,
        ))

    for name, currency in DEMO_PAYMENT_METHODS:
        if db.session.query(PaymentMethod).filter_by(name=name).first() is None:
            db.session.add(PaymentMethod(name=name, currency=currency))

    db.session.commit()

    register = create_cash_register(business_id=business.id, branch_id=branch.id, description="Front counter")

    click.echo(f"PASS Created business '{business.name}' (id={business.id})")
    click.echo(f"   branch id={branch.id}, cash register id={register.id}")
    click.echo(f"   {len(DEMO_CATALOG)} stocked products, {len(DEMO_PAYMENT_METHODS)} payment methods")


@click.group('sales')
def sales_group():
    """Sale inspection commands."""


@sales_group.command('summary')
@click.option('--business-id', type=int, help='Business ID')
@click.option('--branch-id', type=int, help='Branch ID')
@click.option('--user-id', type=int, help='User ID')
@with_appcontext
def summary_cli(business_id, branch_id, user_id):
    """Print sale counts and amounts by status."""
    try:
        summary = sale_summary(business_id=business_id, branch_id=branch_id, user_id=user_id)
    except SaleError as e:
        raise click.UsageError(e.message)

    click.echo(f"Sales: {summary['totalPurchases']} ({summary['totalAmount'] / 100:.2f})")
    click.echo(f"  completed: {summary['completed']} ({summary['completedAmount'] / 100:.2f})")
    click.echo(f"  pending:   {summary['pending']} ({summary['pendingAmount'] / 100:.2f} outstanding)")
    click.echo(f"  expired:   {summary['expired']} ({summary['expiredAmount'] / 100:.2f} outstanding)")


@sales_group.command('next-ticket')
@click.option('--branch-id', type=int, required=True, help='Branch ID')
@with_appcontext
def next_ticket_cli(branch_id):
    """Show the next ticket number for a branch without consuming it."""
    try:
        number = peek_next_ticket_number(branch_id)
    except SaleError as e:
        raise click.UsageError(e.message)
    click.echo(f"Branch {branch_id}: next ticket #{number}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(sales_group)
