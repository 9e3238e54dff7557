# Overview: Flask CLI command groups for bootstrap, accounts and demo data.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Accounts:
# - python -m flask accounts create-admin --name "Ops" --email ops@shop.local --password "Password123" [--superadmin]
# - python -m flask accounts create-user --name "Sam" --email sam@shop.local --password "Password123" [--admin-id 1]
#
# Catalog:
# - python -m flask catalog seed-demo --admin-email ops@shop.local
#   Add a handful of products with opening stock and a demo discount code.

import click
from datetime import timedelta
from flask.cli import with_appcontext

from .errors import StorefrontError
from .extensions import db
from .models import Admin, Discount, Product, ROLE_ADMIN, ROLE_SUPERADMIN
from .services import auth_service, discount_service, product_service
from .time_utils import utcnow


DEMO_PRODUCTS = [
    ("Canvas Tote", "Heavy cotton tote bag", 1800, 40),
    ("Enamel Mug", "12oz camp mug", 1250, 25),
    ("Wool Beanie", "Ribbed merino beanie", 2400, 8),
    ("Sticker Pack", "Five vinyl stickers", 500, 120),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema is up to date")


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
    click.echo("BUILD Creating all tables...")
    db.create_all()
    click.echo("PASS Database reset complete")


@click.group('accounts')
def accounts_group():
    """Admin and shopper account commands."""


@accounts_group.command('create-admin')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Login email (unique)')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--superadmin', is_flag=True, help='Grant SUPERADMIN (may edit any product)')
@with_appcontext
def create_admin_cli(name, email, password, superadmin):
    """
    Create an admin account.

    Password must be at least 8 characters with a letter and a digit.
    """
    try:
        admin = auth_service.create_admin(
            name=name,
            email=email,
            password=password,
            role=ROLE_SUPERADMIN if superadmin else ROLE_ADMIN,
        )
    except StorefrontError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Created admin: {admin.email} (ID: {admin.id}, role {admin.role})")


@accounts_group.command('create-user')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Login email (unique)')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--admin-id', type=int, help='Admin that manages this shopper')
@with_appcontext
def create_user_cli(name, email, password, admin_id):
    """Create a shopper account."""
    if admin_id is not None and db.session.get(Admin, admin_id) is None:
        click.echo(f"FAIL Admin ID {admin_id} not found")
        return
    try:
        user = auth_service.create_user(name=name, email=email, password=password, admin_id=admin_id)
    except StorefrontError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Created user: {user.email} (ID: {user.id})")


@click.group('catalog')
def catalog_group():
    """Catalog demo data commands."""


@catalog_group.command('seed-demo')
@click.option('--admin-email', required=True, help='Admin that will own the demo products')
@click.option('--discount-code', default='WELCOME10', help='Demo discount code (10%, valid 30 days)')
@with_appcontext
def seed_demo(admin_email, discount_code):
    """Create demo products with opening stock (skips names that already exist)."""
    admin = db.session.query(Admin).filter_by(email=admin_email.strip().lower()).first()
    if admin is None:
        click.echo(f"FAIL No admin with email {admin_email}. Run: python -m flask accounts create-admin")
        return

    for name, description, price_cents, quantity in DEMO_PRODUCTS:
        if db.session.query(Product).filter_by(name=name).first() is not None:
            click.echo(f"WARN  Product '{name}' already exists, skipping...")
            continue
        product = product_service.create_product(
            admin_id=admin.id,
            name=name,
            description=description,
            price_cents=price_cents,
            initial_quantity=quantity,
        )
        click.echo(f"PASS Created product: {product.name} (ID: {product.id}, stock {quantity})")

    if db.session.query(Discount).filter_by(code=discount_code).first() is None:
        discount_service.create_discount(
            code=discount_code,
            percentage=10,
            valid_till=utcnow() + timedelta(days=30),
            admin_id=admin.id,
        )
        click.echo(f"PASS Created discount code {discount_code} (10%)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(accounts_group)
    app.cli.add_command(catalog_group)
