# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/canteen/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (development; use `flask db upgrade` for migrations).
# - python -m flask system seed
#   Idempotent: default admin/staff/student users and a starter menu.
#
# User inspection/bootstrap:
# - python -m flask users list [--role staff]
#   List all users with role and active status.
# - python -m flask users create --name "Canteen Staff" --email staff2@canteen.local --password "Password123!" --role staff
#   Create a user (prompts if options are omitted).
#
# Invoices:
# - python -m flask invoices backfill
#   Issue invoices for delivered orders that have none.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import CanteenError
from .models import MenuItem, User
from .models.auth import VALID_ROLES
from .services.auth_service import create_user, PasswordValidationError
from .services.invoice_service import backfill_missing_invoices


DEFAULT_PASSWORD = "Password123!"

DEFAULT_USERS = [
    ("Admin User", "admin@bubtcafe.com", "admin", "01712345678"),
    ("Staff Member", "staff@bubtcafe.com", "staff", "01798765432"),
    ("Customer User", "customer@bubtcafe.com", "student", "01856432109"),
]

# (name, category, price_cents, stock)
DEFAULT_MENU = [
    ("Chicken Biryani", "Rice & Curry", 15000, 40),
    ("Beef Tehari", "Rice & Curry", 18000, 30),
    ("Vegetable Rice", "Rice & Curry", 8000, 30),
    ("Chicken Burger", "Fast Food", 12000, 25),
    ("Samosa", "Snacks", 1500, 100),
    ("Singara", "Snacks", 1200, 100),
    ("Tea", "Beverages", 1000, 200),
    ("Coffee", "Beverages", 2500, 150),
    ("Paratha", "Breakfast", 2000, 80),
]


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('seed')
@click.option('--password', default=DEFAULT_PASSWORD, show_default=True, help='Password for the default users')
@with_appcontext
def seed(password):
    """
    Seed default users and a starter menu. Safe to run repeatedly.

    SECURITY: Change the default passwords immediately in production!
    """
    click.echo("USERS Creating default users...")
    for name, email, role, phone in DEFAULT_USERS:
        if db.session.query(User).filter_by(email=email).first():
            click.echo(f"SKIP {role}: {email} (already exists)")
            continue
        try:
            create_user(name=name, email=email, password=password, role=role, phone=phone)
        except PasswordValidationError as e:
            raise click.ClickException(f"Password validation failed: {e}")
        click.echo(f"PASS Created {role}: {email}")

    click.echo("\nMENU Creating starter menu...")
    created = 0
    for name, category, price_cents, stock in DEFAULT_MENU:
        if db.session.query(MenuItem).filter_by(name=name).first():
            continue
        db.session.add(MenuItem(
            name=name,
            category=category,
            price_cents=price_cents,
            stock=stock,
            is_available=True,
        ))
        created += 1
    db.session.commit()
    click.echo(f"PASS Created {created} menu items ({len(DEFAULT_MENU) - created} already present)")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(VALID_ROLES)), prompt=True, help='Role')
@click.option('--phone', default=None, help='Phone number')
@with_appcontext
def create_user_cli(name, email, password, role, phone):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(name=name, email=email, password=password, role=role, phone=phone)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except CanteenError as e:
        click.echo(f"FAIL Failed to create user: {e.message}")
        return

    click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{role}'")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@click.option('--role', type=click.Choice(list(VALID_ROLES)), help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users with their roles."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)

    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Name':<24} {'Email':<32} {'Active':<8} {'Role'}")
    click.echo("="*90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.name:<24} {user.email:<32} {active_str:<8} {user.role}")

    click.echo("="*90 + "\n")


@click.group('invoices')
def invoices_group():
    """Invoice maintenance commands."""


@invoices_group.command('backfill')
@with_appcontext
def backfill_invoices_cli():
    """Issue invoices for delivered orders that are missing one."""
    issued, failed = backfill_missing_invoices()
    for invoice in issued:
        click.echo(f"PASS {invoice.invoice_number} -> order {invoice.order_id}")
    if failed:
        click.echo(f"FAIL Could not invoice orders: {', '.join(str(order_id) for order_id in failed)}")
    click.echo(f"Issued {len(issued)} invoices, {len(failed)} failures.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(invoices_group)
