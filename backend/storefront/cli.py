# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-email admin@store.local] [--admin-password "Password123"]
#   Idempotent bootstrap: creates tables, default categories and an admin account.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list [--role admin]
# - python -m flask users create-admin --name "Admin" --email admin@store.local --password "Password123"
#
# Maintenance:
# - python -m flask maintenance purge-pending-subscribers
#   Delete newsletter confirmations past their expiry.
# - python -m flask maintenance cleanup-sessions --retention-days 30
#   Delete expired/revoked session tokens older than the retention window.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Category, User
from .services.auth_service import create_user
from .services.catalog_service import slugify
from .services import maintenance_service
from .validation import ShopError

DEFAULT_CATEGORIES = [
    ("Electronics", "Phones, accessories and gadgets"),
    ("Clothing", "Apparel for every season"),
    ("Home & Garden", "Everything for the house"),
    ("Beauty", "Care and cosmetics"),
    ("Food & Drinks", "Groceries and beverages"),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-name', default='Store Admin', help='Admin display name')
@click.option('--admin-email', default='admin@store.local', help='Admin email')
@click.option('--admin-password', default='Password123', help='Admin password')
@with_appcontext
def init_system(admin_name, admin_email, admin_password):
    """
    Initialize the storefront: tables, default categories, admin account.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing storefront...")

    db.create_all()
    click.echo("PASS Tables ready")

    created = 0
    for index, (name, description) in enumerate(DEFAULT_CATEGORIES):
        if db.session.query(Category).filter_by(name=name).first():
            continue
        db.session.add(Category(name=name, slug=slugify(name), description=description, sort_order=index))
        created += 1
    db.session.commit()
    click.echo(f"PASS Categories created: {created}")

    existing = db.session.query(User).filter_by(email=admin_email.strip().lower()).first()
    if existing:
        click.echo(f"WARN  User '{admin_email}' already exists, skipping...")
    else:
        try:
            create_user(name=admin_name, email=admin_email, password=admin_password, role="admin")
            click.echo(f"PASS Created admin: {admin_email}")
        except ShopError as e:
            click.echo(f"FAIL Failed to create admin '{admin_email}': {e}")

    click.echo("DONE Storefront initialized")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--role', type=click.Choice(['customer', 'admin']), default=None)
@with_appcontext
def list_users(role):
    """List users with role and active status."""
    query = db.session.query(User).order_by(User.id.asc())
    if role:
        query = query.filter(User.role == role)
    users = query.all()
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>5}  {user.email:<32} {user.role:<9} {status}  {user.name}")


@users_group.command('create-admin')
@click.option('--name', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_admin(name, email, password):
    """Create a back-office admin account."""
    try:
        user = create_user(name=name, email=email, password=password, role="admin")
    except ShopError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created admin: {user.email} (ID: {user.id})")


@click.group('maintenance')
def maintenance_group():
    """Periodic cleanup commands."""


@maintenance_group.command('purge-pending-subscribers')
@with_appcontext
def purge_pending_subscribers():
    deleted = maintenance_service.purge_pending_subscribers()
    click.echo(f"PASS Deleted {deleted} expired pending subscribers")


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', default=30, show_default=True, type=int)
@with_appcontext
def cleanup_sessions(retention_days):
    deleted = maintenance_service.cleanup_sessions(retention_days=retention_days)
    click.echo(f"PASS Deleted {deleted} session tokens")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
