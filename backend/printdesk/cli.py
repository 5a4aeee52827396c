# Overview: Flask CLI command groups for bootstrap, operator accounts, and maintenance.

# backend/printdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use "flask db upgrade" where migrations are managed).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Operator accounts:
# - python -m flask admins create --username admin --password "Password123!"
#   Create an admin (prompts if options are omitted).
# - python -m flask admins list
#
# Maintenance:
# - python -m flask maintenance sweep-files [--max-age-hours 24]
#   Delete uploaded files older than the retention window.
# - python -m flask maintenance cleanup-sessions
#   Delete expired and revoked admin sessions.

from datetime import timedelta

import click
from flask.cli import with_appcontext

from .errors import ValidationError
from .extensions import db
from .services import auth_service, maintenance_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("OK Database tables created")


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
    db.drop_all()
    db.create_all()
    click.echo("OK Database reset")


@click.group('admins')
def admins_group():
    """Operator account commands."""


@admins_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--name', default=None, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_admin_cli(username, name, password):
    """
    Create an operator account.

    Password must be at least 8 characters with an uppercase letter, a
    lowercase letter, a digit, and a special character.
    """
    try:
        admin = auth_service.create_admin(username, password, name=name)
    except ValidationError as e:
        db.session.rollback()
        raise click.ClickException(e.message)
    click.echo(f"OK Created admin '{admin.username}' (id={admin.id})")


@admins_group.command('list')
@with_appcontext
def list_admins_cli():
    """List operator accounts."""
    admins = auth_service.list_admins()
    if not admins:
        click.echo("No admins found.")
        return
    for admin in admins:
        state = "active" if admin.is_active else "inactive"
        last_login = admin.last_login_at.isoformat() if admin.last_login_at else "never"
        click.echo(f"{admin.id:>4}  {admin.username:<24} {state:<8}  last login: {last_login}")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('sweep-files')
@click.option('--max-age-hours', type=int, default=None, help='Override FILE_RETENTION_HOURS')
@with_appcontext
def sweep_files_cli(max_age_hours):
    """Delete uploaded files past the retention window."""
    max_age = timedelta(hours=max_age_hours) if max_age_hours is not None else None
    deleted = maintenance_service.sweep_expired_files(max_age=max_age)
    click.echo(f"Deleted {deleted} expired file(s).")


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_cli():
    """Delete expired and revoked admin sessions."""
    deleted = maintenance_service.cleanup_sessions()
    click.echo(f"Deleted {deleted} session(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(admins_group)
    app.cli.add_command(maintenance_group)
