# Overview: Flask CLI command groups for bootstrap, user management, and lifecycle sweeps.

# backend/spa_registry/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Idempotent bootstrap: tables, roles, permissions, default lsa_admin user.
#
# Users:
# - python -m flask users list
# - python -m flask users create --username officer --email officer@lsa.local --password "Password123!" --role lsa_officer
# - python -m flask users create --username spaadmin --email a@spa.local --password "Password123!" --role spa_admin --spa-id 1
#
# Lifecycle sweeps (normally run by the scheduler):
# - python -m flask lifecycle sweep-sessions
# - python -m flask lifecycle sweep-grants
# - python -m flask lifecycle check-payments
# - python -m flask lifecycle run-scheduler
#   Run the periodic sweeps in the foreground until interrupted.

import time

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .permissions import DEFAULT_ROLES
from .services import credential_service, lifecycle_service, permission_service, session_service
from .services.auth_service import create_user, create_default_roles, assign_role, PasswordValidationError


DEFAULT_ADMIN_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the registry: tables, roles, permissions and a default lsa_admin user.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing spa registry...")
    db.create_all()

    create_default_roles()
    perm_count = permission_service.initialize_permissions()
    assignment_count = permission_service.assign_default_role_permissions()
    click.echo(f"PASS Created {perm_count} permissions, {assignment_count} role assignments")

    existing = db.session.query(User).filter_by(username="admin").first()
    if existing:
        click.echo("WARN  User 'admin' already exists, skipping...")
    else:
        user = create_user(username="admin", email="admin@lsa.local", password=DEFAULT_ADMIN_PASSWORD)
        assign_role(user.id, "lsa_admin")
        click.echo(f"PASS Created user: admin (admin@lsa.local) / {DEFAULT_ADMIN_PASSWORD}")

    click.echo("DONE Spa registry initialized")


@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        roles = ", ".join(permission_service.get_user_role_names(user.id)) or "-"
        spa = user.spa_id if user.spa_id is not None else "-"
        active = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} {roles:<25} spa={spa} active={active}")


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True)
@click.option('--role', type=click.Choice([name for name, _ in DEFAULT_ROLES]), prompt=True)
@click.option('--spa-id', type=int, default=None, help='Spa the user administers (spa_admin only)')
@with_appcontext
def create_user_cli(username, email, password, role, spa_id):
    """Create a user and assign a role."""
    if role == "spa_admin" and spa_id is None:
        raise click.UsageError("--spa-id is required for spa_admin")
    if role != "spa_admin" and spa_id is not None:
        raise click.UsageError("--spa-id is only valid for spa_admin")

    create_default_roles()
    try:
        user = create_user(username=username, email=email, password=password, spa_id=spa_id)
    except (PasswordValidationError, ValueError) as e:
        raise click.ClickException(str(e))
    assign_role(user.id, role)
    click.echo(f"PASS Created user {username} (ID: {user.id}) with role '{role}'")


@click.group('lifecycle')
def lifecycle_group():
    """Expiry sweeps and payment checks."""


@lifecycle_group.command('sweep-sessions')
@with_appcontext
def sweep_sessions():
    count = session_service.sweep_idle_sessions()
    click.echo(f"PASS Expired {count} idle session(s)")


@lifecycle_group.command('sweep-grants')
@with_appcontext
def sweep_grants():
    count = credential_service.sweep_expired_grants()
    click.echo(f"PASS Revoked {count} expired third-party token(s)")


@lifecycle_group.command('check-payments')
@click.option('--grace-days', type=int, default=None, help='Override PAYMENT_GRACE_DAYS')
@with_appcontext
def check_payments(grace_days):
    marked = lifecycle_service.check_overdue_payments(grace_days=grace_days)
    click.echo(f"PASS Marked {len(marked)} spa(s) overdue")


@lifecycle_group.command('run-scheduler')
@with_appcontext
def run_scheduler():
    """Run the periodic sweeps in the foreground (Ctrl+C to stop)."""
    scheduler = current_app.extensions["scheduler"]
    for job in scheduler.jobs:
        click.echo(f"JOB  {job.name} every {int(job.interval.total_seconds())}s")
    try:
        while True:
            for name in scheduler.run_pending():
                click.echo(f"RAN  {name}")
            time.sleep(scheduler.tick_seconds)
    except KeyboardInterrupt:
        click.echo("STOP Scheduler stopped")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(lifecycle_group)
