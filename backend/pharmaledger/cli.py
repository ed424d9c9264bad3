# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/pharmaledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` once migrations exist).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Branches:
# - python -m flask branches list
#   List branches; the main branch is marked with *.
# - python -m flask branches create --name "Centro" --address "Av. Juárez 10"
#   Create a branch (the first one becomes the main branch).
#
# Users (the identity provider owns credentials; these are local profiles):
# - python -m flask users list
#   List profiles with role, active flag and branch assignments.
# - python -m flask users create --uid abc123 --name "Ana Pérez" --role ADMIN
#   Create a profile for an identity-provider uid.
# - python -m flask users assign-branch --uid abc123 --branch-id 1 --role CASHIER
#   Give a user a role at a branch.
# - python -m flask users issue-token --uid abc123 [--branch-id 1]
#   Print a bearer token for the user (shown once).
#
# Register inspection:
# - python -m flask registers sessions --status OPEN --limit 20
#   List recent register sessions with optional filters.
# - python -m flask registers reconcile 12
#   Recompute a session's totals from its entry log.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, CashRegisterSummary
from .permissions import ROLE_ADMIN, ROLES
from .services import branch_service, register_service, session_service, user_service
from .services.permission_service import Actor
from .services.session_service import SessionError
from .validation import ConflictError, ValidationError
from .errors import DomainError


# Commands run with full rights; the operator is trusted
CLI_ACTOR = Actor(uid="cli", display_name="CLI", role=ROLE_ADMIN)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables. Idempotent."""
    db.create_all()
    click.echo("PASS Tables created.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask branches create' to add the first branch.")


@click.group('branches')
def branches_group():
    """Branch management commands."""


@branches_group.command('list')
@with_appcontext
def list_branches_cli():
    branches = branch_service.list_branches()
    if not branches:
        click.echo("No branches found.")
        return

    click.echo(f"{'ID':<5} {'Main':<5} {'Name':<30} {'Address'}")
    for branch in branches:
        marker = "*" if branch.is_main else ""
        click.echo(f"{branch.id:<5} {marker:<5} {branch.name:<30} {branch.address}")


@branches_group.command('create')
@click.option('--name', prompt=True)
@click.option('--address', prompt=True)
@click.option('--phone', default=None)
@with_appcontext
def create_branch_cli(name, address, phone):
    try:
        branch = branch_service.create_branch(name=name, address=address, phone=phone, actor=CLI_ACTOR)
    except (ValidationError, ConflictError) as exc:
        raise click.ClickException(str(exc))
    main = " (main)" if branch.is_main else ""
    click.echo(f"PASS Branch {branch.id} '{branch.name}' created{main}.")


@click.group('users')
def users_group():
    """User profile commands."""


@users_group.command('list')
@with_appcontext
def list_users_cli():
    users = user_service.list_users()
    if not users:
        click.echo("No users found.")
        return

    for user in users:
        status = "active" if user.is_active else "inactive"
        branches = ", ".join(f"{a.branch_id}:{a.role}" for a in user.assignments) or "-"
        click.echo(f"{user.uid:<30} {user.display_name:<25} {user.role:<10} {status:<9} {branches}")


@users_group.command('create')
@click.option('--uid', prompt=True, help='Identity-provider uid')
@click.option('--name', 'display_name', prompt=True)
@click.option('--role', type=click.Choice(ROLES, case_sensitive=False), prompt=True)
@click.option('--email', default=None)
@with_appcontext
def create_user_cli(uid, display_name, role, email):
    try:
        user = user_service.create_user(uid=uid, display_name=display_name, role=role, email=email)
    except (ValidationError, ConflictError) as exc:
        raise click.ClickException(str(exc))
    click.echo(f"PASS User {user.uid} created as {user.role}.")


@users_group.command('assign-branch')
@click.option('--uid', required=True)
@click.option('--branch-id', type=int, required=True)
@click.option('--role', type=click.Choice(ROLES, case_sensitive=False), required=True)
@with_appcontext
def assign_branch_cli(uid, branch_id, role):
    try:
        user_service.assign_branch(uid, branch_id, role)
    except (ValidationError, DomainError) as exc:
        raise click.ClickException(str(exc))
    click.echo(f"PASS {uid} assigned to branch {branch_id} as {role.upper()}.")


@users_group.command('issue-token')
@click.option('--uid', required=True)
@click.option('--branch-id', type=int, default=None, help='Active branch for the session')
@with_appcontext
def issue_token_cli(uid, branch_id):
    """Print a bearer token. It is shown once and stored only as a hash."""
    try:
        session, token = session_service.create_session(uid, branch_id)
    except SessionError as exc:
        raise click.ClickException(str(exc))
    click.echo(token)
    click.echo(f"Expires at {session.expires_at.isoformat()}Z", err=True)


@click.group('registers')
def registers_group():
    """Cash register inspection commands."""


@registers_group.command('sessions')
@click.option('--branch-id', type=int, help='Filter by branch ID')
@click.option('--status', type=click.Choice(['OPEN', 'CLOSED']), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max sessions to show')
@with_appcontext
def list_sessions_cli(branch_id, status, limit):
    """
    List register sessions.

    Example:
        flask registers sessions
        flask registers sessions --branch-id 1
        flask registers sessions --status OPEN
    """
    query = db.session.query(CashRegisterSummary)
    if branch_id:
        query = query.filter_by(branch_id=branch_id)
    if status:
        query = query.filter_by(status=status)

    summaries = query.order_by(CashRegisterSummary.opened_at.desc()).limit(limit).all()
    if not summaries:
        click.echo("No sessions found.")
        return

    click.echo("\n" + "="*110)
    click.echo(f"{'ID':<5} {'Branch':<20} {'Opened by':<20} {'Status':<8} {'Opened':<20} {'Expected':<12} {'Difference'}")
    click.echo("="*110)

    for summary in summaries:
        branch = db.session.query(Branch).filter_by(id=summary.branch_id).first()
        branch_name = branch.name if branch else "Unknown"

        difference_str = "-"
        if summary.difference_cents is not None:
            difference_str = f"${summary.difference_cents / 100:+.2f}"

        click.echo(f"{summary.id:<5} {branch_name[:19]:<20} {summary.opened_by_name[:19]:<20} {summary.status:<8} "
                   f"{str(summary.opened_at)[:19]:<20} {summary.expected_balance_cents / 100:<12.2f} {difference_str}")

    click.echo("="*110 + "\n")


@registers_group.command('reconcile')
@click.argument('summary_id', type=int)
@with_appcontext
def reconcile_cli(summary_id):
    """Compare stored totals with totals recomputed from the entry log."""
    try:
        result = register_service.reconcile_summary(summary_id)
    except DomainError as exc:
        raise click.ClickException(str(exc))

    for key in ("total_income_cents", "total_expense_cents", "expected_balance_cents"):
        click.echo(f"{key:<24} stored={result['stored'][key]:<10} computed={result['computed'][key]}")
    if result["matches"]:
        click.echo("PASS Totals match the entry log.")
    else:
        click.echo("FAIL Totals differ from the entry log.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(branches_group)
    app.cli.add_command(users_group)
    app.cli.add_command(registers_group)
