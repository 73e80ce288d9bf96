# Overview: Flask CLI command groups for bootstrap, inspection, and automation scans.

# backend/fieldops/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent).
#
# Account management (MULTI-TENANT):
# - python -m flask accounts list
#   List all accounts.
# - python -m flask accounts create --name "Acme Plumbing"
#   Create a new account (tenant).
#
# Workflow inspection:
# - python -m flask workflow graph [--entity invoice]
#   Print the status graphs (all entities, or one).
# - python -m flask workflow capabilities --role tech
#   Print a role's capability map.
#
# Automations (schedule these, e.g. cron every 15 minutes):
# - python -m flask automations run-reminders --account-id 1 [--hours-before 24]
#   Emit visit_reminder_due for visits starting soon.
# - python -m flask automations run-followups --account-id 1 [--days 7,14,30]
#   Emit invoice_followup_due for past-due invoices.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Account
from .permissions import EntityType, Role, capabilities_for
from .services import automation_service
from .services.lifecycle_service import STATUS_GRAPHS
from .services.tenant_service import TenantAccessError, validate_account_active


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables."""
    db.create_all()
    click.echo("Database tables created.")


@click.group('accounts')
def accounts_group():
    """Account (tenant) management."""


@accounts_group.command('list')
@with_appcontext
def list_accounts():
    accounts = db.session.query(Account).order_by(Account.id).all()
    if not accounts:
        click.echo("No accounts found.")
        return
    for account in accounts:
        status = "active" if account.is_active else "inactive"
        click.echo(f"{account.id:>4}  {account.name}  ({status})")


@accounts_group.command('create')
@click.option('--name', required=True, help='Account name')
@with_appcontext
def create_account_cli(name):
    account = Account(name=name.strip(), is_active=True)
    db.session.add(account)
    db.session.commit()
    click.echo(f"Created account {account.id}: {account.name}")


@click.group('workflow')
def workflow_group():
    """Workflow graph and capability inspection."""


@workflow_group.command('graph')
@click.option('--entity', type=click.Choice([e.value for e in EntityType]), help='Only this entity type')
def show_graph(entity):
    """Print status graphs as 'from -> to, to'."""
    entity_types = [EntityType(entity)] if entity else list(EntityType)
    for entity_type in entity_types:
        click.echo(f"[{entity_type.value}]")
        for status, targets in STATUS_GRAPHS[entity_type].items():
            click.echo(f"  {status} -> {', '.join(targets) if targets else '(terminal)'}")


@workflow_group.command('capabilities')
@click.option('--role', type=click.Choice([r.value for r in Role]), required=True)
def show_capabilities(role):
    for entity, actions in capabilities_for(role).items():
        click.echo(f"{entity:<10} {', '.join(actions) if actions else '-'}")


@click.group('automations')
def automations_group():
    """Automation scans."""


def _require_account(account_id: int) -> None:
    try:
        validate_account_active(account_id)
    except TenantAccessError as e:
        raise click.ClickException(str(e))


@automations_group.command('run-reminders')
@click.option('--account-id', type=int, required=True, help='Account ID')
@click.option('--hours-before', type=int, default=None, help='Window size (default: VISIT_REMINDER_HOURS_BEFORE)')
@with_appcontext
def run_reminders(account_id, hours_before):
    _require_account(account_id)
    result = automation_service.run_visit_reminders(account_id, hours_before=hours_before)
    click.echo(f"Reminders: {result.emitted} emitted, {result.skipped} skipped, {result.errors} errors")


@automations_group.command('run-followups')
@click.option('--account-id', type=int, required=True, help='Account ID')
@click.option('--days', default=None, help='Comma-separated cadence in days (default: INVOICE_FOLLOWUP_DAYS)')
@with_appcontext
def run_followups(account_id, days):
    _require_account(account_id)
    cadence = None
    if days:
        try:
            cadence = [int(part) for part in days.split(",") if part.strip()]
        except ValueError:
            raise click.BadParameter("days must be comma-separated integers", param_hint="--days")
    result = automation_service.run_invoice_followups(account_id, days_overdue=cadence)
    click.echo(f"Follow-ups: {result.emitted} emitted, {result.skipped} skipped, {result.errors} errors")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(accounts_group)
    app.cli.add_command(workflow_group)
    app.cli.add_command(automations_group)
