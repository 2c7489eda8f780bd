# Overview: Flask CLI command groups for schema bootstrap and tenant inspection.

# backend/tenantory/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP (PowerShell: $env:FLASK_APP="tenantory:create_app").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management (MULTI-TENANT):
# - python -m flask tenants list
#   List organizations with plan, status and member count.
# - python -m flask tenants create --name "Acme Corp" [--external-id org_2abc]
#   Create an organization (tenant) with a trial subscription.
# - python -m flask tenants usage <org_id>
#   Show plan usage (users, products, orders this month, warehouses).
# - python -m flask tenants deactivate <org_id>
#   Deactivate an organization; its tokens no longer resolve a tenant.

import uuid

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Membership, Organization
from .services import organization_service, subscription_service


def _parse_org_id(raw: str) -> uuid.UUID:
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise click.BadParameter(f"'{raw}' is not a valid organization id")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (existing tables are left untouched)."""
    db.create_all()
    click.echo("PASS Database schema is in place.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask tenants create' to add a tenant.")


@click.group('tenants')
def tenants_group():
    """Organization (tenant) management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all organizations."""
    orgs = (
        db.session.query(Organization)
        .filter(Organization.is_deleted.is_(False))
        .order_by(Organization.name.asc())
        .all()
    )

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<38} {'Name':<28} {'External ID':<16} {'Plan':<13} {'Active':<7} {'Members'}")
    click.echo("="*100)

    for org in orgs:
        member_count = db.session.query(Membership).filter_by(org_id=org.id).count()
        sub = org.subscription
        plan = f"{sub.plan_name}/{sub.status}" if sub is not None else "-"
        active_str = "Yes" if org.is_active else "No"

        click.echo(
            f"{str(org.id):<38} {org.name[:28]:<28} {(org.external_id or '-')[:16]:<16} "
            f"{plan[:13]:<13} {active_str:<7} {member_count}"
        )

    click.echo("="*100 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--external-id', default=None, help='Identity-provider organization id')
@with_appcontext
def create_tenant(name, external_id):
    """Create a new organization (tenant) with a trial subscription."""
    name = name.strip()
    if not name or len(name) > 200:
        click.echo("FAIL Name must be between 1 and 200 characters")
        return

    org = organization_service.create_organization(name=name, external_id=external_id)
    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, External ID: {org.external_id or '-'})")


@tenants_group.command('usage')
@click.argument('org_id')
@with_appcontext
def tenant_usage(org_id):
    """Show plan usage for one organization."""
    org = organization_service.get_organization(org_id=_parse_org_id(org_id))
    if org is None:
        click.echo(f"FAIL Organization {org_id} not found")
        return

    sub = subscription_service.get_current_subscription(org_id=org.id)
    usage = subscription_service.get_usage(org_id=org.id)
    click.echo(f"\n{org.name} ({sub.plan_name}, {sub.status})")
    for resource, metric in usage.items():
        limit = "unlimited" if metric.is_unlimited else metric.limit
        flag = " AT LIMIT" if metric.is_at_limit else (" near limit" if metric.is_near_limit else "")
        click.echo(f"  {resource:<11} {metric.current:>6} / {limit} ({metric.percentage}%){flag}")
    click.echo("")


@tenants_group.command('deactivate')
@click.argument('org_id')
@with_appcontext
def deactivate_tenant(org_id):
    """Deactivate an organization (data is kept)."""
    org = organization_service.deactivate_organization(org_id=_parse_org_id(org_id))
    if org is None:
        click.echo(f"FAIL Organization {org_id} not found")
        return
    click.echo(f"PASS Deactivated organization: {org.name}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
