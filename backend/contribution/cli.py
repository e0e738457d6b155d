# Overview: Flask CLI command groups for bootstrap, tenant management and ledger maintenance.

# backend/contribution/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--company "Company Name"] [--code DEFAULT]
#   Idempotent bootstrap: creates the schema, a default company and its main branch.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Company management (MULTI-TENANT):
# - python -m flask companies list
# - python -m flask companies create --name "Acme Susu" --code ACME --card-prefix ACM
# - python -m flask companies deactivate 3
# - python -m flask companies add-branch --company-id 1 --name "Madina"
#
# Cards:
# - python -m flask cards fix-amounts [--company-id 1] [--dry-run]
#   Find cards whose box price is below MIN_BOX_PRICE and reprice them (prompts per card).
#
# Customers:
# - python -m flask customers refresh-statuses [--company-id 1]
#   Re-evaluate completed / defaulting / in_progress for every customer.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, Card, Company, Customer
from .services import card_pricing_service, company_service, customer_status_service
from .services.errors import LedgerError
from .services.tenant_service import TenantContext, validate_company_active


def _tenant_for(company_id):
    """Console context across all companies, or one company's scope."""
    if company_id is None:
        return TenantContext.unscoped("console")
    validate_company_active(company_id)
    return TenantContext.scoped(company_id)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--company', 'company_name', default='Default Company', help='Company name')
@click.option('--code', 'company_code', default='DEFAULT', help='Company code')
@with_appcontext
def init_system(company_name, company_code):
    """
    Initialize the ledger database: tables, default company and main branch.

    Safe to run repeatedly; existing rows are reused.
    """
    click.echo("START Initializing contribution ledger...")
    db.create_all()

    company = db.session.query(Company).filter_by(code=company_code).first()
    if not company:
        company = company_service.create_company(name=company_name, code=company_code)
        click.echo(f"PASS Created company: {company.name} (ID: {company.id}, Code: {company.code})")
    else:
        click.echo(f"PASS Using existing company: {company.name} (ID: {company.id})")

    branch = db.session.query(Branch).filter_by(company_id=company.id).first()
    if not branch:
        branch = company_service.create_branch(TenantContext.scoped(company.id), name="Main Branch")
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    click.echo("PASS Initialization complete.")


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


# =============================================================================
# COMPANY MANAGEMENT COMMANDS (MULTI-TENANT)
# =============================================================================

@click.group('companies')
def companies_group():
    """Company (tenant) management commands."""


@companies_group.command('list')
@with_appcontext
def list_companies():
    """List all companies."""
    companies = company_service.list_companies()

    if not companies:
        click.echo("No companies found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<12} {'Prefix':<8} {'Active':<8} {'Customers'}")
    click.echo("="*80)

    for company in companies:
        customer_count = db.session.query(Customer).filter_by(company_id=company.id).count()
        active_str = "Yes" if company.is_active else "No"
        click.echo(
            f"{company.id:<5} {company.name:<30} {company.code or '-':<12} "
            f"{company.card_prefix or '-':<8} {active_str:<8} {customer_count}"
        )

    click.echo("="*80 + "\n")


@companies_group.command('create')
@click.option('--name', required=True, help='Company name')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--card-prefix', help='Prefix for generated card codes (defaults to CRD)')
@with_appcontext
def create_company_cli(name, code, card_prefix):
    """Create a new company (tenant)."""
    try:
        company = company_service.create_company(name=name, code=code, card_prefix=card_prefix)
    except LedgerError as exc:
        click.echo(f"FAIL {exc.message}")
        return
    click.echo(f"PASS Created company: {company.name} (ID: {company.id}, Code: {company.code})")


@companies_group.command('deactivate')
@click.argument('company_id', type=int)
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def deactivate_company_cli(company_id, yes):
    """Deactivate a company. Its data is kept; its users can no longer work in it."""
    if not yes:
        click.confirm(f"WARN Deactivate company {company_id}?", abort=True)
    try:
        company = company_service.deactivate_company(company_id)
    except LedgerError as exc:
        click.echo(f"FAIL {exc.message}")
        return
    click.echo(f"PASS Company {company.name} (ID: {company.id}) is inactive")


@companies_group.command('add-branch')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.option('--name', required=True, help='Branch name')
@with_appcontext
def add_branch_cli(company_id, name):
    """Add a branch to a company."""
    try:
        branch = company_service.create_branch(_tenant_for(company_id), name=name)
    except LedgerError as exc:
        click.echo(f"FAIL {exc.message}")
        return
    click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id}) in company {company_id}")


# =============================================================================
# CARD MAINTENANCE
# =============================================================================

@click.group('cards')
def cards_group():
    """Card template maintenance commands."""


@cards_group.command('fix-amounts')
@click.option('--company-id', type=int, help='Limit to one company')
@click.option('--dry-run', is_flag=True, help='Show what would be changed without changing it')
@with_appcontext
def fix_card_amounts(company_id, dry_run):
    """Reprice cards whose box price is implausibly small."""
    tenant = _tenant_for(company_id)
    click.echo("SCAN Scanning cards for incorrect amounts...")

    fixed = 0
    for card in card_pricing_service.find_suspicious_cards(tenant):
        click.echo("WARN Found card with suspicious pricing:")
        click.echo(f"  Card: {card.card_name} ({card.card_code})")
        click.echo(f"  Current Amount: {card.amount}")
        click.echo(f"  Number of Boxes: {card.number_of_boxes}")
        click.echo(f"  Current Box Price: {card_pricing_service.card_box_price(card):.4f}")

        answer = click.prompt("What should the price per box be for this card?", default="", show_default=False)
        try:
            result = card_pricing_service.reprice_card(tenant, card.id, answer, dry_run=dry_run)
        except (LedgerError, ArithmeticError, ValueError):
            click.echo("  FAIL Skipped (invalid input)\n")
            continue

        if dry_run:
            click.echo(f"  [DRY RUN] Would update to {result['new_amount']}\n")
        else:
            click.echo(f"  PASS Updated {result['old_amount']} -> {result['new_amount']}\n")
        fixed += 1

    if fixed == 0:
        click.echo("PASS No cards needed fixing!")
    else:
        click.echo(f"PASS Fixed {fixed} card(s)!")


@cards_group.command('list')
@click.option('--company-id', type=int, help='Limit to one company')
@with_appcontext
def list_cards(company_id):
    """List card templates with their box price."""
    tenant = _tenant_for(company_id)
    cards = tenant.query(Card).order_by(Card.company_id, Card.id).all()
    if not cards:
        click.echo("No cards found.")
        return

    for card in cards:
        status = "retired" if card.deleted_at else card.status
        click.echo(
            f"{card.id:<5} {card.card_code:<12} {card.card_name:<30} "
            f"{card.number_of_boxes:>5} boxes {card.amount:>12} "
            f"({card_pricing_service.card_box_price(card)}/box) {status}"
        )


# =============================================================================
# CUSTOMER MAINTENANCE
# =============================================================================

@click.group('customers')
def customers_group():
    """Customer maintenance commands."""


@customers_group.command('refresh-statuses')
@click.option('--company-id', type=int, help='Limit to one company')
@with_appcontext
def refresh_statuses(company_id):
    """Re-evaluate completed / defaulting / in_progress for every customer."""
    result = customer_status_service.refresh_customer_statuses(_tenant_for(company_id))
    changed = result["changed"]
    click.echo(
        f"PASS Scanned {result['scanned']} customers: "
        f"{changed['completed']} completed, {changed['defaulting']} defaulting, "
        f"{changed['in_progress']} in progress (changed)"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(companies_group)
    app.cli.add_command(cards_group)
    app.cli.add_command(customers_group)
