# Overview: Flask CLI command groups for ledger bootstrap, inspection, and drawer status.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Ledger bootstrap/inspection:
# - python -m flask accounts init
#   Idempotently create the standard accounts (investment, profit, rent, remaining_utility).
# - python -m flask accounts list
#   List accounts with their cached balances.
# - python -m flask accounts verify
#   Compare every cached balance with its ledger aggregate; exits 1 on mismatch.
# - python -m flask accounts create-partner --category-id 3 --name "startup_acme" --label "Acme Crafts"
#   Create a partner account and link it to a startup category.
#
# Drawer inspection:
# - python -m flask drawer status
#   Show whether a cash register is open and its balance.

import click
from flask.cli import with_appcontext

from .errors import EngineError
from .services import ledger_service, register_service


def _money(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100}.{cents % 100:02d}"


@click.group('accounts')
def accounts_group():
    """Standing account provisioning and balance checks."""


@accounts_group.command('init')
@with_appcontext
def init_accounts():
    """Create any missing standard account."""
    accounts = ledger_service.ensure_standard_accounts()
    for name in sorted(accounts):
        account = accounts[name]
        click.echo(f"PASS {name:<20} (ID: {account.id}) balance {_money(account.balance_cents)}")


@accounts_group.command('list')
@with_appcontext
def list_accounts():
    """List all accounts."""
    accounts = ledger_service.list_accounts()
    if not accounts:
        click.echo("No accounts found. Run 'flask accounts init'.")
        return

    click.echo("\n" + "="*72)
    click.echo(f"{'ID':<5} {'Name':<24} {'Label':<24} {'Balance':>12}")
    click.echo("="*72)
    for account in accounts:
        click.echo(f"{account.id:<5} {account.name:<24} {account.label:<24} {_money(account.balance_cents):>12}")
    click.echo("="*72 + "\n")


@accounts_group.command('verify')
@with_appcontext
def verify_accounts():
    """Check cached balances against the ledger. Exit code 1 on any mismatch."""
    mismatches = ledger_service.verify_account_balances()
    if not mismatches:
        click.echo("PASS All account balances match their ledgers")
        return

    for row in mismatches:
        click.echo(
            f"FAIL {row['name']} (ID: {row['account_id']}): cached "
            f"{_money(row['cached_balance_cents'])} != ledger {_money(row['ledger_balance_cents'])}"
        )
    raise SystemExit(1)


@accounts_group.command('create-partner')
@click.option('--category-id', type=int, required=True, help='Startup category to link')
@click.option('--name', required=True, help='Unique account name')
@click.option('--label', default=None, help='Display label (defaults to name)')
@with_appcontext
def create_partner(category_id, name, label):
    """Create a partner account for a startup category."""
    try:
        account = ledger_service.create_partner_account(category_id, name, label)
    except EngineError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created partner account {account.name} (ID: {account.id}) for category {category_id}")


@click.group('drawer')
def drawer_group():
    """Cash drawer inspection."""


@drawer_group.command('status')
@with_appcontext
def drawer_status():
    """Show the open cash register, if any."""
    status = register_service.get_drawer_status()
    if not status["is_open"]:
        click.echo("No cash register is open.")
        return
    click.echo(
        f"OPEN cash register {status['cash_register_id']} since {status['opened_at']}: "
        f"initial {_money(status['initial_balance_cents'])}, "
        f"current {_money(status['current_balance_cents'])}"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(accounts_group)
    app.cli.add_command(drawer_group)
