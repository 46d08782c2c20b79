"""
CLI command tests.

Verifies:
- accounts init is idempotent
- accounts verify exits 1 when a cached balance drifts from its ledger
- accounts create-partner links the new account to its category
- drawer status reports the open drawer
"""

from sqlalchemy import text

from backoffice.extensions import db
from backoffice.models import Account, ProductCategory
from backoffice.services import register_service


class TestAccountsCommands:

    def test_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["accounts", "init"])
        second = runner.invoke(args=["accounts", "init"])

        assert first.exit_code == 0
        assert second.exit_code == 0
        assert "remaining_utility" in second.output
        assert db.session.query(Account).count() == 4

    def test_list_without_accounts(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["accounts", "list"])
        assert "No accounts found" in result.output

    def test_verify_detects_drift(self, app, accounts):
        runner = app.test_cli_runner()
        assert runner.invoke(args=["accounts", "verify"]).exit_code == 0

        db.session.execute(
            text("UPDATE accounts SET balance_cents = 123 WHERE name = 'rent'")
        )
        db.session.commit()

        result = runner.invoke(args=["accounts", "verify"])
        assert result.exit_code == 1
        assert "FAIL rent" in result.output

    def test_create_partner(self, app, make_category, accounts):
        category = make_category(name="Acme Crafts", is_startup=True)
        category_id = category.id

        result = app.test_cli_runner().invoke(args=[
            "accounts", "create-partner",
            "--category-id", str(category_id),
            "--name", "startup_acme",
            "--label", "Acme Crafts",
        ])

        assert result.exit_code == 0, result.output
        account = db.session.query(Account).filter_by(name="startup_acme").one()
        assert account.is_partner
        assert db.session.get(ProductCategory, category_id).account_id == account.id

    def test_create_partner_unknown_category(self, app, db_session):
        result = app.test_cli_runner().invoke(args=[
            "accounts", "create-partner", "--category-id", "999", "--name", "ghost",
        ])
        assert result.exit_code == 1
        assert "FAIL" in result.output


class TestDrawerCommands:

    def test_status_closed_and_open(self, app, cashier):
        runner = app.test_cli_runner()
        assert "No cash register is open" in runner.invoke(args=["drawer", "status"]).output

        drawer = register_service.open_drawer(cashier.id, 12345)

        output = runner.invoke(args=["drawer", "status"]).output
        assert f"OPEN cash register {drawer.id}" in output
        assert "current 123.45" in output
