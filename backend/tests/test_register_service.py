"""
Cash drawer register tests.

Verifies:
- At most one OPEN drawer, enforced by the service and by the storage index
- Close stamps the closer and leaves the balance alone
- A cash cut closes the source, opens a successor, and leaves exactly one open drawer
- Decrement policy: clamp at zero, or fail with DrawerBalanceUnderflow
"""

import pytest
from sqlalchemy.exc import IntegrityError

from backoffice.extensions import db
from backoffice.errors import (
    CutExceedsBalance,
    DrawerAlreadyOpen,
    DrawerBalanceUnderflow,
    DrawerNotFound,
    DrawerNotOpen,
    InvalidRequest,
    NoDrawerOpen,
    UserNotFound,
)
from backoffice.models import CashCut, CashRegister
from backoffice.models.registers import DRAWER_CLOSED, DRAWER_OPEN
from backoffice.services import register_service
from backoffice.time_utils import utcnow


def _open_count() -> int:
    return db.session.query(CashRegister).filter_by(status=DRAWER_OPEN).count()


# =============================================================================
# SINGLE OPEN DRAWER
# =============================================================================


class TestSingleOpenDrawer:

    def test_second_open_fails(self, cashier):
        first = register_service.open_drawer(cashier.id, 1000, notes="Morning")

        with pytest.raises(DrawerAlreadyOpen) as exc:
            register_service.open_drawer(cashier.id, 500)

        assert exc.value.details["cash_register_id"] == first.id
        assert _open_count() == 1

    def test_storage_rejects_second_open_row(self, cashier):
        register_service.open_drawer(cashier.id, 1000)

        db.session.add(CashRegister(
            status=DRAWER_OPEN,
            initial_balance_cents=0,
            current_balance_cents=0,
            opened_by_user_id=cashier.id,
            opened_at=utcnow(),
        ))
        with pytest.raises(IntegrityError):
            db.session.flush()
        db.session.rollback()

        assert _open_count() == 1

    def test_open_requires_existing_user(self, db_session):
        with pytest.raises(UserNotFound):
            register_service.open_drawer(4242, 0)
        assert _open_count() == 0

    def test_open_rejects_negative_balance(self, cashier):
        with pytest.raises(InvalidRequest):
            register_service.open_drawer(cashier.id, -1)

    def test_reopen_after_close(self, cashier):
        register_service.open_drawer(cashier.id, 1000)
        register_service.close_drawer(cashier.id)

        drawer = register_service.open_drawer(cashier.id, 200)
        assert drawer.current_balance_cents == 200
        assert _open_count() == 1


# =============================================================================
# CLOSE
# =============================================================================


class TestClose:

    def test_close_without_open_drawer(self, cashier):
        with pytest.raises(NoDrawerOpen):
            register_service.close_drawer(cashier.id)

    def test_close_stamps_closer_and_keeps_balance(self, cashier, make_user):
        manager = make_user(email="manager@backoffice.local")
        drawer = register_service.open_drawer(cashier.id, 1500)
        register_service.increment_balance(250)

        closed = register_service.close_drawer(manager.id, notes="End of day")

        assert closed.id == drawer.id
        assert closed.status == DRAWER_CLOSED
        assert closed.closed_by_user_id == manager.id
        assert closed.closed_at is not None
        assert closed.closing_notes == "End of day"
        assert closed.current_balance_cents == 1750

        status = register_service.get_drawer_status()
        assert status["is_open"] is False
        assert status["cash_register_id"] is None


# =============================================================================
# CASH CUT
# =============================================================================


class TestCashCut:

    def test_cut_hands_float_to_successor(self, cashier):
        drawer = register_service.open_drawer(cashier.id, 10000)
        register_service.increment_balance(2500)

        cut = register_service.perform_cut(drawer.id, 5000, cashier.id, notes="Afternoon")

        assert cut.balance_before_cents == 12500
        assert cut.balance_after_cents == 5000
        assert cut.amount_extracted_cents == 7500

        source = db.session.get(CashRegister, drawer.id)
        assert source.status == DRAWER_CLOSED
        assert source.current_balance_cents == 12500

        open_drawers = db.session.query(CashRegister).filter_by(status=DRAWER_OPEN).all()
        assert len(open_drawers) == 1
        successor = open_drawers[0]
        assert successor.id == cut.successor_register_id
        assert successor.initial_balance_cents == 5000
        assert successor.current_balance_cents == 5000

    def test_cut_can_empty_the_drawer(self, cashier):
        drawer = register_service.open_drawer(cashier.id, 3000)

        cut = register_service.perform_cut(drawer.id, 0, cashier.id)

        assert cut.amount_extracted_cents == 3000
        assert register_service.get_drawer_status()["current_balance_cents"] == 0

    def test_cut_exceeding_balance_changes_nothing(self, cashier):
        drawer = register_service.open_drawer(cashier.id, 1000)

        with pytest.raises(CutExceedsBalance):
            register_service.perform_cut(drawer.id, 1500, cashier.id)

        assert db.session.query(CashCut).count() == 0
        still_open = db.session.get(CashRegister, drawer.id)
        assert still_open.status == DRAWER_OPEN
        assert still_open.current_balance_cents == 1000
        assert _open_count() == 1

    def test_cut_on_closed_drawer(self, cashier):
        drawer = register_service.open_drawer(cashier.id, 1000)
        register_service.close_drawer(cashier.id)

        with pytest.raises(DrawerNotOpen):
            register_service.perform_cut(drawer.id, 0, cashier.id)

    def test_cut_on_unknown_drawer(self, cashier):
        with pytest.raises(DrawerNotFound):
            register_service.perform_cut(999, 0, cashier.id)

    def test_list_cuts_filters_by_drawer(self, cashier):
        first = register_service.open_drawer(cashier.id, 1000)
        cut = register_service.perform_cut(first.id, 500, cashier.id)
        register_service.perform_cut(cut.successor_register_id, 100, cashier.id)

        assert len(register_service.list_cuts()) == 2
        assert [c.id for c in register_service.list_cuts(drawer_id=first.id)] == [cut.id]


# =============================================================================
# BALANCE MOVEMENTS
# =============================================================================


class TestBalanceMovements:

    def test_increment_requires_open_drawer(self, db_session):
        with pytest.raises(NoDrawerOpen):
            register_service.increment_balance(100)

    def test_decrement_clamps_at_zero_when_floored(self, cashier):
        register_service.open_drawer(cashier.id, 300)

        drawer = register_service.decrement_balance(500, floored_at_zero=True)

        assert drawer.current_balance_cents == 0

    def test_decrement_fails_loudly_when_not_floored(self, cashier):
        drawer = register_service.open_drawer(cashier.id, 300)

        with pytest.raises(DrawerBalanceUnderflow):
            register_service.decrement_balance(500, floored_at_zero=False)

        assert db.session.get(CashRegister, drawer.id).current_balance_cents == 300

    def test_decrement_within_balance(self, cashier):
        register_service.open_drawer(cashier.id, 300)
        drawer = register_service.decrement_balance(120)
        assert drawer.current_balance_cents == 180
