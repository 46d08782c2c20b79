"""
Cash Drawer Register Service

WHY: Cash taken at the counter must be attributable to one drawer session
with a running balance, and cuts must hand the float over atomically.

DESIGN PRINCIPLES:
- At most one OPEN drawer system-wide (partial unique index, not a
  check-then-act in Python)
- Closing stamps closer/time/notes and never touches the balance
- A cut closes the source drawer and opens its successor in one unit
- Decrements below zero follow an explicit policy: clamp with a warning,
  or fail with DrawerBalanceUnderflow
"""

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CashRegister, CashCut, Payment
from ..models.registers import DRAWER_OPEN, DRAWER_CLOSED
from ..errors import (
    CutExceedsBalance,
    DrawerAlreadyOpen,
    DrawerBalanceUnderflow,
    DrawerNotFound,
    DrawerNotOpen,
    InvalidRequest,
    NoDrawerOpen,
)
from backoffice.time_utils import utcnow
from .concurrency import lock_for_update, unit_of_work
from .user_service import get_user


# =============================================================================
# LOOKUPS
# =============================================================================

def get_open_drawer(*, lock: bool = False) -> CashRegister | None:
    """The single OPEN drawer, or None."""
    query = db.session.query(CashRegister).filter_by(status=DRAWER_OPEN)
    if lock:
        query = lock_for_update(query)
    return query.first()


def get_drawer_status() -> dict:
    drawer = get_open_drawer()
    if drawer is None:
        return {
            "is_open": False,
            "cash_register_id": None,
            "current_balance_cents": 0,
            "initial_balance_cents": 0,
            "opened_at": None,
        }
    return {
        "is_open": True,
        "cash_register_id": drawer.id,
        "current_balance_cents": drawer.current_balance_cents,
        "initial_balance_cents": drawer.initial_balance_cents,
        "opened_at": drawer.to_dict()["opened_at"],
    }


def get_drawer(drawer_id: int) -> CashRegister:
    drawer = db.session.get(CashRegister, drawer_id)
    if drawer is None:
        raise DrawerNotFound(f"Cash register {drawer_id} not found", {"cash_register_id": drawer_id})
    return drawer


def list_drawers() -> list[CashRegister]:
    return db.session.query(CashRegister).order_by(
        CashRegister.opened_at.desc(), CashRegister.id.desc()
    ).all()


def get_drawer_with_payments(drawer_id: int) -> tuple[CashRegister, list[Payment]]:
    drawer = get_drawer(drawer_id)
    payments = db.session.query(Payment).filter_by(
        cash_register_id=drawer.id
    ).order_by(Payment.paid_at.asc(), Payment.id.asc()).all()
    return drawer, payments


def list_cuts(drawer_id: int | None = None) -> list[CashCut]:
    query = db.session.query(CashCut)
    if drawer_id is not None:
        query = query.filter(CashCut.cash_register_id == drawer_id)
    return query.order_by(CashCut.cut_at.desc(), CashCut.id.desc()).all()


# =============================================================================
# LIFECYCLE
# =============================================================================

def _new_drawer(opened_by_user_id: int, initial_balance_cents: int, notes: str | None, opened_at) -> CashRegister:
    drawer = CashRegister(
        status=DRAWER_OPEN,
        initial_balance_cents=initial_balance_cents,
        current_balance_cents=initial_balance_cents,
        opened_by_user_id=opened_by_user_id,
        opened_at=opened_at,
        opening_notes=notes,
    )
    db.session.add(drawer)
    return drawer


def open_drawer(opened_by: int, initial_balance_cents: int, notes: str | None = None) -> CashRegister:
    """
    Open a new drawer session.

    Raises:
        UserNotFound: opener does not exist
        InvalidRequest: negative initial balance
        DrawerAlreadyOpen: another drawer is open (also when a concurrent
            open wins the race and the unique index rejects this insert)
    """
    if initial_balance_cents is None or initial_balance_cents < 0:
        raise InvalidRequest("initial_balance_cents must be non-negative")

    try:
        with unit_of_work():
            user = get_user(opened_by)
            existing = get_open_drawer(lock=True)
            if existing is not None:
                raise DrawerAlreadyOpen(
                    f"Cash register {existing.id} is already open",
                    {"cash_register_id": existing.id},
                )
            drawer = _new_drawer(user.id, initial_balance_cents, notes, utcnow())
            db.session.flush()
    except IntegrityError as exc:
        raise DrawerAlreadyOpen("Another cash register was opened concurrently") from exc

    return drawer


def close_drawer(closed_by: int, notes: str | None = None) -> CashRegister:
    """Close the open drawer. The balance is left as-is."""
    with unit_of_work():
        user = get_user(closed_by)
        drawer = get_open_drawer(lock=True)
        if drawer is None:
            raise NoDrawerOpen("No cash register is open")
        drawer.status = DRAWER_CLOSED
        drawer.closed_by_user_id = user.id
        drawer.closed_at = utcnow()
        drawer.closing_notes = notes

    return drawer


# =============================================================================
# BALANCE MOVEMENTS
# =============================================================================

def apply_increment(drawer: CashRegister, amount_cents: int) -> None:
    """Stage a credit on a locked drawer inside the caller's unit of work."""
    if amount_cents < 0:
        raise InvalidRequest("increment amount must be non-negative")
    drawer.current_balance_cents = drawer.current_balance_cents + amount_cents


def apply_decrement(drawer: CashRegister, amount_cents: int, floored_at_zero: bool) -> int:
    """
    Stage a debit on a locked drawer inside the caller's unit of work.

    Returns the amount actually removed, which is smaller than requested
    only when the balance was clamped at zero.
    """
    if amount_cents < 0:
        raise InvalidRequest("decrement amount must be non-negative")

    balance = drawer.current_balance_cents
    if amount_cents <= balance:
        drawer.current_balance_cents = balance - amount_cents
        return amount_cents

    if not floored_at_zero:
        raise DrawerBalanceUnderflow(
            "Cash register balance would go negative",
            {"cash_register_id": drawer.id, "balance_cents": balance, "amount_cents": amount_cents},
        )

    current_app.logger.warning(
        "Cash register %s decrement of %s cents clamped at zero (balance was %s)",
        drawer.id, amount_cents, balance,
    )
    drawer.current_balance_cents = 0
    return balance


def increment_balance(amount_cents: int) -> CashRegister:
    with unit_of_work():
        drawer = get_open_drawer(lock=True)
        if drawer is None:
            raise NoDrawerOpen("No cash register is open")
        apply_increment(drawer, amount_cents)
    return drawer


def decrement_balance(amount_cents: int, floored_at_zero: bool = True) -> CashRegister:
    with unit_of_work():
        drawer = get_open_drawer(lock=True)
        if drawer is None:
            raise NoDrawerOpen("No cash register is open")
        apply_decrement(drawer, amount_cents, floored_at_zero)
    return drawer


# =============================================================================
# CASH CUT
# =============================================================================

def perform_cut(
    drawer_id: int,
    new_initial_balance_cents: int,
    operator_id: int,
    notes: str | None = None,
) -> CashCut:
    """
    Extract cash from an open drawer and hand the float to a new drawer.

    extracted = current_balance - new_initial_balance. The source drawer
    is closed and a successor opened with new_initial_balance as both its
    initial and current balance, all in one unit of work.

    Raises:
        DrawerNotFound / DrawerNotOpen: bad source drawer
        CutExceedsBalance: new_initial_balance > current balance
    """
    if new_initial_balance_cents is None or new_initial_balance_cents < 0:
        raise InvalidRequest("new_initial_balance_cents must be non-negative")

    try:
        with unit_of_work():
            operator = get_user(operator_id)
            drawer = lock_for_update(
                db.session.query(CashRegister).filter_by(id=drawer_id)
            ).first()
            if drawer is None:
                raise DrawerNotFound(f"Cash register {drawer_id} not found", {"cash_register_id": drawer_id})
            if drawer.status != DRAWER_OPEN:
                raise DrawerNotOpen(f"Cash register {drawer_id} is not open", {"cash_register_id": drawer_id})

            balance_before = drawer.current_balance_cents
            extracted = balance_before - new_initial_balance_cents
            if extracted < 0:
                raise CutExceedsBalance(
                    "Cannot leave more cash than the drawer holds",
                    {
                        "cash_register_id": drawer_id,
                        "current_balance_cents": balance_before,
                        "new_initial_balance_cents": new_initial_balance_cents,
                    },
                )

            now = utcnow()
            drawer.status = DRAWER_CLOSED
            drawer.closed_by_user_id = operator.id
            drawer.closed_at = now
            drawer.closing_notes = notes
            # Source must be CLOSED in the database before the successor
            # row can satisfy the single-open index.
            db.session.flush()

            successor = _new_drawer(operator.id, new_initial_balance_cents, notes, now)
            db.session.flush()

            cut = CashCut(
                cash_register_id=drawer.id,
                successor_register_id=successor.id,
                amount_extracted_cents=extracted,
                balance_before_cents=balance_before,
                balance_after_cents=new_initial_balance_cents,
                user_id=operator.id,
                cut_at=now,
                notes=notes,
            )
            db.session.add(cut)
    except IntegrityError as exc:
        raise DrawerAlreadyOpen("Another cash register was opened concurrently") from exc

    return cut
