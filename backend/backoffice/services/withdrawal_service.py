# Overview: Withdrawal engine; debits a standing account while the books are closed.

from ..extensions import db
from ..models import Withdrawal
from ..models.accounts import TX_DEBIT, WITHDRAWAL_COMPLETED
from ..errors import (
    DrawerOpen,
    InsufficientFunds,
    InvalidRequest,
    LedgerBalanceMismatch,
    WithdrawalNotFound,
)
from backoffice.time_utils import utcnow
from .concurrency import unit_of_work
from .ledger_service import get_account, get_account_balance, post_transaction
from .register_service import get_open_drawer
from .user_service import get_user


def create_withdrawal(account_id: int, amount_cents: int, actor_id: int, description: str | None = None) -> Withdrawal:
    """
    Take money out of a standing account.

    Only allowed while no cash drawer is open. The cached balance and the
    ledger aggregate must agree before anything is debited.

    Raises:
        DrawerOpen: a cash drawer is open
        AccountNotFound: unknown account
        InvalidRequest: amount is not positive
        LedgerBalanceMismatch: cached balance disagrees with the ledger
        InsufficientFunds: amount exceeds the balance
    """
    if amount_cents is None or amount_cents <= 0:
        raise InvalidRequest("amount_cents must be positive")

    with unit_of_work():
        actor = get_user(actor_id)
        drawer = get_open_drawer(lock=True)
        if drawer is not None:
            raise DrawerOpen(
                "Withdrawals require every cash register to be closed",
                {"cash_register_id": drawer.id},
            )

        account = get_account(account_id, lock=True)
        ledger_cents = get_account_balance(account.id)
        if ledger_cents != account.balance_cents:
            raise LedgerBalanceMismatch(
                f"Account {account.name!r} cached balance disagrees with its ledger",
                {
                    "account_id": account.id,
                    "cached_balance_cents": account.balance_cents,
                    "ledger_balance_cents": ledger_cents,
                },
            )
        if amount_cents > account.balance_cents:
            raise InsufficientFunds(
                f"Account {account.name!r} has insufficient funds",
                {
                    "account_id": account.id,
                    "balance_cents": account.balance_cents,
                    "amount_cents": amount_cents,
                },
            )

        text = (description or "").strip() or f"Withdrawal from {account.label}"
        withdrawal = Withdrawal(
            account_id=account.id,
            amount_cents=amount_cents,
            user_id=actor.id,
            description=text,
            status=WITHDRAWAL_COMPLETED,
            created_at=utcnow(),
        )
        db.session.add(withdrawal)
        db.session.flush()

        post_transaction(
            account,
            TX_DEBIT,
            amount_cents,
            user_id=actor.id,
            description=text,
            withdrawal_id=withdrawal.id,
        )

    return withdrawal


def list_withdrawals(account_id: int | None = None) -> list[Withdrawal]:
    query = db.session.query(Withdrawal)
    if account_id is not None:
        query = query.filter(Withdrawal.account_id == account_id)
    return query.order_by(Withdrawal.created_at.desc(), Withdrawal.id.desc()).all()


def get_withdrawal(withdrawal_id: int) -> Withdrawal:
    withdrawal = db.session.get(Withdrawal, withdrawal_id)
    if withdrawal is None:
        raise WithdrawalNotFound(f"Withdrawal {withdrawal_id} not found", {"withdrawal_id": withdrawal_id})
    return withdrawal
