# Overview: Standing accounts and the single balance-posting primitive.

"""
Account ledger invariants (authoritative)

- AccountTransaction rows are append-only: never updated, never deleted.
- Account.balance_cents == SUM(CREDIT amounts) - SUM(DEBIT amounts) over
  the account's rows. The column is a cache maintained incrementally.
- post_transaction() is the only code path that touches balance_cents. It
  stages the row insert and a SQL-side `balance_cents = balance_cents +/- x`
  in the same flush, so the two can never diverge and concurrent credits
  cannot lose updates.
- The standard accounts (investment, profit, rent, remaining_utility) must
  be provisioned before any distribution. Their absence is a configuration
  error, not a request error.
"""

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Account, AccountTransaction, ProductCategory
from ..models.accounts import STANDARD_ACCOUNTS, TX_CREDIT, TX_DEBIT
from ..errors import (
    AccountNotFound,
    CategoryNotFound,
    InvalidRequest,
    StandardAccountsMissing,
)
from backoffice.time_utils import utcnow
from .concurrency import lock_for_update, unit_of_work


def post_transaction(
    account: Account,
    transaction_type: str,
    amount_cents: int,
    *,
    user_id: int,
    description: str,
    sale_id: int | None = None,
    sale_line_id: int | None = None,
    withdrawal_id: int | None = None,
) -> AccountTransaction:
    """
    Append one ledger row and move the cached balance with it.

    Stages both writes in the caller's unit of work; does not commit.
    """
    if transaction_type not in (TX_CREDIT, TX_DEBIT):
        raise InvalidRequest(f"Unknown transaction type {transaction_type!r}")
    if amount_cents < 0:
        raise InvalidRequest("Transaction amount cannot be negative")

    tx = AccountTransaction(
        account_id=account.id,
        transaction_type=transaction_type,
        amount_cents=amount_cents,
        sale_id=sale_id,
        sale_line_id=sale_line_id,
        withdrawal_id=withdrawal_id,
        description=description,
        user_id=user_id,
        created_at=utcnow(),
    )
    db.session.add(tx)

    delta = amount_cents if transaction_type == TX_CREDIT else -amount_cents
    account.balance_cents = Account.balance_cents + delta
    db.session.flush()
    return tx


# =============================================================================
# ACCOUNT PROVISIONING
# =============================================================================

def ensure_standard_accounts() -> dict[str, Account]:
    """Create any missing standard account. Safe to run repeatedly."""
    with unit_of_work():
        existing = {
            a.name: a
            for a in db.session.query(Account).filter(Account.name.in_(STANDARD_ACCOUNTS)).all()
        }
        for name, label in STANDARD_ACCOUNTS.items():
            if name not in existing:
                account = Account(name=name, label=label, balance_cents=0, created_at=utcnow())
                db.session.add(account)
                existing[name] = account
    return existing


def standard_accounts(*, lock: bool = False) -> dict[str, Account]:
    """
    The four standard accounts keyed by name.

    Raises:
        StandardAccountsMissing: one or more have not been provisioned
    """
    query = db.session.query(Account).filter(Account.name.in_(STANDARD_ACCOUNTS))
    if lock:
        query = lock_for_update(query)
    found = {a.name: a for a in query.all()}
    missing = sorted(set(STANDARD_ACCOUNTS) - set(found))
    if missing:
        raise StandardAccountsMissing(
            "Standard accounts are not provisioned: " + ", ".join(missing),
            {"missing": missing},
        )
    return found


def create_partner_account(category_id: int, name: str, label: str | None = None) -> Account:
    """Create a partner ("startup") account and link it to its category."""
    if not name or not name.strip():
        raise InvalidRequest("Account name is required")

    try:
        with unit_of_work():
            category = lock_for_update(
                db.session.query(ProductCategory).filter_by(id=category_id)
            ).first()
            if category is None:
                raise CategoryNotFound(f"Category {category_id} not found", {"category_id": category_id})

            account = Account(
                name=name.strip(),
                label=(label or name).strip(),
                balance_cents=0,
                product_category_id=category.id,
                created_at=utcnow(),
            )
            db.session.add(account)
            db.session.flush()
            category.account_id = account.id
    except IntegrityError as exc:
        raise InvalidRequest(f"Account {name!r} already exists", {"name": name}) from exc

    return account


# =============================================================================
# READS
# =============================================================================

def get_account(account_id: int, *, lock: bool = False) -> Account:
    query = db.session.query(Account).filter_by(id=account_id)
    if lock:
        query = lock_for_update(query)
    account = query.first()
    if account is None:
        raise AccountNotFound(f"Account {account_id} not found", {"account_id": account_id})
    return account


def get_account_balance(account_id: int) -> int:
    """Balance recomputed from the ledger rows (SUM credits - SUM debits)."""
    signed = case(
        (AccountTransaction.transaction_type == TX_CREDIT, AccountTransaction.amount_cents),
        else_=-AccountTransaction.amount_cents,
    )
    total = db.session.query(func.coalesce(func.sum(signed), 0)).filter(
        AccountTransaction.account_id == account_id
    ).scalar()
    return int(total or 0)


def verify_account_balances() -> list[dict]:
    """
    Compare every cached balance with its ledger aggregate.

    Returns one entry per account whose cache disagrees; empty means healthy.
    """
    mismatches = []
    for account in db.session.query(Account).order_by(Account.id).all():
        ledger_cents = get_account_balance(account.id)
        if ledger_cents != account.balance_cents:
            mismatches.append({
                "account_id": account.id,
                "name": account.name,
                "cached_balance_cents": account.balance_cents,
                "ledger_balance_cents": ledger_cents,
            })
    return mismatches


def list_accounts() -> list[Account]:
    return db.session.query(Account).order_by(Account.id).all()


def list_account_transactions(account_id: int, limit: int = 100, offset: int = 0) -> list[AccountTransaction]:
    get_account(account_id)
    return db.session.query(AccountTransaction).filter_by(
        account_id=account_id
    ).order_by(
        AccountTransaction.created_at.desc(), AccountTransaction.id.desc()
    ).offset(offset).limit(limit).all()
