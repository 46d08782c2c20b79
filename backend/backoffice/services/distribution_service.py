# Overview: Ledger distribution engine; posts the profit split of sold lines exactly once.

"""
Ledger Distribution Engine

A sold line is distributed at most once. The `accounted` flag, the line's
version_id and the unit of work together make the second attempt fail
with AlreadyAccounted and post nothing.

Two entry points share one posting path:
- distribute_line(): caller-computed amounts, validated (single line)
- distribute_lines(): engine-computed amounts from rent only (batch)

The split arithmetic itself lives in profit_split and touches no rows.
"""

from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Account, Sale, SaleLine
from ..models.accounts import TX_CREDIT
from ..errors import (
    AlreadyAccounted,
    CategoryMisconfigured,
    InvalidRequest,
    SaleLineNotFound,
    SaleNotFound,
    SplitValidationError,
)
from backoffice.time_utils import utcnow
from .concurrency import lock_for_update, unit_of_work
from .ledger_service import get_account, post_transaction, standard_accounts
from .profit_split import (
    ROLE_PARTNER,
    Allocation,
    DeclaredSplit,
    LineFigures,
    compute_split,
    rule_for_line,
    validate_declared_split,
)
from .user_service import get_user


def _lock_line(sale_id: int, line_number: int) -> SaleLine:
    if db.session.get(Sale, sale_id) is None:
        raise SaleNotFound(f"Sale {sale_id} not found", {"sale_id": sale_id})
    line = lock_for_update(
        db.session.query(SaleLine).filter_by(sale_id=sale_id, line_number=line_number)
    ).first()
    if line is None:
        raise SaleLineNotFound(
            f"Sale {sale_id} has no line {line_number}",
            {"sale_id": sale_id, "line_number": line_number},
        )
    if line.accounted:
        raise AlreadyAccounted(
            f"Line {line_number} of sale {sale_id} is already accounted",
            {"sale_id": sale_id, "line_number": line_number},
        )
    return line


def _figures(line: SaleLine) -> LineFigures:
    return LineFigures(
        line_total_cents=line.line_total_cents,
        line_total_cost_cents=line.line_total_cost_cents,
        commission_cents=line.commission_cents,
        label=line.product.name if line.product else f"line {line.line_number}",
    )


def _post_allocations(
    line: SaleLine,
    allocations: list[Allocation],
    accounts: dict[str, Account],
    partner_account: Account | None,
    actor_id: int,
) -> None:
    for allocation in allocations:
        if allocation.role == ROLE_PARTNER:
            account = partner_account
        else:
            account = accounts[allocation.role]
        post_transaction(
            account,
            TX_CREDIT,
            allocation.amount_cents,
            user_id=actor_id,
            description=allocation.description,
            sale_id=line.sale_id,
            sale_line_id=line.id,
        )


def _mark_accounted(line: SaleLine, rent_cents: int, when) -> None:
    line.accounted = True
    line.rent_amount_cents = rent_cents
    line.accounted_at = when


def _partner_for_category(category) -> Account:
    if category is None or category.account_id is None:
        raise CategoryMisconfigured(
            "Startup category has no partner account",
            {"category_id": category.id if category else None},
        )
    return get_account(category.account_id, lock=True)


def distribute_line(sale_id: int, line_number: int, declared: DeclaredSplit, actor_id: int) -> SaleLine:
    """
    Caller-computed split of one line.

    The caller's profit/rent/investment/partner amounts are validated
    against the line, never recomputed, then posted as credits.

    Raises:
        SaleNotFound / SaleLineNotFound: bad address
        AlreadyAccounted: the line was distributed before
        SplitValidationError: amounts break the rent/profit rules
        StandardAccountsMissing: accounts not provisioned
    """
    try:
        with unit_of_work():
            actor = get_user(actor_id)
            accounts = standard_accounts(lock=True)
            line = _lock_line(sale_id, line_number)

            allocations = validate_declared_split(_figures(line), declared)

            partner_account = None
            if declared.has_partner:
                partner_account = get_account(declared.partner_account_id, lock=True)
                if not partner_account.is_partner:
                    raise SplitValidationError(
                        f"Account {partner_account.id} is not a partner account",
                        {"account_id": partner_account.id},
                    )

            _post_allocations(line, allocations, accounts, partner_account, actor.id)
            _mark_accounted(line, declared.rent_cents, utcnow())
    except StaleDataError as exc:
        raise AlreadyAccounted(
            f"Line {line_number} of sale {sale_id} was accounted concurrently",
            {"sale_id": sale_id, "line_number": line_number},
        ) from exc

    return line


def distribute_lines(sale_id: int, rent_by_line: dict[int, int], actor_id: int) -> list[SaleLine]:
    """
    Engine-computed split of several lines of one sale, one commit.

    Args:
        rent_by_line: {line_number: rent_cents}; every selected line must
            be listed (0 is a valid rent)

    Raises:
        InvalidRequest: nothing selected
        AlreadyAccounted: any selected line was distributed before
        CategoryMisconfigured: startup line without usable rule or partner
        SplitValidationError: rent exceeds the line's profit
    """
    if not rent_by_line:
        raise InvalidRequest("Select at least one line to distribute")

    try:
        with unit_of_work():
            actor = get_user(actor_id)
            accounts = standard_accounts(lock=True)
            now = utcnow()

            lines = []
            for line_number in sorted(rent_by_line):
                rent_cents = rent_by_line[line_number]
                line = _lock_line(sale_id, line_number)

                rule = rule_for_line(line.commission_cents, line.category)
                allocations = compute_split(_figures(line), rule, rent_cents)
                partner_account = _partner_for_category(line.category) if rule is not None else None

                _post_allocations(line, allocations, accounts, partner_account, actor.id)
                _mark_accounted(line, rent_cents, now)
                lines.append(line)
    except StaleDataError as exc:
        raise AlreadyAccounted(
            f"Lines of sale {sale_id} were accounted concurrently",
            {"sale_id": sale_id},
        ) from exc

    return lines
