# Overview: Pure profit-split arithmetic for sold lines; no database access.

"""
Profit split rules

A sold line's revenue is divided among standing accounts. Two modes exist
and are kept deliberately distinct:

ENGINE-COMPUTED (compute_split): the caller supplies only the rent. The
    commission rule of the line decides everything else, and whatever is
    left after rent goes to remaining_utility.
    - startup line:  profit = commission, partner = line_total - profit,
                     rent <= profit, remaining_utility = profit - rent
    - regular line:  investment = line_total_cost,
                     profit = line_total - line_total_cost,
                     rent <= profit, remaining_utility = profit - rent

CALLER-COMPUTED (validate_declared_split): the caller supplies every
    amount and the engine only checks them.
    - commission snapshot != 0:  rent <= commission
    - otherwise:                 rent <= potential_profit and
                                 profit == potential_profit - rent (exact)
    There is no remaining_utility in this mode.

Both return the same Allocation list, so one posting path serves both.
Zero amounts are dropped here and never posted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from ..errors import CategoryMisconfigured, SplitValidationError
from ..models.catalog import COMMISSION_FIXED_AMOUNT, COMMISSION_PERCENTAGE
from ..models.accounts import (
    ACCOUNT_INVESTMENT,
    ACCOUNT_PROFIT,
    ACCOUNT_RENT,
    ACCOUNT_REMAINING_UTILITY,
)


ROLE_INVESTMENT = ACCOUNT_INVESTMENT
ROLE_PROFIT = ACCOUNT_PROFIT
ROLE_RENT = ACCOUNT_RENT
ROLE_REMAINING_UTILITY = ACCOUNT_REMAINING_UTILITY
ROLE_PARTNER = "partner"


# =============================================================================
# COMMISSION RULE
# =============================================================================

@dataclass(frozen=True)
class Percentage:
    """Whole-percent commission of the line total, rounded half-up to the cent."""
    rate: int

    def commission_for(self, line_total_cents: int) -> int:
        return (line_total_cents * self.rate * 2 + 100) // 200


@dataclass(frozen=True)
class FixedAmount:
    """Flat commission per stored sale line, not scaled by quantity; a straddled request pays it on each line."""
    amount_cents: int

    def commission_for(self, line_total_cents: int) -> int:
        return self.amount_cents


CommissionRule = Optional[Union[Percentage, FixedAmount]]


def commission_rule_for(category) -> CommissionRule:
    """
    Derive the commission rule of a category.

    Non-startup (or missing) categories have no rule. A startup category
    without a usable type/value is a configuration error.
    """
    if category is None or not category.is_startup:
        return None

    value = category.commission_value
    details = {"category_id": category.id, "commission_type": category.commission_type}
    if value is None or value < 0:
        raise CategoryMisconfigured(
            f"Category {category.name!r} has no commission configured", details
        )
    if category.commission_type == COMMISSION_PERCENTAGE:
        if value > 100:
            raise CategoryMisconfigured(
                f"Category {category.name!r} commission exceeds 100%", details
            )
        return Percentage(rate=value)
    if category.commission_type == COMMISSION_FIXED_AMOUNT:
        return FixedAmount(amount_cents=value)
    raise CategoryMisconfigured(
        f"Category {category.name!r} has an unknown commission type", details
    )


def rule_for_line(commission_cents: int | None, category) -> CommissionRule:
    """
    Rule to apply when distributing a stored line.

    The commission snapshotted at sale time wins over the category's
    current configuration.
    """
    if commission_cents is not None:
        return FixedAmount(amount_cents=commission_cents)
    return commission_rule_for(category)


# =============================================================================
# SPLIT
# =============================================================================

@dataclass(frozen=True)
class LineFigures:
    line_total_cents: int
    line_total_cost_cents: int
    commission_cents: int | None = None
    label: str = ""

    @property
    def potential_profit_cents(self) -> int:
        return self.line_total_cents - self.line_total_cost_cents


@dataclass(frozen=True)
class DeclaredSplit:
    """Amounts supplied by the caller for caller-computed mode."""
    profit_cents: int
    rent_cents: int
    investment_cents: int = 0
    partner_account_id: int | None = None
    partner_amount_cents: int = 0

    @property
    def has_partner(self) -> bool:
        return self.partner_account_id is not None


@dataclass(frozen=True)
class Allocation:
    """One credit to post. account_id is only set for a caller-named partner account."""
    role: str
    amount_cents: int
    description: str
    account_id: int | None = None


def _non_zero(allocations: list[Allocation]) -> list[Allocation]:
    return [a for a in allocations if a.amount_cents > 0]


def compute_split(figures: LineFigures, rule: CommissionRule, rent_cents: int) -> list[Allocation]:
    """Engine-computed split of one line."""
    if rent_cents < 0:
        raise SplitValidationError("rent_amount cannot be negative", {"rent_cents": rent_cents})

    label = figures.label
    if rule is not None:
        profit = rule.commission_for(figures.line_total_cents)
        partner = figures.line_total_cents - profit
        if partner < 0:
            raise SplitValidationError(
                f"Commission ({profit}) exceeds the line total ({figures.line_total_cents})",
                {"commission_cents": profit, "line_total_cents": figures.line_total_cents},
            )
        if rent_cents > profit:
            raise SplitValidationError(
                f"rent_amount ({rent_cents}) cannot exceed the profit ({profit})",
                {"rent_cents": rent_cents, "profit_cents": profit},
            )
        return _non_zero([
            Allocation(ROLE_PROFIT, profit, f"Startup product commission: {label}"),
            Allocation(ROLE_PARTNER, partner, f"Startup product sale: {label}"),
            Allocation(ROLE_RENT, rent_cents, f"Line rent: {label}"),
            Allocation(ROLE_REMAINING_UTILITY, profit - rent_cents, f"Remaining utility: {label}"),
        ])

    profit = figures.potential_profit_cents
    if rent_cents > profit:
        raise SplitValidationError(
            f"rent_amount ({rent_cents}) cannot exceed the profit ({profit})",
            {"rent_cents": rent_cents, "profit_cents": profit},
        )
    return _non_zero([
        Allocation(ROLE_INVESTMENT, figures.line_total_cost_cents, f"Line investment: {label}"),
        Allocation(ROLE_PROFIT, profit, f"Line profit: {label}"),
        Allocation(ROLE_RENT, rent_cents, f"Line rent: {label}"),
        Allocation(ROLE_REMAINING_UTILITY, profit - rent_cents, f"Remaining utility: {label}"),
    ])


def validate_declared_split(figures: LineFigures, declared: DeclaredSplit) -> list[Allocation]:
    """Caller-computed split of one line: check the declared amounts, then echo them."""
    amounts = {
        "profit_cents": declared.profit_cents,
        "rent_cents": declared.rent_cents,
        "investment_cents": declared.investment_cents,
        "partner_amount_cents": declared.partner_amount_cents,
    }
    negative = [name for name, value in amounts.items() if value < 0]
    if negative:
        raise SplitValidationError("Split amounts cannot be negative", {"fields": negative})

    rent = declared.rent_cents
    if figures.commission_cents:
        if rent > figures.commission_cents:
            raise SplitValidationError(
                f"rent ({rent}) cannot exceed the commission ({figures.commission_cents})",
                {"rent_cents": rent, "commission_cents": figures.commission_cents},
            )
    else:
        potential = figures.potential_profit_cents
        if rent > potential:
            raise SplitValidationError(
                f"rent ({rent}) cannot exceed the potential profit ({potential})",
                {"rent_cents": rent, "potential_profit_cents": potential},
            )
        expected = potential - rent
        if declared.profit_cents != expected:
            raise SplitValidationError(
                f"profit ({declared.profit_cents}) must equal potential profit minus rent ({expected})",
                {"profit_cents": declared.profit_cents, "expected_profit_cents": expected},
            )

    label = figures.label
    if declared.has_partner:
        return _non_zero([
            Allocation(ROLE_PROFIT, declared.profit_cents, f"Startup product commission (after rent): {label}"),
            Allocation(
                ROLE_PARTNER,
                declared.partner_amount_cents,
                f"Startup product sale: {label}",
                account_id=declared.partner_account_id,
            ),
            Allocation(ROLE_RENT, rent, f"Line rent: {label}"),
        ])
    return _non_zero([
        Allocation(ROLE_INVESTMENT, declared.investment_cents, f"Line investment: {label}"),
        Allocation(ROLE_PROFIT, declared.profit_cents, f"Line profit (after rent): {label}"),
        Allocation(ROLE_RENT, rent, f"Line rent: {label}"),
    ])
