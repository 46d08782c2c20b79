# Overview: Service-layer operations for payments against existing sales.

"""
Payment Service

WHY: A sale may be settled in several payments, before or after checkout.
Every payment movement must keep three things consistent in one unit of
work: the payment rows, the sale status and the open drawer's balance.

INVARIANTS:
- SUM(payments.amount_cents) <= sale.total_cents (over-payment is rejected,
  never clamped)
- status is derived, not stored by hand: PAID when fully paid, else PENDING
- CASH payments reference the drawer open when they were taken (if any)
  and move that drawer's balance
- a sale always keeps at least one payment row
"""

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Payment, Sale
from ..models.sales import (
    PAYMENT_CASH,
    SALE_STATUS_PAID,
    SALE_STATUS_PENDING,
    VALID_PAYMENT_METHODS,
)
from ..errors import (
    InvalidPaymentMethod,
    InvalidRequest,
    PaymentNotFound,
    PaymentRemovalNotAllowed,
    PaymentsExceedTotal,
    SaleNotFound,
)
from backoffice.time_utils import utcnow
from backoffice.validation import optional_timestamp, require_cents
from .concurrency import lock_for_update, unit_of_work
from .register_service import apply_decrement, apply_increment, get_open_drawer
from .user_service import get_user


def normalize_method(method) -> str:
    """Canonical upper-case payment method, or InvalidPaymentMethod."""
    normalized = method.strip().upper() if isinstance(method, str) else None
    if normalized not in VALID_PAYMENT_METHODS:
        raise InvalidPaymentMethod(
            f"Invalid payment method: {method!r}. Must be one of {VALID_PAYMENT_METHODS}",
            {"method": method},
        )
    return normalized


def derive_sale_status(total_cents: int, paid_cents: int) -> str:
    return SALE_STATUS_PAID if paid_cents >= total_cents else SALE_STATUS_PENDING


def paid_total(sale_id: int) -> int:
    total = db.session.query(
        func.coalesce(func.sum(Payment.amount_cents), 0)
    ).filter(Payment.sale_id == sale_id).scalar()
    return int(total or 0)


def _lock_sale(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise SaleNotFound(f"Sale {sale_id} not found", {"sale_id": sale_id})
    return sale


def _require_active(sale: Sale) -> None:
    if not sale.is_active:
        raise InvalidRequest(
            f"Sale {sale.id} is inactive and takes no payment changes", {"sale_id": sale.id}
        )


def add_payment(
    sale_id: int,
    method: str,
    amount_cents: int,
    actor_id: int,
    paid_at=None,
) -> Payment:
    """
    Record a later payment against an existing sale.

    Raises:
        InvalidPaymentMethod / InvalidRequest: bad input
        SaleNotFound: unknown sale
        PaymentsExceedTotal: the payment would push the paid total over the sale total
    """
    method = normalize_method(method)
    amount_cents = require_cents(amount_cents, "amount_cents", allow_zero=False)
    paid_at = optional_timestamp(paid_at, "paid_at")

    with unit_of_work():
        actor = get_user(actor_id)
        sale = _lock_sale(sale_id)
        _require_active(sale)

        already_paid = paid_total(sale.id)
        if already_paid + amount_cents > sale.total_cents:
            raise PaymentsExceedTotal(
                "Payments exceed the sale total",
                {
                    "sale_id": sale.id,
                    "total_cents": sale.total_cents,
                    "paid_cents": already_paid,
                    "amount_cents": amount_cents,
                },
            )

        drawer = None
        if method == PAYMENT_CASH:
            drawer = get_open_drawer(lock=True)
            if drawer is None:
                current_app.logger.warning(
                    "Cash payment on sale %s recorded without an open cash register", sale.id
                )

        payment = Payment(
            sale_id=sale.id,
            method=method,
            amount_cents=amount_cents,
            paid_at=paid_at,
            user_id=actor.id,
            cash_register_id=drawer.id if drawer else None,
            created_at=utcnow(),
        )
        db.session.add(payment)
        if drawer is not None:
            apply_increment(drawer, amount_cents)

        sale.status = derive_sale_status(sale.total_cents, already_paid + amount_cents)

    return payment


def remove_payment(payment_id: int) -> Sale:
    """
    Delete one payment and re-derive its sale's status.

    A CASH payment that went into a drawer is taken back out of the open
    drawer, following the DRAWER_FLOOR_AT_ZERO policy.

    Raises:
        PaymentNotFound: unknown payment
        PaymentRemovalNotAllowed: it is the sale's last payment
        InvalidRequest: the sale is inactive
    """
    floored = bool(current_app.config.get("DRAWER_FLOOR_AT_ZERO", True))

    with unit_of_work():
        payment = lock_for_update(db.session.query(Payment).filter_by(id=payment_id)).first()
        if payment is None:
            raise PaymentNotFound(f"Payment {payment_id} not found", {"payment_id": payment_id})

        sale = _lock_sale(payment.sale_id)
        _require_active(sale)
        count = db.session.query(func.count(Payment.id)).filter(Payment.sale_id == sale.id).scalar()
        if count <= 1:
            raise PaymentRemovalNotAllowed(
                "A sale must keep at least one payment",
                {"sale_id": sale.id, "payment_id": payment_id},
            )

        if payment.method == PAYMENT_CASH and payment.cash_register_id is not None:
            drawer = get_open_drawer(lock=True)
            if drawer is None:
                current_app.logger.warning(
                    "Cash payment %s removed with no open cash register; drawer balance unchanged",
                    payment_id,
                )
            else:
                apply_decrement(drawer, payment.amount_cents, floored)

        remaining = paid_total(sale.id) - payment.amount_cents
        db.session.delete(payment)
        sale.status = derive_sale_status(sale.total_cents, remaining)

    return sale


def update_payment(payment_id: int, method=None, amount_cents=None, paid_at=None) -> Payment:
    """
    Change the method, amount or date of one payment.

    The open drawer follows the cash portion of the payment:
    - CASH -> other: the old amount leaves the drawer, the payment is detached
    - other -> CASH: the new amount enters the open drawer, which it attaches to
    - CASH amount changed: the drawer moves by the difference

    Decrements follow the DRAWER_FLOOR_AT_ZERO policy. Fields left as None
    keep their current value.

    Raises:
        PaymentNotFound: unknown payment
        InvalidPaymentMethod / InvalidRequest: bad input, or an inactive sale
        PaymentsExceedTotal: the new amount pushes the paid total over the sale total
    """
    new_method = normalize_method(method) if method is not None else None
    new_amount = (
        require_cents(amount_cents, "amount_cents", allow_zero=False)
        if amount_cents is not None else None
    )
    new_paid_at = optional_timestamp(paid_at, "paid_at") if paid_at is not None else None
    floored = bool(current_app.config.get("DRAWER_FLOOR_AT_ZERO", True))

    with unit_of_work():
        payment = lock_for_update(db.session.query(Payment).filter_by(id=payment_id)).first()
        if payment is None:
            raise PaymentNotFound(f"Payment {payment_id} not found", {"payment_id": payment_id})

        sale = _lock_sale(payment.sale_id)
        _require_active(sale)

        old_method, old_amount = payment.method, payment.amount_cents
        new_method = new_method or old_method
        new_amount = new_amount if new_amount is not None else old_amount

        paid_elsewhere = paid_total(sale.id) - old_amount
        if paid_elsewhere + new_amount > sale.total_cents:
            raise PaymentsExceedTotal(
                "Payments exceed the sale total",
                {
                    "sale_id": sale.id,
                    "total_cents": sale.total_cents,
                    "paid_cents": paid_elsewhere,
                    "amount_cents": new_amount,
                },
            )

        was_cash = old_method == PAYMENT_CASH
        is_cash = new_method == PAYMENT_CASH
        if was_cash or is_cash:
            drawer = get_open_drawer(lock=True)
            if was_cash and not is_cash:
                if payment.cash_register_id is not None and drawer is not None:
                    apply_decrement(drawer, old_amount, floored)
                payment.cash_register_id = None
            elif is_cash and not was_cash:
                if drawer is not None:
                    apply_increment(drawer, new_amount)
                    payment.cash_register_id = drawer.id
            elif new_amount != old_amount and payment.cash_register_id is not None and drawer is not None:
                if new_amount > old_amount:
                    apply_increment(drawer, new_amount - old_amount)
                else:
                    apply_decrement(drawer, old_amount - new_amount, floored)

            if drawer is None:
                current_app.logger.warning(
                    "Cash payment %s updated with no open cash register; drawer balance unchanged",
                    payment_id,
                )

        payment.method = new_method
        payment.amount_cents = new_amount
        if new_paid_at is not None:
            payment.paid_at = new_paid_at

        sale.status = derive_sale_status(sale.total_cents, paid_elsewhere + new_amount)

    return payment
