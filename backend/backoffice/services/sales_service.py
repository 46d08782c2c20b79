# Overview: Sale fulfillment engine; FIFO allocation plus atomic sale/payment/drawer commit.

"""
Sale Fulfillment Engine

create_sale_with_payments() is the only way a sale comes into existence.
It runs as one unit of work:

1. Allocate every requested line against the product's lots (FIFO).
   A request that straddles N lots becomes N SaleLines, each with its own
   lot's unit cost.
2. Re-check after the allocations are flushed: every touched lot still has
   available >= 0, and each product's stock equals its pre-sale stock
   minus the quantity requested. A concurrent writer that slipped in
   between read and write is caught here (or by version_id at flush).
3. Persist the sale (PENDING), then its payments. CASH payments attach the
   drawer open at the time, resolved once per call.
4. Derive the status from the paid total vs. the authoritative total,
   which is the sum of generated line totals, not the declared total.
5. Credit the drawer with every CASH payment.

Any failure rolls everything back. There is never a sale without payments
and never a payment, lot or drawer change without its sale.
"""

from collections import OrderedDict

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Payment, Product, Sale, SaleLine
from ..models.sales import PAYMENT_CASH, SALE_STATUS_PENDING
from ..errors import (
    InsufficientStock,
    InvalidRequest,
    InventoryConsistencyViolation,
    NoPaymentsProvided,
    PaymentsExceedTotal,
    SaleNotFound,
)
from backoffice.time_utils import end_of_day, utcnow
from backoffice.validation import optional_timestamp, require_cents, require_positive_int
from . import inventory_service
from .concurrency import lock_for_update, unit_of_work
from .payment_service import derive_sale_status, normalize_method
from .profit_split import commission_rule_for
from .register_service import apply_increment, get_open_drawer
from .user_service import get_user


# =============================================================================
# INPUT NORMALIZATION (before any write)
# =============================================================================

def _normalize_lines(lines) -> list[dict]:
    if not lines:
        raise InvalidRequest("A sale needs at least one line")
    normalized = []
    for position, item in enumerate(lines, start=1):
        if not isinstance(item, dict):
            raise InvalidRequest(f"Line {position} must be an object")
        if item.get("product_id") is None:
            raise InvalidRequest(f"Line {position} is missing product_id")
        unit_price = item.get("unit_price_cents")
        normalized.append({
            "product_id": item["product_id"],
            "quantity": require_positive_int(item.get("quantity"), f"lines[{position}].quantity"),
            "unit_price_cents": (
                require_cents(unit_price, f"lines[{position}].unit_price_cents")
                if unit_price is not None else None
            ),
        })
    return normalized


def _normalize_payments(payments) -> list[dict]:
    if not payments:
        raise NoPaymentsProvided("At least one payment is required")
    normalized = []
    for position, item in enumerate(payments, start=1):
        if not isinstance(item, dict):
            raise InvalidRequest(f"Payment {position} must be an object")
        normalized.append({
            "method": normalize_method(item.get("method")),
            "amount_cents": require_cents(
                item.get("amount_cents"), f"payments[{position}].amount_cents", allow_zero=False
            ),
            "paid_at": optional_timestamp(item.get("paid_at"), f"payments[{position}].paid_at"),
        })
    return normalized


def _sale_category(product: Product):
    """Startup category if the product has one, else its first category."""
    categories = list(product.categories)
    for category in categories:
        if category.is_startup:
            return category
    return categories[0] if categories else None


# =============================================================================
# FULFILLMENT
# =============================================================================

def _recheck_inventory(touched: dict, stock_before: dict, requested: dict) -> None:
    """Re-read what this unit of work wrote and verify nothing was lost."""
    db.session.flush()
    for product_id, draws in touched.items():
        for draw in draws:
            db.session.refresh(draw.lot)
            if draw.lot.available < 0:
                raise InsufficientStock(
                    f"Lot {draw.lot.id} would go negative",
                    {"lot_id": draw.lot.id, "available": draw.lot.available},
                )

        product = db.session.get(Product, product_id)
        db.session.refresh(product)
        expected = stock_before[product_id] - requested[product_id]
        if product.stock < 0:
            raise InsufficientStock(
                f"Stock for product {product_id} would go negative",
                {"product_id": product_id, "stock": product.stock},
            )
        allocated = sum(draw.quantity for draw in draws)
        if product.stock != expected or allocated != requested[product_id]:
            raise InventoryConsistencyViolation(
                f"Inventory re-check failed for product {product_id}",
                {
                    "product_id": product_id,
                    "expected_stock": expected,
                    "actual_stock": product.stock,
                    "requested": requested[product_id],
                    "allocated": allocated,
                },
            )


def create_sale_with_payments(buyer_id: int, lines, total_amount_cents: int, payments) -> Sale:
    """
    Create a sale, its payments and all their side effects atomically.

    Args:
        buyer_id: user the sale belongs to (also recorded on each payment)
        lines: [{"product_id", "quantity", "unit_price_cents"?}]
        total_amount_cents: client-declared total, used for the
            over-payment check and kept for reference
        payments: [{"method", "amount_cents", "paid_at"?}]

    Raises:
        UserNotFound, ProductNotFound, InsufficientStock, NoPaymentsProvided,
        PaymentsExceedTotal, InvalidPaymentMethod, InvalidRequest,
        CategoryMisconfigured, InventoryConsistencyViolation
    """
    payment_items = _normalize_payments(payments)
    line_items = _normalize_lines(lines)
    declared_total = require_cents(total_amount_cents, "total_amount_cents")

    paid_cents = sum(p["amount_cents"] for p in payment_items)
    if paid_cents > declared_total:
        raise PaymentsExceedTotal(
            "Payments exceed the sale total",
            {"total_cents": declared_total, "paid_cents": paid_cents},
        )

    try:
        with unit_of_work():
            buyer = get_user(buyer_id)
            now = utcnow()

            touched: "OrderedDict[int, list]" = OrderedDict()
            stock_before: dict[int, int] = {}
            requested: dict[int, int] = {}
            sale_lines: list[SaleLine] = []
            authoritative_total = 0

            for item in line_items:
                product = inventory_service.get_product(item["product_id"], lock=True)
                if product.id not in stock_before:
                    stock_before[product.id] = product.stock
                unit_price = item["unit_price_cents"]
                if unit_price is None:
                    unit_price = product.sell_price_cents
                if unit_price is None:
                    raise InvalidRequest(
                        f"Product {product.id} has no sell price; unit_price_cents is required",
                        {"product_id": product.id},
                    )

                category = _sale_category(product)
                rule = commission_rule_for(category)

                draws = inventory_service.allocate(product.id, item["quantity"])
                touched.setdefault(product.id, []).extend(draws)
                requested[product.id] = requested.get(product.id, 0) + item["quantity"]

                for draw in draws:
                    line_total = draw.quantity * unit_price
                    sale_lines.append(SaleLine(
                        line_number=len(sale_lines) + 1,
                        product_id=product.id,
                        lot_id=draw.lot.id,
                        category_id=category.id if category else None,
                        quantity=draw.quantity,
                        unit_price_cents=unit_price,
                        unit_cost_cents=draw.unit_cost_cents,
                        line_total_cents=line_total,
                        line_total_cost_cents=draw.quantity * draw.unit_cost_cents,
                        commission_cents=rule.commission_for(line_total) if rule else None,
                        accounted=False,
                    ))
                    authoritative_total += line_total

            _recheck_inventory(touched, stock_before, requested)

            if paid_cents > authoritative_total:
                raise PaymentsExceedTotal(
                    "Payments exceed the sale total",
                    {"total_cents": authoritative_total, "paid_cents": paid_cents},
                )

            sale = Sale(
                user_id=buyer.id,
                total_cents=authoritative_total,
                declared_total_cents=declared_total,
                status=SALE_STATUS_PENDING,
                is_active=True,
                created_at=now,
            )
            sale.lines = sale_lines
            db.session.add(sale)
            db.session.flush()

            drawer = None
            if any(p["method"] == PAYMENT_CASH for p in payment_items):
                drawer = get_open_drawer(lock=True)
                if drawer is None:
                    current_app.logger.warning(
                        "Cash payment on sale %s recorded without an open cash register", sale.id
                    )

            for item in payment_items:
                is_cash = item["method"] == PAYMENT_CASH
                db.session.add(Payment(
                    sale_id=sale.id,
                    method=item["method"],
                    amount_cents=item["amount_cents"],
                    paid_at=item["paid_at"],
                    user_id=buyer.id,
                    cash_register_id=drawer.id if (is_cash and drawer) else None,
                    created_at=now,
                ))

            sale.status = derive_sale_status(authoritative_total, paid_cents)

            if drawer is not None:
                for item in payment_items:
                    if item["method"] == PAYMENT_CASH:
                        apply_increment(drawer, item["amount_cents"])
    except StaleDataError as exc:
        raise InventoryConsistencyViolation(
            "Inventory changed concurrently while the sale was being recorded",
            {"reason": str(exc)},
        ) from exc
    except IntegrityError as exc:
        raise InventoryConsistencyViolation(
            "Inventory constraint rejected the sale",
            {"reason": str(exc.orig)},
        ) from exc

    current_app.logger.info(
        "Sale %s created: %s lines, total %s cents, status %s",
        sale.id, len(sale_lines), authoritative_total, sale.status,
    )
    return sale


# =============================================================================
# READS
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise SaleNotFound(f"Sale {sale_id} not found", {"sale_id": sale_id})
    return sale


def list_sales(active: bool | None = True) -> list[Sale]:
    query = db.session.query(Sale)
    if active is not None:
        query = query.filter(Sale.is_active.is_(active))
    return query.order_by(Sale.created_at.desc(), Sale.id.desc()).all()


def list_sale_payments(sale_id: int) -> list[Payment]:
    get_sale(sale_id)
    return db.session.query(Payment).filter_by(sale_id=sale_id).order_by(
        Payment.paid_at.asc(), Payment.id.asc()
    ).all()


def list_unaccounted_lines(start=None, end=None) -> list[SaleLine]:
    """
    Lines of active sales still waiting for distribution.

    start/end bound the sale's creation time; end covers its whole day.
    """
    query = db.session.query(SaleLine).join(Sale, SaleLine.sale_id == Sale.id).filter(
        SaleLine.accounted.is_(False),
        Sale.is_active.is_(True),
    )
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end_of_day(end))
    return query.order_by(Sale.created_at.asc(), SaleLine.sale_id.asc(), SaleLine.line_number.asc()).all()


# =============================================================================
# SOFT DELETE
# =============================================================================

def _set_active(sale_id: int, active: bool) -> Sale:
    with unit_of_work():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise SaleNotFound(f"Sale {sale_id} not found", {"sale_id": sale_id})
        sale.is_active = active
    return sale


def deactivate_sale(sale_id: int) -> Sale:
    """
    Hide a sale from the active listings and the distribution worklist.

    Lots, payments and the drawer are left untouched; an inactive sale
    takes no further payments. Deactivating twice is a no-op.
    """
    sale = _set_active(sale_id, False)
    current_app.logger.info("Sale %s deactivated", sale_id)
    return sale


def reactivate_sale(sale_id: int) -> Sale:
    sale = _set_active(sale_id, True)
    current_app.logger.info("Sale %s reactivated", sale_id)
    return sale
