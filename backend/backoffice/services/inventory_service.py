# Overview: Service-layer operations for purchase lots and FIFO allocation.

# backend/backoffice/services/inventory_service.py

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Product, PurchaseLot
from ..errors import InsufficientStock, InvalidRequest, LotNotFound, ProductNotFound
from backoffice.time_utils import utcnow
from .concurrency import lock_for_update, unit_of_work
"""
Lot inventory invariants (authoritative)

- Every unit in stock belongs to exactly one PurchaseLot.
- 0 <= lot.available <= lot.quantity at all times.
- Product.stock == SUM(available) over the product's active lots. It is a
  cache, written only here: +quantity on receive, -quantity on allocation,
  -available when a lot is deactivated.
- FIFO: allocation consumes active lots with available > 0 ordered by
  (created_at, id) ascending. A request that straddles N lots produces N
  draws, each at that lot's own unit cost. Costs are never blended.
- Allocation never commits. The caller owns the unit of work, and every
  touched row carries version_id so a concurrent writer fails the flush.
"""


@dataclass(frozen=True)
class LotDraw:
    """Units taken from one lot by a single allocation."""
    lot: PurchaseLot
    quantity: int
    unit_cost_cents: int


def get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise ProductNotFound(f"Product {product_id} not found", {"product_id": product_id})
    return product


def _fetch_fifo_lots(product_id: int) -> list[PurchaseLot]:
    """Active lots with stock left, oldest first, locked for update."""
    query = db.session.query(PurchaseLot).filter(
        PurchaseLot.product_id == product_id,
        PurchaseLot.is_active.is_(True),
        PurchaseLot.available > 0,
    ).order_by(PurchaseLot.created_at.asc(), PurchaseLot.id.asc())
    return lock_for_update(query).all()


def allocate(product_id: int, quantity: int) -> list[LotDraw]:
    """
    Consume `quantity` units of a product from its lots in FIFO order.

    Stages the lot decrements and a single product stock decrement in the
    current session. Does not flush or commit.

    Raises:
        InvalidRequest: quantity is not a positive integer
        ProductNotFound: unknown product
        InsufficientStock: active lots hold fewer than `quantity` units
    """
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise InvalidRequest("quantity must be a positive integer", {"product_id": product_id})

    product = get_product(product_id, lock=True)
    lots = _fetch_fifo_lots(product_id)

    on_hand = sum(lot.available for lot in lots)
    if on_hand < quantity:
        raise InsufficientStock(
            f"Insufficient stock for product {product.name!r}",
            {"product_id": product_id, "requested": quantity, "available": on_hand},
        )

    draws: list[LotDraw] = []
    remaining = quantity
    for lot in lots:
        if remaining == 0:
            break
        take = min(remaining, lot.available)
        lot.available = lot.available - take
        draws.append(LotDraw(lot=lot, quantity=take, unit_cost_cents=lot.unit_cost_cents))
        remaining -= take

    product.stock = product.stock - quantity
    return draws


# =============================================================================
# LOT MANAGEMENT
# =============================================================================

def receive_lot(product_id: int, quantity: int, unit_cost_cents: int) -> PurchaseLot:
    """Record a purchase: new active lot, product stock += quantity."""
    if not isinstance(quantity, int) or quantity <= 0:
        raise InvalidRequest("quantity must be a positive integer")
    if not isinstance(unit_cost_cents, int) or unit_cost_cents < 0:
        raise InvalidRequest("unit_cost_cents must be a non-negative integer")

    with unit_of_work():
        product = get_product(product_id, lock=True)
        lot = PurchaseLot(
            product_id=product.id,
            unit_cost_cents=unit_cost_cents,
            quantity=quantity,
            available=quantity,
            is_active=True,
            created_at=utcnow(),
        )
        db.session.add(lot)
        product.stock = product.stock + quantity

    return lot


def list_lots(product_id: int, include_exhausted: bool = False) -> list[PurchaseLot]:
    get_product(product_id)
    query = db.session.query(PurchaseLot).filter(PurchaseLot.product_id == product_id)
    if not include_exhausted:
        query = query.filter(PurchaseLot.available > 0, PurchaseLot.is_active.is_(True))
    return query.order_by(PurchaseLot.created_at.asc(), PurchaseLot.id.asc()).all()


def deactivate_lot(lot_id: int) -> PurchaseLot:
    """
    Withdraw a lot from allocation.

    Its remaining units leave Product.stock so the cache keeps matching
    the active lots. Deactivating an inactive lot is a no-op.
    """
    with unit_of_work():
        lot = lock_for_update(db.session.query(PurchaseLot).filter_by(id=lot_id)).first()
        if lot is None:
            raise LotNotFound(f"Lot {lot_id} not found", {"lot_id": lot_id})
        if lot.is_active:
            product = get_product(lot.product_id, lock=True)
            product.stock = product.stock - lot.available
            lot.is_active = False

    return lot


def reactivate_lot(lot_id: int) -> PurchaseLot:
    """Return a lot to allocation; its remaining units rejoin Product.stock."""
    with unit_of_work():
        lot = lock_for_update(db.session.query(PurchaseLot).filter_by(id=lot_id)).first()
        if lot is None:
            raise LotNotFound(f"Lot {lot_id} not found", {"lot_id": lot_id})
        if not lot.is_active:
            product = get_product(lot.product_id, lock=True)
            product.stock = product.stock + lot.available
            lot.is_active = True

    return lot
