# Overview: Flask API routes for purchase lots; parses input and returns JSON responses.

# backend/backoffice/routes/inventory.py
"""
Inventory API Routes

DESIGN:
- Receiving a purchase creates a lot and raises the product's stock
- Lots are never deleted: deactivation withdraws the remaining units from
  allocation and reactivation returns them
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import EngineError, InvalidRequest
from ..services import audit_service, inventory_service
from ..decorators import require_actor, require_permission
from backoffice.validation import require_cents, require_positive_int


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/products/<int:product_id>/lots")
@require_actor
@require_permission("VIEW_INVENTORY")
def list_lots_route(product_id: int):
    """Lots of a product, oldest first. ?include_exhausted=true also lists empty and inactive lots."""
    include_exhausted = request.args.get("include_exhausted", "").strip().lower() in ("1", "true", "yes")
    try:
        lots = inventory_service.list_lots(product_id, include_exhausted=include_exhausted)
        return jsonify({"lots": [lot.to_dict() for lot in lots]}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status


@inventory_bp.post("/products/<int:product_id>/lots")
@require_actor
@require_permission("RECEIVE_INVENTORY")
def receive_lot_route(product_id: int):
    """
    Receive a purchase of a product.

    Requires: RECEIVE_INVENTORY permission

    Request body:
    {
        "quantity": 12,
        "unit_cost_cents": 150
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("quantity") is None or data.get("unit_cost_cents") is None:
            raise InvalidRequest("quantity and unit_cost_cents required")

        lot = inventory_service.receive_lot(
            product_id,
            require_positive_int(data["quantity"], "quantity"),
            require_cents(data["unit_cost_cents"], "unit_cost_cents"),
        )

        audit_service.record_action(
            g.current_user, "purchase_lot", lot.id, "LOT_RECEIVED",
            details={"product_id": product_id, "quantity": lot.quantity, "unit_cost_cents": lot.unit_cost_cents},
            source_address=request.remote_addr,
        )

        return jsonify({"lot": lot.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to receive lot")
        return jsonify({"error": "Internal server error"}), 500


def _toggle_lot(lot_id: int, active: bool):
    try:
        if active:
            lot = inventory_service.reactivate_lot(lot_id)
        else:
            lot = inventory_service.deactivate_lot(lot_id)

        audit_service.record_action(
            g.current_user, "purchase_lot", lot.id,
            "LOT_REACTIVATED" if active else "LOT_DEACTIVATED",
            details={"available": lot.available},
            reason=(request.get_json(silent=True) or {}).get("reason"),
            source_address=request.remote_addr,
        )

        return jsonify({"lot": lot.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to change lot %s", lot_id)
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/lots/<int:lot_id>/deactivate")
@require_actor
@require_permission("MANAGE_INVENTORY")
def deactivate_lot_route(lot_id: int):
    return _toggle_lot(lot_id, active=False)


@inventory_bp.post("/lots/<int:lot_id>/reactivate")
@require_actor
@require_permission("MANAGE_INVENTORY")
def reactivate_lot_route(lot_id: int):
    return _toggle_lot(lot_id, active=True)
