# Overview: Flask API routes for sales and payments; parses input and returns JSON responses.

# backend/backoffice/routes/sales.py
"""Sales API routes with permission enforcement"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import EngineError, InvalidRequest
from ..services import audit_service, payment_service, sales_service
from ..decorators import require_actor, require_permission
from backoffice.time_utils import parse_iso_datetime


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _parse_active(raw: str | None):
    if raw is None or raw == "":
        return True
    lowered = raw.strip().lower()
    if lowered == "all":
        return None
    return lowered in ("1", "true", "yes")


@sales_bp.post("/checkout")
@require_actor
@require_permission("CREATE_SALE")
def checkout_route():
    """
    Create a sale together with its payments.

    Requires: CREATE_SALE permission

    Request body:
    {
        "user_id": 7,                      (optional, defaults to the actor)
        "lines": [{"product_id": 1, "quantity": 4, "unit_price_cents": 250}],
        "total_amount_cents": 1000,
        "payments": [{"method": "CASH", "amount_cents": 1000, "paid_at": "..."}]
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        buyer_id = data.get("user_id", g.current_user.id)

        sale = sales_service.create_sale_with_payments(
            buyer_id=buyer_id,
            lines=data.get("lines"),
            total_amount_cents=data.get("total_amount_cents"),
            payments=data.get("payments"),
        )
        payments = sales_service.list_sale_payments(sale.id)

        audit_service.record_action(
            g.current_user, "sale", sale.id, "SALE_CREATED",
            details={"total_cents": sale.total_cents, "status": sale.status, "payments": len(payments)},
            source_address=request.remote_addr,
        )

        return jsonify({
            "sale": sale.to_dict(),
            "payments": [p.to_dict() for p in payments],
        }), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/")
@sales_bp.get("")
@require_actor
@require_permission("VIEW_SALES")
def list_sales_route():
    """List sales. ?active=true|false|all (default true)."""
    active = _parse_active(request.args.get("active"))
    sales = sales_service.list_sales(active=active)
    return jsonify({"sales": [s.to_dict(include_lines=False) for s in sales]}), 200


@sales_bp.get("/unaccounted-lines")
@require_actor
@require_permission("VIEW_SALES")
def unaccounted_lines_route():
    """
    Lines still waiting for profit distribution.

    Query: ?start=YYYY-MM-DD&end=YYYY-MM-DD (end covers its whole day)
    """
    try:
        start = parse_iso_datetime(request.args.get("start"))
        end = parse_iso_datetime(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start/end must be ISO-8601 dates"}), 400

    lines = sales_service.list_unaccounted_lines(start=start, end=end)
    return jsonify({"lines": [line.to_dict() for line in lines]}), 200


@sales_bp.get("/<int:sale_id>")
@require_actor
@require_permission("VIEW_SALES")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        payments = sales_service.list_sale_payments(sale_id)
        return jsonify({
            "sale": sale.to_dict(),
            "payments": [p.to_dict() for p in payments],
        }), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status


@sales_bp.get("/<int:sale_id>/payments")
@require_actor
@require_permission("VIEW_SALES")
def list_sale_payments_route(sale_id: int):
    try:
        payments = sales_service.list_sale_payments(sale_id)
        return jsonify({"payments": [p.to_dict() for p in payments]}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status


@sales_bp.post("/<int:sale_id>/payments")
@require_actor
@require_permission("CREATE_PAYMENT")
def add_payment_route(sale_id: int):
    """
    Add a payment to an existing sale.

    Requires: CREATE_PAYMENT permission

    Request body:
    {
        "method": "CASH" | "TRANSFER" | "CARD",
        "amount_cents": 500,
        "paid_at": "2024-01-15T10:30:00Z"  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("method") is None or data.get("amount_cents") is None:
            raise InvalidRequest("method and amount_cents required")

        payment = payment_service.add_payment(
            sale_id=sale_id,
            method=data["method"],
            amount_cents=data["amount_cents"],
            actor_id=g.current_user.id,
            paid_at=data.get("paid_at"),
        )
        sale = sales_service.get_sale(sale_id)

        audit_service.record_action(
            g.current_user, "payment", payment.id, "PAYMENT_ADDED",
            details={"sale_id": sale_id, "method": payment.method, "amount_cents": payment.amount_cents},
            source_address=request.remote_addr,
        )

        return jsonify({
            "payment": payment.to_dict(),
            "sale": sale.to_dict(include_lines=False),
        }), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to add payment")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/payments/<int:payment_id>")
@require_actor
@require_permission("DELETE_PAYMENT")
def remove_payment_route(payment_id: int):
    """
    Remove one payment from its sale.

    Requires: DELETE_PAYMENT permission
    """
    try:
        sale = payment_service.remove_payment(payment_id)

        audit_service.record_action(
            g.current_user, "payment", payment_id, "PAYMENT_REMOVED",
            details={"sale_id": sale.id, "status": sale.status},
            reason=(request.get_json(silent=True) or {}).get("reason"),
            source_address=request.remote_addr,
        )

        return jsonify({"sale": sale.to_dict(include_lines=False)}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to remove payment")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.patch("/payments/<int:payment_id>")
@require_actor
@require_permission("UPDATE_PAYMENT")
def update_payment_route(payment_id: int):
    """
    Change a payment's method, amount or date.

    Requires: UPDATE_PAYMENT permission

    Request body (every field optional):
    {
        "method": "CASH" | "TRANSFER" | "CARD",
        "amount_cents": 500,
        "paid_at": "2024-01-15T10:30:00Z"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if not any(data.get(field) is not None for field in ("method", "amount_cents", "paid_at")):
            raise InvalidRequest("method, amount_cents or paid_at required")

        payment = payment_service.update_payment(
            payment_id,
            method=data.get("method"),
            amount_cents=data.get("amount_cents"),
            paid_at=data.get("paid_at"),
        )
        sale = sales_service.get_sale(payment.sale_id)

        audit_service.record_action(
            g.current_user, "payment", payment.id, "PAYMENT_UPDATED",
            details={"sale_id": sale.id, "method": payment.method, "amount_cents": payment.amount_cents},
            source_address=request.remote_addr,
        )

        return jsonify({
            "payment": payment.to_dict(),
            "sale": sale.to_dict(include_lines=False),
        }), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update payment")
        return jsonify({"error": "Internal server error"}), 500


def _toggle_sale(sale_id: int, active: bool):
    try:
        if active:
            sale = sales_service.reactivate_sale(sale_id)
        else:
            sale = sales_service.deactivate_sale(sale_id)

        audit_service.record_action(
            g.current_user, "sale", sale.id,
            "SALE_REACTIVATED" if active else "SALE_DEACTIVATED",
            reason=(request.get_json(silent=True) or {}).get("reason"),
            source_address=request.remote_addr,
        )

        return jsonify({"sale": sale.to_dict(include_lines=False)}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to change sale %s", sale_id)
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/deactivate")
@require_actor
@require_permission("MANAGE_SALES")
def deactivate_sale_route(sale_id: int):
    return _toggle_sale(sale_id, active=False)


@sales_bp.post("/<int:sale_id>/reactivate")
@require_actor
@require_permission("MANAGE_SALES")
def reactivate_sale_route(sale_id: int):
    return _toggle_sale(sale_id, active=True)
