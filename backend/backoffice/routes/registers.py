# Overview: Flask API routes for the cash drawer; parses input and returns JSON responses.

# backend/backoffice/routes/registers.py
"""
Cash Register API Routes

WHY: Cash accountability. One drawer is open at a time, and every cut
hands the float to a successor drawer in one step.

DESIGN:
- Drawer lifecycle: open -> close (closed drawers are never reopened)
- Cash cut: close + reopen with the float left behind
- Every mutation is written to the audit trail after it commits
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import EngineError, InvalidRequest
from ..services import audit_service, register_service
from ..decorators import require_actor, require_permission
from backoffice.validation import require_cents, require_positive_int


registers_bp = Blueprint("cash_register", __name__, url_prefix="/api/cash-register")


@registers_bp.get("/status")
@require_actor
@require_permission("VIEW_CASH_REGISTER")
def drawer_status_route():
    return jsonify(register_service.get_drawer_status()), 200


@registers_bp.get("/")
@registers_bp.get("")
@require_actor
@require_permission("VIEW_CASH_REGISTER")
def list_drawers_route():
    drawers = register_service.list_drawers()
    return jsonify({"cash_registers": [d.to_dict() for d in drawers]}), 200


@registers_bp.get("/<int:drawer_id>")
@require_actor
@require_permission("VIEW_CASH_REGISTER")
def get_drawer_route(drawer_id: int):
    """Drawer details with the cash payments taken while it was open."""
    try:
        drawer, payments = register_service.get_drawer_with_payments(drawer_id)
        return jsonify({
            "cash_register": drawer.to_dict(),
            "payments": [p.to_dict() for p in payments],
        }), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status


@registers_bp.post("/open")
@require_actor
@require_permission("OPEN_CASH_REGISTER")
def open_drawer_route():
    """
    Open the cash drawer.

    Request body:
    {
        "initial_balance_cents": 10000,
        "notes": "Morning float"  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("initial_balance_cents") is None:
            raise InvalidRequest("initial_balance_cents required")
        initial = require_cents(data["initial_balance_cents"], "initial_balance_cents")

        drawer = register_service.open_drawer(
            opened_by=g.current_user.id,
            initial_balance_cents=initial,
            notes=data.get("notes"),
        )

        audit_service.record_action(
            g.current_user, "cash_register", drawer.id, "DRAWER_OPENED",
            details={"initial_balance_cents": initial},
            source_address=request.remote_addr,
        )

        return jsonify({"cash_register": drawer.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to open cash register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/close")
@require_actor
@require_permission("CLOSE_CASH_REGISTER")
def close_drawer_route():
    try:
        data = request.get_json(silent=True) or {}
        drawer = register_service.close_drawer(
            closed_by=g.current_user.id,
            notes=data.get("notes"),
        )

        audit_service.record_action(
            g.current_user, "cash_register", drawer.id, "DRAWER_CLOSED",
            details={"current_balance_cents": drawer.current_balance_cents},
            source_address=request.remote_addr,
        )

        return jsonify({"cash_register": drawer.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to close cash register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/cuts")
@require_actor
@require_permission("CASH_CUT")
def cash_cut_route():
    """
    Perform a cash cut.

    Request body:
    {
        "cash_register_id": 3,
        "new_initial_balance_cents": 5000,
        "notes": "Afternoon cut"  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("cash_register_id") is None or data.get("new_initial_balance_cents") is None:
            raise InvalidRequest("cash_register_id and new_initial_balance_cents required")

        cut = register_service.perform_cut(
            drawer_id=require_positive_int(data["cash_register_id"], "cash_register_id"),
            new_initial_balance_cents=require_cents(data["new_initial_balance_cents"], "new_initial_balance_cents"),
            operator_id=g.current_user.id,
            notes=data.get("notes"),
        )

        audit_service.record_action(
            g.current_user, "cash_register", cut.cash_register_id, "DRAWER_CUT",
            details={
                "cash_cut_id": cut.id,
                "amount_extracted_cents": cut.amount_extracted_cents,
                "successor_register_id": cut.successor_register_id,
            },
            source_address=request.remote_addr,
        )

        return jsonify({
            "cash_cut": cut.to_dict(),
            "cash_register": cut.successor_register.to_dict(),
        }), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to perform cash cut")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/cuts")
@require_actor
@require_permission("VIEW_CASH_REGISTER")
def list_cuts_route():
    drawer_id = request.args.get("cash_register_id", type=int)
    cuts = register_service.list_cuts(drawer_id=drawer_id)
    return jsonify({"cash_cuts": [c.to_dict() for c in cuts]}), 200
