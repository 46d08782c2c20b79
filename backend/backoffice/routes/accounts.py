# Overview: Flask API routes for accounts, profit distribution and withdrawals.

# backend/backoffice/routes/accounts.py
"""
Accounts API Routes

DESIGN:
- Read-only views of standing accounts and their append-only ledger
- Distribution of sold lines: single line with caller-computed amounts,
  or a batch of lines with engine-computed amounts from rent only
- Withdrawals (closed-books operation)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import EngineError, InvalidRequest
from ..services import audit_service, distribution_service, ledger_service, withdrawal_service
from ..services.profit_split import DeclaredSplit
from ..decorators import require_actor, require_permission
from backoffice.validation import coerce_int, require_cents, require_positive_int


accounts_bp = Blueprint("accounts", __name__, url_prefix="/api/accounts")


def _declared_split(data: dict) -> DeclaredSplit:
    if not isinstance(data, dict):
        raise InvalidRequest("request body must be a JSON object")
    for field in ("profit_cents", "rent_cents"):
        if data.get(field) is None:
            raise InvalidRequest(f"{field} required")

    partner = data.get("partner") or {}
    if not isinstance(partner, dict):
        raise InvalidRequest("partner must be an object with account_id and amount_cents")
    partner_account_id = partner.get("account_id")
    return DeclaredSplit(
        profit_cents=require_cents(data["profit_cents"], "profit_cents"),
        rent_cents=require_cents(data["rent_cents"], "rent_cents"),
        investment_cents=require_cents(data.get("investment_cents", 0), "investment_cents"),
        partner_account_id=(
            require_positive_int(partner_account_id, "partner.account_id")
            if partner_account_id is not None else None
        ),
        partner_amount_cents=require_cents(partner.get("amount_cents", 0), "partner.amount_cents"),
    )


def _rent_by_line(data: dict) -> dict[int, int]:
    if not isinstance(data, dict):
        raise InvalidRequest("request body must be a JSON object")
    entries = data.get("rent_amounts")
    if not isinstance(entries, list) or not entries:
        raise InvalidRequest("rent_amounts must be a non-empty list")

    rent_by_line = {}
    for entry in entries:
        if not isinstance(entry, dict) or entry.get("line_number") is None:
            raise InvalidRequest("each rent_amounts entry needs line_number")
        if entry.get("rent_cents") is None:
            # 0 is valid, but it has to be stated
            raise InvalidRequest(
                f"rent_cents required for line {entry['line_number']} (may be 0)",
                {"line_number": entry["line_number"]},
            )
        line_number = require_positive_int(entry["line_number"], "line_number")
        if line_number in rent_by_line:
            raise InvalidRequest(f"line {line_number} listed twice", {"line_number": line_number})
        rent_by_line[line_number] = require_cents(entry["rent_cents"], "rent_cents")
    return rent_by_line


@accounts_bp.get("/")
@accounts_bp.get("")
@require_actor
@require_permission("VIEW_ACCOUNTS")
def list_accounts_route():
    accounts = ledger_service.list_accounts()
    return jsonify({"accounts": [a.to_dict() for a in accounts]}), 200


@accounts_bp.get("/<int:account_id>/transactions")
@require_actor
@require_permission("VIEW_ACCOUNTS")
def list_transactions_route(account_id: int):
    try:
        limit = coerce_int(request.args.get("limit", 100), "limit")
        offset = coerce_int(request.args.get("offset", 0), "offset")
        if limit <= 0 or offset < 0:
            raise InvalidRequest("limit must be positive and offset non-negative")

        account = ledger_service.get_account(account_id)
        transactions = ledger_service.list_account_transactions(account_id, limit=limit, offset=offset)
        return jsonify({
            "account": account.to_dict(),
            "transactions": [t.to_dict() for t in transactions],
        }), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status


@accounts_bp.post("/sales/<int:sale_id>/lines/<int:line_number>/distribute")
@require_actor
@require_permission("DISTRIBUTE_PROFIT")
def distribute_line_route(sale_id: int, line_number: int):
    """
    Distribute one line with caller-computed amounts.

    Request body:
    {
        "profit_cents": 400,
        "rent_cents": 100,
        "investment_cents": 500,
        "partner": {"account_id": 9, "amount_cents": 700}  (startup lines only)
    }
    """
    try:
        declared = _declared_split(request.get_json(silent=True) or {})
        line = distribution_service.distribute_line(sale_id, line_number, declared, g.current_user.id)

        audit_service.record_action(
            g.current_user, "sale_line", line.id, "LINE_DISTRIBUTED",
            details={"sale_id": sale_id, "line_number": line_number, "rent_cents": declared.rent_cents},
            source_address=request.remote_addr,
        )

        return jsonify({"line": line.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to distribute sale line")
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.post("/sales/<int:sale_id>/distribute")
@require_actor
@require_permission("DISTRIBUTE_PROFIT")
def distribute_lines_route(sale_id: int):
    """
    Distribute several lines of a sale; the engine computes the split.

    Request body:
    {
        "rent_amounts": [{"line_number": 1, "rent_cents": 0}, {"line_number": 2, "rent_cents": 150}]
    }
    """
    try:
        rent_by_line = _rent_by_line(request.get_json(silent=True) or {})
        lines = distribution_service.distribute_lines(sale_id, rent_by_line, g.current_user.id)

        audit_service.record_action(
            g.current_user, "sale", sale_id, "LINES_DISTRIBUTED",
            details={"line_numbers": sorted(rent_by_line)},
            source_address=request.remote_addr,
        )

        return jsonify({"lines": [line.to_dict() for line in lines]}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to distribute sale lines")
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.post("/<int:account_id>/withdrawals")
@require_actor
@require_permission("CREATE_WITHDRAWAL")
def create_withdrawal_route(account_id: int):
    """
    Withdraw money from an account. Every cash register must be closed.

    Request body:
    {
        "amount_cents": 2500,
        "description": "Supplier payment"  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("amount_cents") is None:
            raise InvalidRequest("amount_cents required")

        withdrawal = withdrawal_service.create_withdrawal(
            account_id=account_id,
            amount_cents=require_cents(data["amount_cents"], "amount_cents", allow_zero=False),
            actor_id=g.current_user.id,
            description=data.get("description"),
        )

        audit_service.record_action(
            g.current_user, "withdrawal", withdrawal.id, "WITHDRAWAL_CREATED",
            details={"account_id": account_id, "amount_cents": withdrawal.amount_cents},
            source_address=request.remote_addr,
        )

        return jsonify({"withdrawal": withdrawal.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create withdrawal")
        return jsonify({"error": "Internal server error"}), 500


@accounts_bp.get("/withdrawals")
@require_actor
@require_permission("VIEW_ACCOUNTS")
def list_withdrawals_route():
    account_id = request.args.get("account_id", type=int)
    withdrawals = withdrawal_service.list_withdrawals(account_id=account_id)
    return jsonify({"withdrawals": [w.to_dict() for w in withdrawals]}), 200
