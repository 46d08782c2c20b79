"""
HTTP layer tests.

Verifies:
- Actor header is required (401) and the authorizer can deny (403)
- Engine failures come back as {error, kind, code, details} with the mapped status
- Checkout, drawer lifecycle, distribution and withdrawals over HTTP
- Every mutation leaves an audit event
"""

import pytest

from backoffice.extensions import db
from backoffice.models import AuditEvent


@pytest.fixture
def widget(make_product, receive):
    product = make_product(name="Widget", sell_price_cents=250)
    receive(product, 10, 100)
    return product


def _checkout(client, headers, product_id, quantity=2, payments=None, total=None):
    total = quantity * 250 if total is None else total
    return client.post("/api/sales/checkout", json={
        "lines": [{"product_id": product_id, "quantity": quantity}],
        "total_amount_cents": total,
        "payments": payments or [{"method": "CARD", "amount_cents": total}],
    }, headers=headers)


def _audit_kinds() -> list:
    db.session.expire_all()
    return [e.action_kind for e in db.session.query(AuditEvent).order_by(AuditEvent.id).all()]


# =============================================================================
# IDENTITY AND PERMISSIONS
# =============================================================================


class TestIdentity:

    def test_missing_actor_header(self, client, widget):
        response = _checkout(client, {}, widget.id)
        assert response.status_code == 401

    def test_unknown_actor(self, client, widget):
        response = _checkout(client, {"X-Actor-Id": "9999"}, widget.id)
        assert response.status_code == 401

    def test_inactive_actor(self, client, make_user, widget):
        retired = make_user(is_active=False)
        response = _checkout(client, {"X-Actor-Id": str(retired.id)}, widget.id)
        assert response.status_code == 401

    def test_authorizer_denies(self, app, client, cashier_headers, widget):
        app.config["AUTHORIZER"] = lambda user, code: code != "CREATE_SALE"

        response = _checkout(client, cashier_headers, widget.id)

        assert response.status_code == 403
        assert response.get_json()["required_permission"] == "CREATE_SALE"

        # Reads are still allowed by the same authorizer
        assert client.get("/api/sales", headers=cashier_headers).status_code == 200


# =============================================================================
# SALES
# =============================================================================


class TestSalesRoutes:

    def test_checkout_creates_sale(self, client, cashier_headers, widget):
        response = _checkout(client, cashier_headers, widget.id, quantity=3)

        assert response.status_code == 201
        body = response.get_json()
        assert body["sale"]["total_cents"] == 750
        assert body["sale"]["status"] == "PAID"
        assert len(body["sale"]["lines"]) == 1
        assert body["payments"][0]["method"] == "CARD"
        assert _audit_kinds() == ["SALE_CREATED"]

    def test_overpayment_error_payload(self, client, cashier_headers, widget):
        response = _checkout(
            client, cashier_headers, widget.id, quantity=1, total=250,
            payments=[{"method": "CARD", "amount_cents": 300}],
        )

        assert response.status_code == 400
        body = response.get_json()
        assert body["kind"] == "validation"
        assert body["code"] == "PaymentsExceedTotal"
        assert body["details"] == {"total_cents": 250, "paid_cents": 300}
        assert _audit_kinds() == []

    def test_insufficient_stock_is_conflict(self, client, cashier_headers, widget):
        response = _checkout(client, cashier_headers, widget.id, quantity=11)

        assert response.status_code == 409
        assert response.get_json()["code"] == "InsufficientStock"

    def test_float_amount_rejected(self, client, cashier_headers, widget):
        response = client.post("/api/sales/checkout", json={
            "lines": [{"product_id": widget.id, "quantity": 1}],
            "total_amount_cents": 250.5,
            "payments": [{"method": "CARD", "amount_cents": 250}],
        }, headers=cashier_headers)

        assert response.status_code == 400
        assert response.get_json()["code"] == "InvalidRequest"

    def test_add_and_remove_payment(self, client, cashier_headers, widget):
        sale = _checkout(
            client, cashier_headers, widget.id, quantity=2,
            payments=[{"method": "CARD", "amount_cents": 200}],
        ).get_json()["sale"]
        assert sale["status"] == "PENDING"

        added = client.post(f"/api/sales/{sale['id']}/payments", json={
            "method": "TRANSFER", "amount_cents": 300,
        }, headers=cashier_headers)
        assert added.status_code == 201
        payment_id = added.get_json()["payment"]["id"]
        assert added.get_json()["sale"]["status"] == "PAID"

        removed = client.delete(f"/api/sales/payments/{payment_id}", headers=cashier_headers)
        assert removed.status_code == 200
        assert removed.get_json()["sale"]["status"] == "PENDING"

        listed = client.get(f"/api/sales/{sale['id']}/payments", headers=cashier_headers)
        assert [p["amount_cents"] for p in listed.get_json()["payments"]] == [200]

    def test_unknown_sale(self, client, cashier_headers):
        response = client.get("/api/sales/404", headers=cashier_headers)
        assert response.status_code == 404
        assert response.get_json()["kind"] == "not_found"


# =============================================================================
# CASH REGISTER
# =============================================================================


class TestRegisterRoutes:

    def test_open_status_cut_close(self, client, cashier_headers):
        opened = client.post("/api/cash-register/open", json={"initial_balance_cents": 10000}, headers=cashier_headers)
        assert opened.status_code == 201
        drawer_id = opened.get_json()["cash_register"]["id"]

        second = client.post("/api/cash-register/open", json={"initial_balance_cents": 1}, headers=cashier_headers)
        assert second.status_code == 409
        assert second.get_json()["code"] == "DrawerAlreadyOpen"

        status = client.get("/api/cash-register/status", headers=cashier_headers).get_json()
        assert status["is_open"] is True
        assert status["cash_register_id"] == drawer_id

        cut = client.post("/api/cash-register/cuts", json={
            "cash_register_id": drawer_id, "new_initial_balance_cents": 2500,
        }, headers=cashier_headers)
        assert cut.status_code == 201
        body = cut.get_json()
        assert body["cash_cut"]["amount_extracted_cents"] == 7500
        successor_id = body["cash_register"]["id"]
        assert successor_id != drawer_id

        closed = client.post("/api/cash-register/close", json={}, headers=cashier_headers)
        assert closed.status_code == 200
        assert closed.get_json()["cash_register"]["id"] == successor_id

        assert _audit_kinds() == ["DRAWER_OPENED", "DRAWER_CUT", "DRAWER_CLOSED"]

    def test_cut_exceeding_balance(self, client, cashier_headers):
        drawer_id = client.post(
            "/api/cash-register/open", json={"initial_balance_cents": 100}, headers=cashier_headers,
        ).get_json()["cash_register"]["id"]

        response = client.post("/api/cash-register/cuts", json={
            "cash_register_id": drawer_id, "new_initial_balance_cents": 101,
        }, headers=cashier_headers)

        assert response.status_code == 409
        assert response.get_json()["code"] == "CutExceedsBalance"

    def test_close_without_open_drawer(self, client, cashier_headers):
        response = client.post("/api/cash-register/close", json={}, headers=cashier_headers)
        assert response.status_code == 409
        assert response.get_json()["code"] == "NoDrawerOpen"

    def test_open_requires_initial_balance(self, client, cashier_headers):
        response = client.post("/api/cash-register/open", json={}, headers=cashier_headers)
        assert response.status_code == 400


# =============================================================================
# ACCOUNTS
# =============================================================================


class TestAccountRoutes:

    def test_distribute_then_withdraw(self, client, cashier_headers, widget, accounts):
        sale = _checkout(client, cashier_headers, widget.id, quantity=4).get_json()["sale"]

        distributed = client.post(f"/api/accounts/sales/{sale['id']}/distribute", json={
            "rent_amounts": [{"line_number": 1, "rent_cents": 100}],
        }, headers=cashier_headers)
        assert distributed.status_code == 200
        assert distributed.get_json()["lines"][0]["accounted"] is True

        again = client.post(f"/api/accounts/sales/{sale['id']}/distribute", json={
            "rent_amounts": [{"line_number": 1, "rent_cents": 100}],
        }, headers=cashier_headers)
        assert again.status_code == 409
        assert again.get_json()["code"] == "AlreadyAccounted"

        balances = {
            a["name"]: a["balance_cents"]
            for a in client.get("/api/accounts", headers=cashier_headers).get_json()["accounts"]
        }
        assert balances == {"investment": 400, "profit": 600, "rent": 100, "remaining_utility": 500}

        profit_id = accounts["profit"].id
        withdrawal = client.post(f"/api/accounts/{profit_id}/withdrawals", json={
            "amount_cents": 250, "description": "Owner draw",
        }, headers=cashier_headers)
        assert withdrawal.status_code == 201
        assert withdrawal.get_json()["withdrawal"]["account"]["balance_cents"] == 350

        history = client.get(f"/api/accounts/{profit_id}/transactions", headers=cashier_headers).get_json()
        assert [t["transaction_type"] for t in history["transactions"]] == ["DEBIT", "CREDIT"]

    def test_distribute_requires_rent_per_line(self, client, cashier_headers, widget, accounts):
        sale = _checkout(client, cashier_headers, widget.id).get_json()["sale"]

        response = client.post(f"/api/accounts/sales/{sale['id']}/distribute", json={
            "rent_amounts": [{"line_number": 1}],
        }, headers=cashier_headers)

        assert response.status_code == 400

    def test_declared_line_distribution(self, client, cashier_headers, widget, accounts):
        sale = _checkout(client, cashier_headers, widget.id, quantity=2).get_json()["sale"]

        response = client.post(f"/api/accounts/sales/{sale['id']}/lines/1/distribute", json={
            "profit_cents": 250, "rent_cents": 50, "investment_cents": 200,
        }, headers=cashier_headers)

        assert response.status_code == 200
        assert response.get_json()["line"]["rent_amount_cents"] == 50

    def test_withdrawal_refused_while_drawer_open(self, client, cashier_headers, accounts):
        client.post("/api/cash-register/open", json={"initial_balance_cents": 0}, headers=cashier_headers)

        response = client.post(
            f"/api/accounts/{accounts['profit'].id}/withdrawals",
            json={"amount_cents": 100},
            headers=cashier_headers,
        )

        assert response.status_code == 409
        assert response.get_json()["code"] == "DrawerOpen"
        assert response.get_json()["kind"] == "state_conflict"

    def test_distribution_without_standard_accounts(self, client, cashier_headers, widget):
        sale = _checkout(client, cashier_headers, widget.id).get_json()["sale"]

        response = client.post(f"/api/accounts/sales/{sale['id']}/distribute", json={
            "rent_amounts": [{"line_number": 1, "rent_cents": 0}],
        }, headers=cashier_headers)

        assert response.status_code == 500
        assert response.get_json()["kind"] == "configuration"
        assert response.get_json()["code"] == "StandardAccountsMissing"

    def test_partner_must_be_an_object(self, client, cashier_headers, widget, accounts):
        sale = _checkout(client, cashier_headers, widget.id).get_json()["sale"]

        response = client.post(f"/api/accounts/sales/{sale['id']}/lines/1/distribute", json={
            "profit_cents": 250, "rent_cents": 50, "investment_cents": 200, "partner": [1, 2],
        }, headers=cashier_headers)

        assert response.status_code == 400
        assert response.get_json()["code"] == "InvalidRequest"


# =============================================================================
# SALE MAINTENANCE
# =============================================================================


class TestSaleMaintenanceRoutes:

    def test_update_payment_method(self, client, cashier_headers, widget):
        client.post("/api/cash-register/open", json={"initial_balance_cents": 1000}, headers=cashier_headers)
        sale = _checkout(
            client, cashier_headers, widget.id, quantity=2,
            payments=[{"method": "CASH", "amount_cents": 500}],
        ).get_json()["sale"]
        payment_id = client.get(
            f"/api/sales/{sale['id']}/payments", headers=cashier_headers
        ).get_json()["payments"][0]["id"]

        response = client.patch(f"/api/sales/payments/{payment_id}", json={
            "method": "CARD", "amount_cents": 400,
        }, headers=cashier_headers)

        assert response.status_code == 200
        body = response.get_json()
        assert body["payment"]["method"] == "CARD"
        assert body["payment"]["cash_register_id"] is None
        assert body["sale"]["status"] == "PENDING"
        status = client.get("/api/cash-register/status", headers=cashier_headers).get_json()
        assert status["current_balance_cents"] == 1000
        assert "PAYMENT_UPDATED" in _audit_kinds()

    def test_update_payment_needs_a_field(self, client, cashier_headers, widget):
        sale = _checkout(client, cashier_headers, widget.id).get_json()["sale"]
        payment_id = client.get(
            f"/api/sales/{sale['id']}/payments", headers=cashier_headers
        ).get_json()["payments"][0]["id"]

        response = client.patch(f"/api/sales/payments/{payment_id}", json={}, headers=cashier_headers)

        assert response.status_code == 400

    def test_deactivate_and_reactivate(self, client, cashier_headers, widget):
        sale = _checkout(client, cashier_headers, widget.id).get_json()["sale"]

        hidden = client.post(f"/api/sales/{sale['id']}/deactivate", headers=cashier_headers)
        assert hidden.status_code == 200
        assert hidden.get_json()["sale"]["is_active"] is False
        assert client.get("/api/sales", headers=cashier_headers).get_json()["sales"] == []
        inactive = client.get("/api/sales?active=false", headers=cashier_headers).get_json()["sales"]
        assert [s["id"] for s in inactive] == [sale["id"]]

        shown = client.post(f"/api/sales/{sale['id']}/reactivate", headers=cashier_headers)
        assert shown.get_json()["sale"]["is_active"] is True
        assert _audit_kinds()[-2:] == ["SALE_DEACTIVATED", "SALE_REACTIVATED"]

    def test_deactivate_unknown_sale(self, client, cashier_headers):
        response = client.post("/api/sales/404/deactivate", headers=cashier_headers)
        assert response.status_code == 404


# =============================================================================
# INVENTORY
# =============================================================================


class TestInventoryRoutes:

    def test_receive_and_list_lots(self, client, cashier_headers, make_product):
        product = make_product(name="Candle")

        received = client.post(f"/api/inventory/products/{product.id}/lots", json={
            "quantity": 6, "unit_cost_cents": 120,
        }, headers=cashier_headers)
        assert received.status_code == 201
        assert received.get_json()["lot"]["available"] == 6

        lots = client.get(f"/api/inventory/products/{product.id}/lots", headers=cashier_headers)
        assert [lot["quantity"] for lot in lots.get_json()["lots"]] == [6]
        assert "LOT_RECEIVED" in _audit_kinds()

    def test_receive_rejects_fractional_quantity(self, client, cashier_headers, make_product):
        product = make_product(name="Candle")

        response = client.post(f"/api/inventory/products/{product.id}/lots", json={
            "quantity": 1.5, "unit_cost_cents": 120,
        }, headers=cashier_headers)

        assert response.status_code == 400

    def test_deactivate_and_reactivate_lot(self, client, cashier_headers, widget):
        lot_id = client.get(
            f"/api/inventory/products/{widget.id}/lots", headers=cashier_headers
        ).get_json()["lots"][0]["id"]

        off = client.post(f"/api/inventory/lots/{lot_id}/deactivate", headers=cashier_headers)
        assert off.status_code == 200
        assert off.get_json()["lot"]["is_active"] is False
        assert _checkout(client, cashier_headers, widget.id).status_code == 409

        on = client.post(f"/api/inventory/lots/{lot_id}/reactivate", headers=cashier_headers)
        assert on.get_json()["lot"]["is_active"] is True
        assert _checkout(client, cashier_headers, widget.id).status_code == 201

    def test_unknown_lot(self, client, cashier_headers):
        response = client.post("/api/inventory/lots/404/reactivate", headers=cashier_headers)
        assert response.status_code == 404
        assert response.get_json()["code"] == "LotNotFound"
