from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


SALE_STATUS_PENDING = "PENDING"
SALE_STATUS_PAID = "PAID"
SALE_STATUS_CANCELLED = "CANCELLED"

PAYMENT_CASH = "CASH"
PAYMENT_TRANSFER = "TRANSFER"
PAYMENT_CARD = "CARD"

VALID_PAYMENT_METHODS = [PAYMENT_CASH, PAYMENT_TRANSFER, PAYMENT_CARD]


class Sale(db.Model):
    """
    Sale document created once per checkout.

    total_cents is the authoritative total: the sum of the generated line
    totals, not what the client declared.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_active_created", "is_active", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    total_cents = db.Column(db.Integer, nullable=False)
    declared_total_cents = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_PENDING, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User")
    lines = db.relationship(
        "SaleLine",
        back_populates="sale",
        order_by="SaleLine.line_number",
        lazy="selectin",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "user": self.user.to_summary() if self.user else None,
            "total_cents": self.total_cents,
            "declared_total_cents": self.declared_total_cents,
            "status": self.status,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    """
    One persisted line of a sale, bound to exactly one purchase lot.

    IMMUTABLE AFTER COMMIT: quantity, unit_cost_cents and the totals.
    Only accounted / rent_amount_cents / accounted_at change later, when
    the line's profit is distributed.

    line_number is a stable 1-based ordinal assigned at creation; lines
    are addressed by (sale_id, line_number), never by list position.
    """
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "line_number", name="uq_sale_lines_sale_line_number"),
        db.Index("ix_sale_lines_accounted", "accounted"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    lot_id = db.Column(db.Integer, db.ForeignKey("purchase_lots.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)
    line_total_cost_cents = db.Column(db.Integer, nullable=False)

    # Business share of a startup line, snapshotted at sale time
    commission_cents = db.Column(db.Integer, nullable=True)

    accounted = db.Column(db.Boolean, nullable=False, default=False)
    rent_amount_cents = db.Column(db.Integer, nullable=True)
    accounted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    sale = db.relationship("Sale", back_populates="lines")
    product = db.relationship("Product")
    lot = db.relationship("PurchaseLot")
    category = db.relationship("ProductCategory")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "lot_id": self.lot_id,
            "category_id": self.category_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.line_total_cents,
            "line_total_cost_cents": self.line_total_cost_cents,
            "commission_cents": self.commission_cents,
            "accounted": self.accounted,
            "rent_amount_cents": self.rent_amount_cents,
            "accounted_at": to_utc_z(self.accounted_at) if self.accounted_at else None,
        }


class Payment(db.Model):
    """
    Payment against a sale.

    Many payments may reference one sale; their sum never exceeds the
    sale total. Cash payments reference the drawer session that was open
    when they were taken (if any).
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    method = db.Column(db.String(16), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    cash_register_id = db.Column(db.Integer, db.ForeignKey("cash_registers.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    sale = db.relationship("Sale", backref=db.backref("payments", lazy=True, order_by="Payment.id"))
    user = db.relationship("User")
    cash_register = db.relationship("CashRegister", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "paid_at": to_utc_z(self.paid_at),
            "user_id": self.user_id,
            "user": self.user.to_summary() if self.user else None,
            "cash_register_id": self.cash_register_id,
            "created_at": to_utc_z(self.created_at),
        }
