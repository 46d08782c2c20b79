from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class PurchaseLot(db.Model):
    """
    One purchase of a product at a given unit cost.

    FIFO: lots are consumed oldest first (created_at, then id).
    INVARIANT: 0 <= available <= quantity. available only goes down
    through sale allocation; version_id detects concurrent writers.
    """
    __tablename__ = "purchase_lots"
    __table_args__ = (
        db.CheckConstraint("available >= 0", name="ck_purchase_lots_available_non_negative"),
        db.CheckConstraint("available <= quantity", name="ck_purchase_lots_available_le_quantity"),
        db.Index("ix_purchase_lots_fifo", "product_id", "is_active", "created_at", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    unit_cost_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    available = db.Column(db.Integer, nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("lots", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "unit_cost_cents": self.unit_cost_cents,
            "quantity": self.quantity,
            "available": self.available,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
