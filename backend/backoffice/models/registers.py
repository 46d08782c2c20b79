from __future__ import annotations

from sqlalchemy import text

from ..extensions import db
from backoffice.time_utils import to_utc_z


DRAWER_OPEN = "OPEN"
DRAWER_CLOSED = "CLOSED"


class CashRegister(db.Model):
    """
    Cash drawer session.

    LIFECYCLE:
    - OPEN: takes cash payments; current_balance_cents moves with them
    - CLOSED: stamped with closer/time/notes, balance frozen

    SINGLETON: at most one OPEN row system-wide, enforced by a partial
    unique index so concurrent opens cannot both commit.
    """
    __tablename__ = "cash_registers"
    __table_args__ = (
        db.Index(
            "uq_cash_registers_single_open",
            "status",
            unique=True,
            sqlite_where=text("status = 'OPEN'"),
            postgresql_where=text("status = 'OPEN'"),
        ),
        db.Index("ix_cash_registers_opened_at", "opened_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    status = db.Column(db.String(16), nullable=False, default=DRAWER_OPEN)

    initial_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    current_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    opened_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    opening_notes = db.Column(db.Text, nullable=True)
    closing_notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    opened_by = db.relationship("User", foreign_keys=[opened_by_user_id])
    closed_by = db.relationship("User", foreign_keys=[closed_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status == DRAWER_OPEN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "initial_balance_cents": self.initial_balance_cents,
            "current_balance_cents": self.current_balance_cents,
            "opened_by_user_id": self.opened_by_user_id,
            "opened_by": self.opened_by.to_summary() if self.opened_by else None,
            "closed_by_user_id": self.closed_by_user_id,
            "closed_by": self.closed_by.to_summary() if self.closed_by else None,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "opening_notes": self.opening_notes,
            "closing_notes": self.closing_notes,
            "version_id": self.version_id,
        }


class CashCut(db.Model):
    """
    Cash extraction that closes one drawer and opens its successor.

    amount_extracted = balance_before - balance_after, never negative.
    balance_after becomes the successor's initial balance.
    """
    __tablename__ = "cash_cuts"
    __table_args__ = (
        db.CheckConstraint("amount_extracted_cents >= 0", name="ck_cash_cuts_extracted_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cash_register_id = db.Column(db.Integer, db.ForeignKey("cash_registers.id"), nullable=False, index=True)
    successor_register_id = db.Column(db.Integer, db.ForeignKey("cash_registers.id"), nullable=True)

    amount_extracted_cents = db.Column(db.Integer, nullable=False)
    balance_before_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    cut_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    notes = db.Column(db.Text, nullable=True)

    cash_register = db.relationship("CashRegister", foreign_keys=[cash_register_id])
    successor_register = db.relationship("CashRegister", foreign_keys=[successor_register_id])
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cash_register_id": self.cash_register_id,
            "successor_register_id": self.successor_register_id,
            "amount_extracted_cents": self.amount_extracted_cents,
            "balance_before_cents": self.balance_before_cents,
            "balance_after_cents": self.balance_after_cents,
            "user_id": self.user_id,
            "user": self.user.to_summary() if self.user else None,
            "cut_at": to_utc_z(self.cut_at),
            "notes": self.notes,
        }
