from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


TX_CREDIT = "CREDIT"
TX_DEBIT = "DEBIT"

WITHDRAWAL_COMPLETED = "COMPLETED"

ACCOUNT_INVESTMENT = "investment"
ACCOUNT_PROFIT = "profit"
ACCOUNT_RENT = "rent"
ACCOUNT_REMAINING_UTILITY = "remaining_utility"

STANDARD_ACCOUNTS = {
    ACCOUNT_INVESTMENT: "Investment",
    ACCOUNT_PROFIT: "Profit",
    ACCOUNT_RENT: "Rent",
    ACCOUNT_REMAINING_UTILITY: "Remaining utility",
}


class Account(db.Model):
    """
    Standing account with a cached running balance.

    balance_cents is a materialized cache of
    SUM(credits) - SUM(debits) over this account's AccountTransaction rows.
    It is only ever changed by the posting primitive, in the same flush
    as the row it accounts for.

    Partner ("startup") accounts carry product_category_id.
    """
    __tablename__ = "accounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    label = db.Column(db.String(128), nullable=False)
    balance_cents = db.Column(db.Integer, nullable=False, default=0)

    product_category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product_category = db.relationship("ProductCategory", foreign_keys=[product_category_id])

    @property
    def is_partner(self) -> bool:
        return self.product_category_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "label": self.label,
            "balance_cents": self.balance_cents,
            "product_category_id": self.product_category_id,
            "created_at": to_utc_z(self.created_at),
        }


class AccountTransaction(db.Model):
    """Append-only ledger row. Never updated, never deleted."""
    __tablename__ = "account_transactions"
    __table_args__ = (
        db.CheckConstraint("amount_cents >= 0", name="ck_account_transactions_amount_non_negative"),
        db.Index("ix_account_transactions_account_created", "account_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False)
    transaction_type = db.Column(db.String(8), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    sale_line_id = db.Column(db.Integer, db.ForeignKey("sale_lines.id"), nullable=True, index=True)
    withdrawal_id = db.Column(db.Integer, db.ForeignKey("withdrawals.id"), nullable=True, index=True)

    description = db.Column(db.String(255), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    account = db.relationship("Account", backref=db.backref("transactions", lazy="dynamic"))
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "transaction_type": self.transaction_type,
            "amount_cents": self.amount_cents,
            "sale_id": self.sale_id,
            "sale_line_id": self.sale_line_id,
            "withdrawal_id": self.withdrawal_id,
            "description": self.description,
            "user_id": self.user_id,
            "user": self.user.to_summary() if self.user else None,
            "created_at": to_utc_z(self.created_at),
        }


class Withdrawal(db.Model):
    """Cash taken out of a standing account. Posts exactly one DEBIT."""
    __tablename__ = "withdrawals"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_withdrawals_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    description = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=WITHDRAWAL_COMPLETED)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    account = db.relationship("Account")
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "account": self.account.to_dict() if self.account else None,
            "amount_cents": self.amount_cents,
            "user_id": self.user_id,
            "user": self.user.to_summary() if self.user else None,
            "description": self.description,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
