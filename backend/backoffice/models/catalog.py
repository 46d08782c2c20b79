from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


COMMISSION_PERCENTAGE = "PERCENTAGE"
COMMISSION_FIXED_AMOUNT = "FIXED_AMOUNT"


product_categories = db.Table(
    "product_category_links",
    db.Column("product_id", db.Integer, db.ForeignKey("products.id"), primary_key=True),
    db.Column("category_id", db.Integer, db.ForeignKey("product_categories.id"), primary_key=True),
)


class User(db.Model):
    """
    Acting user as supplied by the identity collaborator.

    Buyers, cashiers and operators are all users; the engines only need
    to resolve the id and show the email/name next to what they touched.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    name = db.Column(db.String(128), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "is_active": self.is_active,
        }

    def to_summary(self) -> dict:
        return {"id": self.id, "email": self.email, "name": self.name}


class ProductCategory(db.Model):
    """
    Catalog category.

    STARTUP CATEGORIES: products sold on behalf of a partner ("startup").
    The business keeps a commission (percentage of the line or a fixed
    amount) and the rest is owed to the partner account linked here.
    """
    __tablename__ = "product_categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, index=True)
    description = db.Column(db.String(255), nullable=True)

    is_startup = db.Column(db.Boolean, nullable=False, default=False)
    startup_name = db.Column(db.String(128), nullable=True)

    # PERCENTAGE: whole percent of the line total. FIXED_AMOUNT: cents per line.
    commission_type = db.Column(db.String(16), nullable=True)
    commission_value = db.Column(db.Integer, nullable=True)

    # Partner account credited with the non-commission share
    account_id = db.Column(
        db.Integer,
        db.ForeignKey("accounts.id", use_alter=True, name="fk_product_categories_account_id"),
        nullable=True,
    )

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("Account", foreign_keys=[account_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_startup": self.is_startup,
            "startup_name": self.startup_name,
            "commission_type": self.commission_type,
            "commission_value": self.commission_value,
            "account_id": self.account_id,
            "is_active": self.is_active,
        }


class Product(db.Model):
    """
    Catalog product.

    stock is a denormalized sum of PurchaseLot.available; it is only
    changed by lot operations (receive / sale allocation).
    """
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    sell_price_cents = db.Column(db.Integer, nullable=True)
    stock = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    categories = db.relationship(
        "ProductCategory",
        secondary=product_categories,
        lazy="selectin",
        order_by="ProductCategory.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sell_price_cents": self.sell_price_cents,
            "stock": self.stock,
            "is_active": self.is_active,
            "category_ids": [c.id for c in self.categories],
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
