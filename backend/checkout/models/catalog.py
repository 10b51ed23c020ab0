from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "created_at": to_utc_z(self.created_at)}


class Brand(db.Model):
    __tablename__ = "brands"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "created_at": to_utc_z(self.created_at)}


class Product(db.Model):
    """
    Catalog product (reference data, read-only to the sale engine).

    vat_exempt products are aggregated without VAT when a client approves
    an invoice.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category", "category_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    flavor = db.Column(db.String(128), nullable=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False)
    vat_exempt = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    brand = db.relationship("Brand")
    category = db.relationship("Category")

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r}>"

    def display_name(self) -> str:
        parts = [self.name]
        if self.flavor:
            parts.append(self.flavor)
        label = " ".join(parts)
        if self.brand is not None:
            label = f"{label} ({self.brand.name})"
        return label

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "flavor": self.flavor,
            "brand_id": self.brand_id,
            "brand": self.brand.name if self.brand else None,
            "category_id": self.category_id,
            "category": self.category.name if self.category else None,
            "vat_exempt": self.vat_exempt,
        }


class ProductStock(db.Model):
    """
    Sellable unit of one product at one branch.

    INVARIANT: quantity never goes negative. The CHECK constraint is the last
    line of defence; stock_service performs guarded decrements so a losing
    writer sees a zero rowcount rather than a constraint violation.
    """
    __tablename__ = "product_stock"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "product_id", name="uq_product_stock_branch_product"),
        db.CheckConstraint("quantity >= 0", name="ck_product_stock_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    sale_price_cents = db.Column(db.Integer, nullable=False, default=0)
    purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch", backref=db.backref("stock", lazy=True))
    product = db.relationship("Product")

    @property
    def profit_cents(self) -> int:
        return (self.sale_price_cents or 0) - (self.purchase_price_cents or 0)

    @property
    def profit_percentage(self) -> float | None:
        if not self.purchase_price_cents:
            return None
        return round(self.profit_cents * 100 / self.purchase_price_cents, 2)

    def __repr__(self) -> str:
        return f"<ProductStock id={self.id} branch_id={self.branch_id} product_id={self.product_id} qty={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "sale_price_cents": self.sale_price_cents,
            "purchase_price_cents": self.purchase_price_cents,
            "profit_cents": self.profit_cents,
            "profit_percentage": self.profit_percentage,
            "updated_at": to_utc_z(self.updated_at),
        }
