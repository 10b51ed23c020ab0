from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


SALE_STATUS_PAID = "paid"
SALE_STATUS_PENDING = "pending"
SALE_STATUS_UNPROCESSED = "unprocessed"

VALID_SALE_STATUSES = (SALE_STATUS_PAID, SALE_STATUS_PENDING, SALE_STATUS_UNPROCESSED)


class Sale(db.Model):
    """
    One checkout / invoice rung up on a cash register.

    WHY: A sale, its lines, its payment splits, the stock it consumed and the
    category totals it fed are written in one unit of work; none of them is
    ever persisted without the others.

    Ticket numbers are unique per branch (see TicketSequence).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "ticket_number", name="uq_sales_branch_ticket"),
        db.Index("ix_sales_branch_status_created", "branch_id", "status", "created_at"),
        db.Index("ix_sales_business_created", "business_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    cash_register_id = db.Column(db.Integer, db.ForeignKey("cash_registers.id"), nullable=False, index=True)

    # Registered client, or a walk-in identified by name / DNI
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    client_name = db.Column(db.String(255), nullable=True)
    client_dni = db.Column(db.String(64), nullable=True, index=True)

    ticket_number = db.Column(db.Integer, nullable=False)

    # Amounts in cents
    total_amount_cents = db.Column(db.Integer, nullable=False)
    amount_cancelled_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(8), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_PENDING, index=True)

    expired_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Client approval of the final invoice
    client_approved = db.Column(db.Boolean, nullable=False, default=False)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    business = db.relationship("Business")
    branch = db.relationship("Branch")
    cash_register = db.relationship("CashRegister")
    user = db.relationship("User", foreign_keys=[user_id])
    lines = db.relationship(
        "SaleLine",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleLine.id",
        lazy=True,
    )
    payment_splits = db.relationship(
        "PaymentSplit",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="PaymentSplit.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def outstanding_cents(self) -> int:
        return max(self.total_amount_cents - (self.amount_cancelled_cents or 0), 0)

    def __repr__(self) -> str:
        return f"<Sale id={self.id} branch_id={self.branch_id} ticket={self.ticket_number} status={self.status}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "branch_id": self.branch_id,
            "cash_register_id": self.cash_register_id,
            "user_id": self.user_id,
            "client_name": self.client_name,
            "client_dni": self.client_dni,
            "ticket_number": self.ticket_number,
            "total_amount_cents": self.total_amount_cents,
            "amount_cancelled_cents": self.amount_cancelled_cents,
            "outstanding_cents": self.outstanding_cents,
            "currency": self.currency,
            "status": self.status,
            "expired_at": to_utc_z(self.expired_at),
            "closed_at": to_utc_z(self.closed_at),
            "client_approved": self.client_approved,
            "approved_at": to_utc_z(self.approved_at),
            "approved_by_user_id": self.approved_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["payments"] = [split.to_dict() for split in self.payment_splits]
        return data


class SaleLine(db.Model):
    """
    Item rung up on a sale.

    unit_price_cents is captured at time of sale and never re-derived from
    the catalog, so historic invoices do not change when prices do.
    """
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    stock_id = db.Column(db.Integer, db.ForeignKey("product_stock.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", back_populates="lines")
    stock = db.relationship("ProductStock")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "stock_id": self.stock_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "created_at": to_utc_z(self.created_at),
        }


class PaymentMethod(db.Model):
    """Tender accepted at the till (cash, card, transfer, mobile payment...)."""
    __tablename__ = "payment_methods"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    currency = db.Column(db.String(8), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "currency": self.currency,
            "is_active": self.is_active,
        }


class PaymentSplit(db.Model):
    """
    One (payment method, amount) pair covering part of a sale.

    The set for a sale is replaced wholesale on every update or payment patch.
    """
    __tablename__ = "payment_splits"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=False)
    amount_cancelled_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", back_populates="payment_splits")
    payment_method = db.relationship("PaymentMethod")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "payment_method_id": self.payment_method_id,
            "payment_method": self.payment_method.name if self.payment_method else None,
            "amount_cancelled_cents": self.amount_cancelled_cents,
            "created_at": to_utc_z(self.created_at),
        }


class TicketSequence(db.Model):
    """
    Atomic per-branch ticket counter.

    WHY: MAX(ticket_number)+1 read outside a lock hands the same number to two
    concurrent checkouts. Incrementing this row takes its lock until commit.
    """
    __tablename__ = "ticket_sequences"
    __table_args__ = (
        db.UniqueConstraint("branch_id", name="uq_ticket_sequences_branch"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
