from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


LEDGER_SALES = "SALES"
LEDGER_PURCHASES = "PURCHASES"


class CategoryAggregate(db.Model):
    """
    Monthly running total per (scope, category).

    - SALES ledger: scope is a branch ("branch:<id>"), fed when sales are rung up.
    - PURCHASES ledger: scope is a user ("user:<id>"), fed when the user
      approves an invoice.

    category_name is a snapshot taken when the row is first created, so later
    renames do not rewrite history.

    INVARIANT: at most one row per (scope_key, category_id, period_start).
    """
    __tablename__ = "category_aggregates"
    __table_args__ = (
        db.UniqueConstraint("scope_key", "category_id", "period_start", name="uq_category_aggregates_scope_month"),
        db.Index("ix_category_aggregates_ledger_period", "ledger", "period_start"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ledger = db.Column(db.String(16), nullable=False)
    scope_key = db.Column(db.String(64), nullable=False)

    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=True, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False)
    category_name = db.Column(db.String(128), nullable=False)

    period_start = db.Column(db.Date, nullable=False)
    total_cents = db.Column(db.BigInteger, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ledger": self.ledger,
            "scope_key": self.scope_key,
            "business_id": self.business_id,
            "branch_id": self.branch_id,
            "user_id": self.user_id,
            "category_id": self.category_id,
            "category_name": self.category_name,
            "period_start": self.period_start.isoformat() if self.period_start else None,
            "total_cents": self.total_cents,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
