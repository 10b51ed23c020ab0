# Overview: Service-layer operations for monthly category totals; encapsulates business logic and database work.

"""
Category Aggregate Invariants (authoritative)

- One row per (scope_key, category_id, period_start); period_start is the
  first day of the calendar month the amount was recorded in.
- Rows are upserted with an atomic increment, never read-modify-written, so
  concurrent sales in one category and month land on the same row.
- Upserts run inside the unit of work of the sale (or approval) that caused
  them and roll back with it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CategoryAggregate, Category
from ..models.aggregates import LEDGER_PURCHASES, LEDGER_SALES
from ..time_utils import month_bounds, utcnow


@dataclass(frozen=True)
class AggregateScope:
    """Who a running total belongs to: a branch (sales) or a user (purchases)."""

    ledger: str
    scope_key: str
    business_id: int | None = None
    branch_id: int | None = None
    user_id: int | None = None

    @classmethod
    def for_branch(cls, business_id: int, branch_id: int) -> "AggregateScope":
        return cls(
            ledger=LEDGER_SALES,
            scope_key=f"branch:{branch_id}",
            business_id=business_id,
            branch_id=branch_id,
        )

    @classmethod
    def for_user(cls, user_id: int) -> "AggregateScope":
        return cls(ledger=LEDGER_PURCHASES, scope_key=f"user:{user_id}", user_id=user_id)


def _upsert_statement(dialect_name: str, values: dict):
    insert_fn = sqlite.insert if dialect_name == "sqlite" else postgresql.insert
    stmt = insert_fn(CategoryAggregate).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=["scope_key", "category_id", "period_start"],
        set_={
            "total_cents": CategoryAggregate.total_cents + stmt.excluded.total_cents,
            "updated_at": utcnow(),
        },
    )


def _increment_existing(scope: AggregateScope, category_id: int, period_start, amount_cents: int) -> int:
    stmt = (
        update(CategoryAggregate)
        .where(
            CategoryAggregate.scope_key == scope.scope_key,
            CategoryAggregate.category_id == category_id,
            CategoryAggregate.period_start == period_start,
        )
        .values(total_cents=CategoryAggregate.total_cents + amount_cents, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt).rowcount


def add_to_monthly_total(
    scope: AggregateScope,
    category: Category,
    amount_cents: int,
    now: datetime | None = None,
) -> None:
    """
    Add amount_cents to the scope's total for category in the month of `now`.

    Negative amounts are allowed (quantity reductions on sale update).
    """
    now = now or utcnow()
    period_start = month_bounds(now)[0].date()
    values = {
        "ledger": scope.ledger,
        "scope_key": scope.scope_key,
        "business_id": scope.business_id,
        "branch_id": scope.branch_id,
        "user_id": scope.user_id,
        "category_id": category.id,
        "category_name": category.name,
        "period_start": period_start,
        "total_cents": amount_cents,
        "created_at": now,
        "updated_at": now,
    }

    dialect_name = db.engine.dialect.name
    if dialect_name in ("sqlite", "postgresql"):
        db.session.execute(_upsert_statement(dialect_name, values))
        return

    # Generic path: increment, else insert inside a savepoint; a concurrent
    # creator that wins the insert turns this into an increment.
    if _increment_existing(scope, category.id, period_start, amount_cents):
        return
    try:
        with db.session.begin_nested():
            db.session.add(CategoryAggregate(**values))
    except IntegrityError:
        if not _increment_existing(scope, category.id, period_start, amount_cents):
            raise


def totals_for_year(scope: AggregateScope, year: int) -> list[dict]:
    """
    Month-by-month category totals for a scope.

    Returns one entry per month (1-12), each with its categories sorted by name.
    """
    rows = (
        db.session.query(CategoryAggregate)
        .filter(
            CategoryAggregate.scope_key == scope.scope_key,
            CategoryAggregate.period_start >= datetime(year, 1, 1).date(),
            CategoryAggregate.period_start <= datetime(year, 12, 1).date(),
        )
        .order_by(CategoryAggregate.period_start, CategoryAggregate.category_name)
        .all()
    )

    months = {m: [] for m in range(1, 13)}
    for row in rows:
        months[row.period_start.month].append({
            "category_id": row.category_id,
            "category": row.category_name,
            "total_cents": int(row.total_cents),
        })

    return [{"month": m, "categories": months[m]} for m in range(1, 13)]
