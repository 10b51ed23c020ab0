# Overview: Service-layer operations for branch stock; encapsulates business logic and database work.

"""
Stock Ledger Invariants (authoritative)

- ProductStock.quantity is the available quantity of one product at one branch.
- quantity never goes negative. Decrements are guarded conditional updates
  (quantity >= :qty in the WHERE clause); a zero rowcount means another
  checkout committed first and the caller must abort its unit of work.
- Mutations happen only inside a sale's unit of work (see concurrency.run_in_transaction).
- check_availability() is a best-effort pre-flight read; the guarded update
  is what actually enforces the invariant.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import update

from ..errors import InsufficientStockError, NotFoundError
from ..extensions import db
from ..models import Category, ProductStock


@dataclass(frozen=True)
class StockCheck:
    sufficient: bool
    record: ProductStock


def get_stock(stock_id: int) -> ProductStock:
    stock = db.session.query(ProductStock).filter_by(id=stock_id).first()
    if stock is None:
        raise NotFoundError(f"Stock unit {stock_id} not found", details={"stock_id": stock_id})
    return stock


def check_availability(stock_id: int, requested_qty: int) -> StockCheck:
    """Read-only sufficiency check used before the unit of work opens."""
    stock = get_stock(stock_id)
    return StockCheck(sufficient=stock.quantity >= requested_qty, record=stock)


def describe_shortage(stock: ProductStock, requested_qty: int, available_qty: int | None = None) -> dict:
    available = stock.quantity if available_qty is None else available_qty
    label = stock.product.display_name() if stock.product is not None else f"Stock unit {stock.id}"
    return {
        "stock_id": stock.id,
        "product_id": stock.product_id,
        "requested": requested_qty,
        "available": available,
        "description": f"{label}: requested {requested_qty}, available {available}",
    }


def collect_shortages(requirements: dict[int, int]) -> list[dict]:
    """
    Pre-flight every stock requirement (stock_id -> quantity needed).

    Returns all shortages rather than stopping at the first one.
    """
    shortages = []
    for stock_id, qty in requirements.items():
        if qty <= 0:
            continue
        check = check_availability(stock_id, qty)
        if not check.sufficient:
            shortages.append(describe_shortage(check.record, qty))
    return shortages


def decrement(stock: ProductStock, qty: int) -> Category:
    """
    Take qty units out of stock inside the current unit of work.

    Raises InsufficientStockError when the guard fails (late-discovered
    shortage). Returns the product's category for aggregation.
    """
    if qty < 0:
        raise ValueError("decrement quantity must be non-negative")
    if qty:
        stmt = (
            update(ProductStock)
            .where(ProductStock.id == stock.id, ProductStock.quantity >= qty)
            .values(quantity=ProductStock.quantity - qty)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        db.session.expire(stock, ["quantity"])
        if not result.rowcount:
            raise InsufficientStockError([describe_shortage(stock, qty)])
    return stock.product.category


def increment(stock: ProductStock, qty: int) -> Category:
    """Return qty units to stock inside the current unit of work."""
    if qty < 0:
        raise ValueError("increment quantity must be non-negative")
    if qty:
        stmt = (
            update(ProductStock)
            .where(ProductStock.id == stock.id)
            .values(quantity=ProductStock.quantity + qty)
            .execution_options(synchronize_session=False)
        )
        db.session.execute(stmt)
        db.session.expire(stock, ["quantity"])
    return stock.product.category


def apply_delta(stock: ProductStock, delta: int) -> Category:
    """Positive delta consumes stock, negative delta returns it."""
    if delta >= 0:
        return decrement(stock, delta)
    return increment(stock, -delta)
