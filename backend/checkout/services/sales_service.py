# Overview: Service-layer operations for sales; encapsulates business logic and database work.

"""
Sale Transaction Coordinator

WHY: A checkout touches shared stock, the branch's ticket counter, monthly
category totals, the sale document and its payment splits. They are written
in one unit of work or not at all.

Flow for create/update:
1. Resolve the cash register and validate the payload (fail fast).
2. Build a reconciliation plan: for every requested line, the stock
   movement it needs (full quantity for new lines, new - stored quantity
   for existing ones).
3. Pre-flight the plan against current stock and report every shortage.
4. Run the unit of work: guarded stock movements, category upserts,
   ticket number, sale + lines, payment splits. The plan is rebuilt from
   the locked sale inside the unit so the pre-flight snapshot is never trusted.
5. After commit, notify the linked user (best-effort).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import or_

from ..errors import InsufficientStockError, InvalidRequestError, NotFoundError
from ..extensions import db
from ..models import ProductStock, Sale, SaleLine, User
from ..models.sales import (
    SALE_STATUS_PAID,
    SALE_STATUS_PENDING,
    SALE_STATUS_UNPROCESSED,
    VALID_SALE_STATUSES,
)
from ..time_utils import parse_iso_datetime, utcnow
from ..validation import PaymentPatchInput, SaleInput, SaleLineInput
from . import stock_service
from .category_totals_service import AggregateScope, add_to_monthly_total
from .client_service import ensure_client
from .concurrency import lock_for_update, run_in_transaction
from .notification_service import EVENT_PURCHASE_CREATED, EVENT_PURCHASE_UPDATED, emit_purchase_event
from .payment_split_service import replace_splits, validate_splits
from .register_service import resolve_cash_register
from .ticket_service import next_ticket_number


@dataclass(frozen=True)
class PlannedLine:
    """
    One line of a reconciliation plan.

    quantity is the desired end state; delta is the stock movement needed to
    get there (positive consumes stock, negative returns it).
    """

    stock: ProductStock
    quantity: int
    delta: int
    unit_price_cents: int
    existing: SaleLine | None = None

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    @property
    def delta_amount_cents(self) -> int:
        return self.delta * self.unit_price_cents


# =============================================================================
# VALIDATION HELPERS
# =============================================================================

def derive_status(
    total_amount_cents: int,
    amount_cancelled_cents: int,
    requested: str | None,
    *,
    allowed: tuple[str, ...] = (SALE_STATUS_PENDING, SALE_STATUS_UNPROCESSED),
) -> str:
    """
    A fully paid sale is always "paid"; otherwise the caller's status is
    honoured when allowed, else "pending". A partial payment is never "paid".
    """
    if amount_cancelled_cents == total_amount_cents:
        return SALE_STATUS_PAID
    if requested in allowed:
        return requested
    return SALE_STATUS_PENDING


def _validate_requested_status(status: str | None) -> None:
    if status is not None and status not in VALID_SALE_STATUSES:
        raise InvalidRequestError(
            f"Invalid status: {status}. Must be one of {list(VALID_SALE_STATUSES)}"
        )


def _validate_amounts(total_amount_cents: int, amount_cancelled_cents: int) -> None:
    if amount_cancelled_cents > total_amount_cents:
        raise InvalidRequestError(
            "amount_cancelled_cents cannot exceed total_amount_cents",
            details={"total_amount_cents": total_amount_cents, "amount_cancelled_cents": amount_cancelled_cents},
        )


def _load_line_stocks(branch_id: int, lines: list[SaleLineInput]) -> dict[int, ProductStock]:
    stock_ids = {line.stock_id for line in lines}
    stocks = {
        stock.id: stock
        for stock in db.session.query(ProductStock).filter(ProductStock.id.in_(stock_ids)).all()
    }

    missing = sorted(stock_ids - set(stocks))
    if missing:
        raise NotFoundError("Stock unit not found", details={"stock_ids": missing})

    foreign = sorted(s.id for s in stocks.values() if s.branch_id != branch_id)
    if foreign:
        raise InvalidRequestError(
            "Stock units belong to another branch",
            details={"stock_ids": foreign, "branch_id": branch_id},
        )
    return stocks


def _stock_requirements(plan: list[PlannedLine]) -> dict[int, int]:
    """Net stock each stock unit must supply, summed across lines."""
    requirements: dict[int, int] = {}
    for planned in plan:
        requirements[planned.stock.id] = requirements.get(planned.stock.id, 0) + planned.delta
    return requirements


def _preflight(plan: list[PlannedLine]) -> None:
    shortages = stock_service.collect_shortages(_stock_requirements(plan))
    if shortages:
        raise InsufficientStockError(shortages)


# =============================================================================
# RECONCILIATION PLANS
# =============================================================================

def plan_new_lines(lines: list[SaleLineInput], stocks: dict[int, ProductStock]) -> list[PlannedLine]:
    plan = []
    for line in lines:
        if line.line_id is not None:
            raise InvalidRequestError("New sales cannot reference existing line ids")
        plan.append(PlannedLine(
            stock=stocks[line.stock_id],
            quantity=line.quantity,
            delta=line.quantity,
            unit_price_cents=line.unit_price_cents,
        ))
    return plan


def plan_line_updates(
    sale: Sale,
    lines: list[SaleLineInput],
    stocks: dict[int, ProductStock],
) -> list[PlannedLine]:
    """
    Diff requested lines against the sale's stored lines.

    Existing lines (carrying an id) move stock by the difference from their
    stored quantity and keep their captured unit price; lines without an id
    are new and consume their full quantity. Stored lines not mentioned are
    left untouched.
    """
    existing_by_id = {line.id: line for line in sale.lines}
    seen: set[int] = set()
    plan = []
    for line in lines:
        if line.line_id is None:
            plan.append(PlannedLine(
                stock=stocks[line.stock_id],
                quantity=line.quantity,
                delta=line.quantity,
                unit_price_cents=line.unit_price_cents,
            ))
            continue

        existing = existing_by_id.get(line.line_id)
        if existing is None:
            raise NotFoundError(
                f"Sale line {line.line_id} not found on sale {sale.id}",
                details={"line_id": line.line_id, "sale_id": sale.id},
            )
        if line.line_id in seen:
            raise InvalidRequestError(f"Sale line {line.line_id} appears more than once")
        if existing.stock_id != line.stock_id:
            raise InvalidRequestError(
                f"Sale line {line.line_id} cannot be moved to another stock unit",
                details={"line_id": line.line_id},
            )
        seen.add(line.line_id)
        plan.append(PlannedLine(
            stock=stocks[line.stock_id],
            quantity=line.quantity,
            delta=line.quantity - existing.quantity,
            unit_price_cents=existing.unit_price_cents,
            existing=existing,
        ))
    return plan


def _apply_plan(plan: list[PlannedLine], scope: AggregateScope, now: datetime) -> None:
    """
    Move stock and feed category totals for every planned line.

    Stock moves once per stock unit by the net requirement the pre-flight
    checked, so a line giving units back covers a new line on the same stock
    whatever their order. Category totals are fed per line.

    Guard failures are collected so the caller sees every late shortage;
    raising aborts the surrounding unit of work.
    """
    stocks = {planned.stock.id: planned.stock for planned in plan}
    late_shortages = []
    for stock_id, net_delta in _stock_requirements(plan).items():
        try:
            stock_service.apply_delta(stocks[stock_id], net_delta)
        except InsufficientStockError as exc:
            late_shortages.extend(exc.shortages)

    if late_shortages:
        current_app.logger.warning(
            "Stock changed after pre-flight check; aborting sale (%s short stock units)", len(late_shortages)
        )
        raise InsufficientStockError(late_shortages)

    for planned in plan:
        if planned.delta_amount_cents:
            add_to_monthly_total(scope, planned.stock.product.category, planned.delta_amount_cents, now)


def _notify(sale: Sale, event: str) -> None:
    if sale.user_id:
        emit_purchase_event(sale.user_id, {"event": event, "sale": sale.to_dict()})


# =============================================================================
# OPERATIONS
# =============================================================================

def create_sale(data: SaleInput) -> Sale:
    """
    Ring up a sale: stock, category totals, ticket number, sale document and
    payment splits in one unit of work.

    Raises:
        NotFoundError: unknown cash register or stock unit
        InvalidRequestError: empty line list, bad status or payment splits
        InsufficientStockError: any line exceeds availability (all listed)
        ConflictOnCommitError: storage race outlived the retries
    """
    if data.cash_register_id is None:
        raise InvalidRequestError("cash_register_id is required")
    register = resolve_cash_register(data.cash_register_id)

    if not data.lines:
        raise InvalidRequestError("At least one line item is required")
    _validate_requested_status(data.status)
    _validate_amounts(data.total_amount_cents, data.amount_cancelled_cents)
    validate_splits(
        data.payments,
        data.amount_cancelled_cents,
        strict=current_app.config.get("STRICT_PAYMENT_SPLITS", False),
    )

    business_id = register.business_id
    branch_id = register.branch_id
    stocks = _load_line_stocks(branch_id, data.lines)
    plan = plan_new_lines(data.lines, stocks)
    _preflight(plan)

    status = derive_status(data.total_amount_cents, data.amount_cancelled_cents, data.status)
    is_partial = data.amount_cancelled_cents < data.total_amount_cents
    scope = AggregateScope.for_branch(business_id, branch_id)

    def _op() -> int:
        now = utcnow()

        if is_partial and (data.user_id or data.client_dni):
            ensure_client(
                branch_id,
                user_id=data.user_id,
                client_dni=data.client_dni,
                client_name=data.client_name,
            )

        _apply_plan(plan, scope, now)

        sale = Sale(
            business_id=business_id,
            branch_id=branch_id,
            cash_register_id=register.id,
            user_id=data.user_id,
            client_name=data.client_name,
            client_dni=data.client_dni,
            ticket_number=next_ticket_number(branch_id),
            total_amount_cents=data.total_amount_cents,
            amount_cancelled_cents=data.amount_cancelled_cents,
            currency=data.currency,
            status=status,
            expired_at=data.expired_at,
            closed_at=now if status == SALE_STATUS_PAID else None,
            created_at=now,
            updated_at=now,
        )
        db.session.add(sale)
        for planned in plan:
            sale.lines.append(SaleLine(
                stock_id=planned.stock.id,
                product_id=planned.stock.product_id,
                quantity=planned.quantity,
                unit_price_cents=planned.unit_price_cents,
                line_total_cents=planned.line_total_cents,
            ))
        db.session.flush()

        replace_splits(sale, data.payments)
        return sale.id

    sale_id = run_in_transaction(_op)
    sale = get_sale(sale_id)
    current_app.logger.info(
        "Sale %s created on branch %s: ticket %s, status %s",
        sale.id, sale.branch_id, sale.ticket_number, sale.status,
    )
    _notify(sale, EVENT_PURCHASE_CREATED)
    return sale


def update_sale(sale_id: int, data: SaleInput) -> Sale:
    """
    Reconcile an existing sale with a new set of lines and amounts.

    Existing lines move stock by their quantity delta only; new lines consume
    their full quantity. Requesting status "unprocessed" records an
    account-level change and leaves payment splits alone.
    """
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})

    register = resolve_cash_register(data.cash_register_id or sale.cash_register_id)
    if register.branch_id != sale.branch_id:
        raise InvalidRequestError(
            "Cash register belongs to another branch",
            details={"cash_register_id": register.id, "branch_id": sale.branch_id},
        )

    if not data.lines:
        raise InvalidRequestError("At least one line item is required")
    _validate_requested_status(data.status)
    _validate_amounts(data.total_amount_cents, data.amount_cancelled_cents)

    skip_splits = data.status == SALE_STATUS_UNPROCESSED
    if not skip_splits:
        validate_splits(
            data.payments,
            data.amount_cancelled_cents,
            strict=current_app.config.get("STRICT_PAYMENT_SPLITS", False),
        )

    stocks = _load_line_stocks(sale.branch_id, data.lines)
    _preflight(plan_line_updates(sale, data.lines, stocks))

    status = derive_status(data.total_amount_cents, data.amount_cancelled_cents, data.status)
    scope = AggregateScope.for_branch(sale.business_id, sale.branch_id)

    def _op() -> int:
        now = utcnow()
        # Drop state read during pre-flight; the plan is rebuilt from the locked rows.
        db.session.expire_all()
        locked = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if locked is None:
            raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})

        plan = plan_line_updates(locked, data.lines, stocks)
        _apply_plan(plan, scope, now)

        for planned in plan:
            if planned.existing is not None:
                planned.existing.quantity = planned.quantity
                planned.existing.line_total_cents = planned.line_total_cents
            else:
                locked.lines.append(SaleLine(
                    stock_id=planned.stock.id,
                    product_id=planned.stock.product_id,
                    quantity=planned.quantity,
                    unit_price_cents=planned.unit_price_cents,
                    line_total_cents=planned.line_total_cents,
                ))

        locked.cash_register_id = register.id
        locked.total_amount_cents = data.total_amount_cents
        locked.amount_cancelled_cents = data.amount_cancelled_cents
        locked.status = status
        locked.closed_at = now if status == SALE_STATUS_PAID else None
        locked.updated_at = now
        if data.user_id is not None:
            locked.user_id = data.user_id
        if data.client_name is not None:
            locked.client_name = data.client_name
        if data.client_dni is not None:
            locked.client_dni = data.client_dni
        if data.expired_at is not None:
            locked.expired_at = data.expired_at
        db.session.flush()

        if not skip_splits:
            replace_splits(locked, data.payments)
        return locked.id

    run_in_transaction(_op)
    sale = get_sale(sale_id)
    current_app.logger.info("Sale %s updated: status %s", sale.id, sale.status)
    _notify(sale, EVENT_PURCHASE_UPDATED)
    return sale


def patch_sale_payment(sale_id: int, data: PaymentPatchInput) -> Sale:
    """
    Record payment completion on an existing sale.

    Replaces the payment splits and the amount cancelled; lines and stock are
    not touched. The sale becomes "paid" once fully covered and otherwise
    keeps its status.
    """
    validate_splits(
        data.payments,
        data.amount_cancelled_cents,
        strict=current_app.config.get("STRICT_PAYMENT_SPLITS", False),
    )

    def _op() -> int:
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
        _validate_amounts(sale.total_amount_cents, data.amount_cancelled_cents)

        now = utcnow()
        replace_splits(sale, data.payments)
        sale.amount_cancelled_cents = data.amount_cancelled_cents
        if data.amount_cancelled_cents == sale.total_amount_cents:
            sale.status = SALE_STATUS_PAID
            sale.closed_at = now
        elif sale.status == SALE_STATUS_PAID:
            sale.status = SALE_STATUS_PENDING
            sale.closed_at = None
        sale.updated_at = now
        db.session.flush()
        return sale.id

    run_in_transaction(_op)
    sale = get_sale(sale_id)
    current_app.logger.info(
        "Sale %s payment recorded: %s of %s cents, status %s",
        sale.id, sale.amount_cancelled_cents, sale.total_amount_cents, sale.status,
    )
    return sale


def get_sale(sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


# =============================================================================
# SEARCH
# =============================================================================

SALE_DATE_FIELDS = {
    "created_at": Sale.created_at,
    "closed_at": Sale.closed_at,
    "expired_at": Sale.expired_at,
}


@dataclass(frozen=True)
class SaleFilter:
    """Explicit search criteria for list_sales()."""

    user_id: int | None = None
    business_id: int | None = None
    branch_id: int | None = None
    status: str | None = None
    search: str | None = None
    date_field: str = "created_at"
    start: str | None = None
    end: str | None = None
    page: int = 1
    page_size: int = 10

    def predicates(self) -> list:
        if self.date_field not in SALE_DATE_FIELDS:
            raise InvalidRequestError(
                f"date_field must be one of {sorted(SALE_DATE_FIELDS)}"
            )
        if self.status is not None and self.status not in VALID_SALE_STATUSES:
            raise InvalidRequestError(f"Invalid status: {self.status}")

        clauses = []
        if self.user_id:
            clauses.append(Sale.user_id == self.user_id)
        if self.branch_id:
            clauses.append(Sale.branch_id == self.branch_id)
        if self.business_id:
            clauses.append(Sale.business_id == self.business_id)
        if self.status:
            clauses.append(Sale.status == self.status)
        if self.search:
            pattern = f"%{self.search.strip()}%"
            clauses.append(or_(
                Sale.client_name.ilike(pattern),
                Sale.client_dni.ilike(pattern),
                User.name.ilike(pattern),
                User.email.ilike(pattern),
                User.dni.ilike(pattern),
            ))

        column = SALE_DATE_FIELDS[self.date_field]
        try:
            start_dt = parse_iso_datetime(self.start)
            end_dt = parse_iso_datetime(self.end)
        except ValueError:
            raise InvalidRequestError("start and end must be ISO-8601 datetimes")
        if start_dt:
            clauses.append(column >= start_dt)
        if end_dt:
            clauses.append(column <= end_dt)
        return clauses


def list_sales(criteria: SaleFilter) -> dict:
    """Paginated sale search, newest first."""
    if criteria.page < 1 or criteria.page_size < 1:
        raise InvalidRequestError("page and page_size must be positive")
    if criteria.user_id and db.session.query(User.id).filter_by(id=criteria.user_id).first() is None:
        raise NotFoundError(f"User {criteria.user_id} not found", details={"user_id": criteria.user_id})

    query = db.session.query(Sale).outerjoin(User, Sale.user_id == User.id)
    for clause in criteria.predicates():
        query = query.filter(clause)

    total = query.count()
    rows = (
        query.order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset((criteria.page - 1) * criteria.page_size)
        .limit(criteria.page_size)
        .all()
    )
    return {
        "data": rows,
        "total": total,
        "page": criteria.page,
        "page_size": criteria.page_size,
        "total_pages": (total + criteria.page_size - 1) // criteria.page_size,
    }
