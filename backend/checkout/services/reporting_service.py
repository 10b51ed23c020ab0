# Overview: Read-only sale projections (summaries, last sale lookups, category totals).

from __future__ import annotations

from sqlalchemy import case, func

from ..errors import InvalidRequestError, NotFoundError
from ..extensions import db
from ..models import Sale, User
from ..models.aggregates import LEDGER_PURCHASES, LEDGER_SALES
from ..models.sales import SALE_STATUS_PAID, SALE_STATUS_PENDING
from ..time_utils import utcnow
from .category_totals_service import AggregateScope, totals_for_year


def _scope_filters(business_id: int | None, branch_id: int | None, user_id: int | None) -> list:
    clauses = []
    if business_id:
        clauses.append(Sale.business_id == business_id)
    if branch_id:
        clauses.append(Sale.branch_id == branch_id)
    if user_id:
        clauses.append(Sale.user_id == user_id)
    return clauses


def sale_summary(
    business_id: int | None = None,
    branch_id: int | None = None,
    user_id: int | None = None,
) -> dict:
    """
    Counts and amounts by status for a business, branch or user.

    Pending sales whose expiry has passed are reported as expired. Pending and
    expired amounts are the outstanding balance, not the invoice total.
    """
    clauses = _scope_filters(business_id, branch_id, user_id)
    if not clauses:
        raise InvalidRequestError("business_id, branch_id or user_id is required")

    now = utcnow()
    is_pending = Sale.status == SALE_STATUS_PENDING
    is_expired = is_pending & Sale.expired_at.isnot(None) & (Sale.expired_at < now)
    is_open = is_pending & ~is_expired
    outstanding = case(
        (Sale.total_amount_cents > Sale.amount_cancelled_cents,
         Sale.total_amount_cents - Sale.amount_cancelled_cents),
        else_=0,
    )

    row = (
        db.session.query(
            func.count(Sale.id),
            func.coalesce(func.sum(case((Sale.status == SALE_STATUS_PAID, 1), else_=0)), 0),
            func.coalesce(func.sum(case((is_open, 1), else_=0)), 0),
            func.coalesce(func.sum(case((is_expired, 1), else_=0)), 0),
            func.coalesce(func.sum(Sale.total_amount_cents), 0),
            func.coalesce(func.sum(case((Sale.status == SALE_STATUS_PAID, Sale.total_amount_cents), else_=0)), 0),
            func.coalesce(func.sum(case((is_open, outstanding), else_=0)), 0),
            func.coalesce(func.sum(case((is_expired, outstanding), else_=0)), 0),
        )
        .filter(*clauses)
        .one()
    )

    return {
        "totalPurchases": int(row[0]),
        "completed": int(row[1]),
        "pending": int(row[2]),
        "expired": int(row[3]),
        "totalAmount": int(row[4]),
        "completedAmount": int(row[5]),
        "pendingAmount": int(row[6]),
        "expiredAmount": int(row[7]),
    }


def last_purchase_for_user(user_id: int | None) -> Sale:
    if not user_id:
        raise NotFoundError("User not found")
    sale = (
        db.session.query(Sale)
        .filter(Sale.user_id == user_id)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .first()
    )
    if sale is None:
        raise NotFoundError(f"No purchases found for user {user_id}", details={"user_id": user_id})
    return sale


def last_sale_for_scope(business_id: int | None = None, branch_id: int | None = None) -> Sale:
    """Most recent sale of a branch, or of a business when no branch is given."""
    if branch_id:
        query = db.session.query(Sale).filter(Sale.branch_id == branch_id)
    elif business_id:
        query = db.session.query(Sale).filter(Sale.business_id == business_id)
    else:
        raise InvalidRequestError("business_id or branch_id is required")

    sale = query.order_by(Sale.created_at.desc(), Sale.id.desc()).first()
    if sale is None:
        raise NotFoundError(
            "No sales found", details={"business_id": business_id, "branch_id": branch_id}
        )
    return sale


def category_totals_for_year(
    ledger: str,
    year: int,
    *,
    business_id: int | None = None,
    branch_id: int | None = None,
    user_id: int | None = None,
) -> list[dict]:
    """Month-by-month category totals from the SALES (branch) or PURCHASES (user) ledger."""
    if ledger == LEDGER_SALES:
        if not branch_id:
            raise InvalidRequestError("branch_id is required for the SALES ledger")
        scope = AggregateScope.for_branch(business_id, branch_id)
    elif ledger == LEDGER_PURCHASES:
        if not user_id:
            raise InvalidRequestError("user_id is required for the PURCHASES ledger")
        if db.session.get(User, user_id) is None:
            raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})
        scope = AggregateScope.for_user(user_id)
    else:
        raise InvalidRequestError(f"ledger must be {LEDGER_SALES} or {LEDGER_PURCHASES}")

    return totals_for_year(scope, year)
