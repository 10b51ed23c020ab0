# Overview: Service-layer operations for client approval of sales; encapsulates business logic and database work.

"""
Approval Workflow

Client approval confirms a finalized invoice. Approving (false -> true) on
behalf of a known user records the sale's lines in that user's personal
PURCHASES ledger, VAT included unless the product is VAT-exempt. The flag
change and the ledger rows commit together.
"""

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError
from ..extensions import db
from ..models import Sale, User
from ..time_utils import utcnow
from .category_totals_service import AggregateScope, add_to_monthly_total
from .concurrency import lock_for_update, run_in_transaction

BPS_DENOMINATOR = 10_000


def with_vat(amount_cents: int, vat_rate_bps: int) -> int:
    """Gross amount for a net amount, rounded half-up to the cent."""
    gross = amount_cents * (BPS_DENOMINATOR + vat_rate_bps)
    return (gross + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR


def approve_sale(requesting_user_id: int | None, sale_id: int, approve: bool) -> Sale:
    if requesting_user_id is not None and db.session.get(User, requesting_user_id) is None:
        raise NotFoundError(
            f"User {requesting_user_id} not found", details={"user_id": requesting_user_id}
        )

    vat_rate_bps = current_app.config.get("VAT_RATE_BPS", 0)

    def _op() -> bool:
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})

        now = utcnow()
        newly_approved = approve and not sale.client_approved

        sale.client_approved = approve
        if approve:
            if newly_approved:
                sale.approved_at = now
                sale.approved_by_user_id = requesting_user_id
        else:
            sale.approved_at = None
            sale.approved_by_user_id = None
        sale.updated_at = now

        if newly_approved and requesting_user_id is not None:
            scope = AggregateScope.for_user(requesting_user_id)
            for line in sale.lines:
                product = line.product
                amount = line.line_total_cents
                if not product.vat_exempt:
                    amount = with_vat(amount, vat_rate_bps)
                add_to_monthly_total(scope, product.category, amount, now)

        db.session.flush()
        return newly_approved

    newly_approved = run_in_transaction(_op)
    sale = db.session.get(Sale, sale_id)
    current_app.logger.info(
        "Sale %s approval set to %s by user %s%s",
        sale_id, approve, requesting_user_id,
        " (purchases ledger updated)" if newly_approved and requesting_user_id else "",
    )
    return sale
