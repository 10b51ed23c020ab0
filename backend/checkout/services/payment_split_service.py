# Overview: Service-layer operations for payment splits; encapsulates business logic and database work.

"""
Payment splits record how a sale was paid: one (payment method, amount) pair
per tender. The whole set is replaced on every update or payment patch;
splits are never diffed.
"""

from __future__ import annotations

from ..errors import InvalidRequestError
from ..extensions import db
from ..models import PaymentMethod, PaymentSplit, Sale
from ..validation import PaymentSplitInput


def validate_splits(
    splits: list[PaymentSplitInput],
    amount_cancelled_cents: int,
    *,
    strict: bool = False,
) -> None:
    """
    Check split shape; in strict mode also require the splits to add up to
    the amount cancelled.
    """
    method_ids = {s.payment_method_id for s in splits}
    if method_ids:
        known = {
            row.id
            for row in db.session.query(PaymentMethod.id).filter(PaymentMethod.id.in_(method_ids)).all()
        }
        unknown = sorted(method_ids - known)
        if unknown:
            raise InvalidRequestError(
                "Unknown payment method",
                details={"payment_method_ids": unknown},
            )

    for split in splits:
        if split.amount_cancelled_cents < 0:
            raise InvalidRequestError("Payment split amounts must be non-negative")

    if strict:
        total = sum(s.amount_cancelled_cents for s in splits)
        if total != amount_cancelled_cents:
            raise InvalidRequestError(
                "Payment splits do not add up to the amount cancelled",
                details={"splits_total_cents": total, "amount_cancelled_cents": amount_cancelled_cents},
            )


def replace_splits(sale: Sale, splits: list[PaymentSplitInput]) -> list[PaymentSplit]:
    """Delete every split of the sale and record the new set."""
    sale.payment_splits.clear()
    db.session.flush()

    created = []
    for split in splits:
        row = PaymentSplit(
            payment_method_id=split.payment_method_id,
            amount_cancelled_cents=split.amount_cancelled_cents,
        )
        sale.payment_splits.append(row)
        created.append(row)
    db.session.flush()
    return created
