# Overview: Service-layer operations for ticket numbers; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..errors import InvalidRequestError
from ..extensions import db
from ..models import Sale, TicketSequence


def _current_max_ticket(branch_id: int) -> int:
    return int(
        db.session.query(func.coalesce(func.max(Sale.ticket_number), 0))
        .filter(Sale.branch_id == branch_id)
        .scalar()
        or 0
    )


def _increment(branch_id: int) -> int | None:
    stmt = (
        update(TicketSequence)
        .where(TicketSequence.branch_id == branch_id)
        .values(next_number=TicketSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(TicketSequence.next_number)
        .filter_by(branch_id=branch_id)
        .scalar()
    )
    return current - 1


def next_ticket_number(branch_id: int) -> int:
    """
    Atomically allocate the next ticket number for a branch.

    Must be called inside the sale's unit of work: the UPDATE holds the
    counter row's lock until that unit commits or rolls back, so a rolled
    back sale does not consume a number and two concurrent sales never
    observe the same one.

    The first allocation for a branch seeds the counter from the highest
    ticket already recorded there (1 if none).
    """
    if not branch_id:
        raise InvalidRequestError("branch_id is required")

    ticket = _increment(branch_id)
    if ticket is not None:
        return ticket

    ticket = _current_max_ticket(branch_id) + 1
    try:
        with db.session.begin_nested():
            db.session.add(TicketSequence(branch_id=branch_id, next_number=ticket + 1))
    except IntegrityError:
        # Another unit created the counter first; take the locked path.
        ticket = _increment(branch_id)
        if ticket is None:
            raise
    return ticket


def peek_next_ticket_number(branch_id: int) -> int:
    """Next ticket number for a branch, without consuming it."""
    seq = db.session.query(TicketSequence).filter_by(branch_id=branch_id).first()
    if seq is not None:
        return seq.next_number
    return _current_max_ticket(branch_id) + 1
