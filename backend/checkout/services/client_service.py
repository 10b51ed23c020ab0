# Overview: Service-layer operations for branch clients; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import InvalidRequestError, NotFoundError
from ..extensions import db
from ..models import BranchClient, Sale, User
from .concurrency import run_in_transaction


def client_key(user_id: int | None = None, client_dni: str | None = None) -> str | None:
    if user_id:
        return f"user:{user_id}"
    if client_dni:
        return f"dni:{client_dni}"
    return None


def ensure_client(
    branch_id: int,
    *,
    user_id: int | None = None,
    client_dni: str | None = None,
    client_name: str | None = None,
) -> BranchClient:
    """
    Register the client with the branch if it is not known yet.

    Idempotent. Does not commit: runs inside the caller's unit of work.
    """
    key = client_key(user_id, client_dni)
    if key is None:
        raise InvalidRequestError("A user_id or client_dni is required to register a client")

    existing = db.session.query(BranchClient).filter_by(branch_id=branch_id, client_key=key).first()
    if existing is not None:
        return existing

    client = BranchClient(
        branch_id=branch_id,
        client_key=key,
        user_id=user_id,
        client_dni=client_dni,
        client_name=client_name,
    )
    try:
        with db.session.begin_nested():
            db.session.add(client)
    except IntegrityError:
        existing = db.session.query(BranchClient).filter_by(branch_id=branch_id, client_key=key).first()
        if existing is None:
            raise
        return existing

    current_app.logger.info("Registered client %s with branch %s", key, branch_id)
    return client


def link_walk_in_sales(client_dni: str, user_id: int) -> dict:
    """
    Attach walk-in sales recorded under a DNI to a now-registered user.

    Sales already linked to a user are left alone. Branch client rows keyed
    by the DNI are re-keyed to the user unless the branch already knows the
    user, in which case the DNI row is dropped.
    """
    if not client_dni:
        raise InvalidRequestError("client_dni is required")

    user = db.session.query(User).filter_by(id=user_id).first()
    if user is None:
        raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})

    def _op() -> dict:
        sales = (
            db.session.query(Sale)
            .filter(Sale.client_dni == client_dni, Sale.user_id.is_(None))
            .all()
        )
        for sale in sales:
            sale.user_id = user_id

        dni_key = client_key(client_dni=client_dni)
        user_key = client_key(user_id=user_id)
        relinked = 0
        for client in db.session.query(BranchClient).filter_by(client_key=dni_key).all():
            already_known = (
                db.session.query(BranchClient.id)
                .filter_by(branch_id=client.branch_id, client_key=user_key)
                .first()
            )
            if already_known:
                db.session.delete(client)
            else:
                client.client_key = user_key
                client.user_id = user_id
                relinked += 1

        db.session.flush()
        return {"sales_linked": len(sales), "clients_linked": relinked}

    result = run_in_transaction(_op)
    current_app.logger.info(
        "Linked %s walk-in sales for DNI to user %s", result["sales_linked"], user_id
    )
    return result
