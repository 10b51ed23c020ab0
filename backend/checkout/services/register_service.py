# Overview: Service-layer operations for cash registers; encapsulates business logic and database work.

from __future__ import annotations

from ..errors import NotFoundError
from ..extensions import db
from ..models import CashRegister


def resolve_cash_register(cash_register_id: int) -> CashRegister:
    """Cash register with its business and branch; NotFound if absent."""
    register = db.session.query(CashRegister).filter_by(id=cash_register_id).first()
    if register is None:
        raise NotFoundError(
            f"Cash register {cash_register_id} not found",
            details={"cash_register_id": cash_register_id},
        )
    return register


def create_cash_register(*, business_id: int, branch_id: int, description: str) -> CashRegister:
    register = CashRegister(business_id=business_id, branch_id=branch_id, description=description)
    db.session.add(register)
    db.session.commit()
    return register
