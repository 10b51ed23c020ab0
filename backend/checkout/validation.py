# Overview: Request payload parsing for sale engine routes.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .errors import InvalidRequestError
from .time_utils import parse_iso_datetime


# Maximum amount: 9,999,999,999.99 (999,999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999_999


def require_int(data: dict, key: str, *, minimum: int | None = None) -> int:
    value = data.get(key)
    if value is None:
        raise InvalidRequestError(f"{key} is required")
    return coerce_int(value, key, minimum=minimum)


def optional_int(data: dict, key: str, *, minimum: int | None = None) -> int | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    return coerce_int(value, key, minimum=minimum)


def coerce_int(value: Any, key: str, *, minimum: int | None = None) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool):
        raise InvalidRequestError(f"{key} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "." in stripped or "e" in stripped.lower():
            raise InvalidRequestError(f"{key} must be an integer")
        try:
            result = int(stripped)
        except ValueError:
            raise InvalidRequestError(f"{key} must be an integer")
    else:
        raise InvalidRequestError(f"{key} must be an integer")

    if minimum is not None and result < minimum:
        raise InvalidRequestError(f"{key} must be >= {minimum}")
    return result


def require_cents(data: dict, key: str) -> int:
    """Money amounts travel as integer cents."""
    cents = require_int(data, key, minimum=0)
    if cents > MAX_AMOUNT_CENTS:
        raise InvalidRequestError(f"{key} exceeds maximum allowed amount")
    return cents


def optional_str(data: dict, key: str, *, max_length: int = 255) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidRequestError(f"{key} must be a string")
    value = value.strip()
    if len(value) > max_length:
        raise InvalidRequestError(f"{key} must be at most {max_length} characters")
    return value or None


def require_list(data: dict, key: str) -> list:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise InvalidRequestError(f"{key} must be a list")
    return value


# =============================================================================
# INPUT TYPES
# =============================================================================

@dataclass(frozen=True)
class SaleLineInput:
    stock_id: int
    quantity: int
    unit_price_cents: int
    line_id: int | None = None


@dataclass(frozen=True)
class PaymentSplitInput:
    payment_method_id: int
    amount_cancelled_cents: int


@dataclass(frozen=True)
class SaleInput:
    cash_register_id: int | None
    total_amount_cents: int
    amount_cancelled_cents: int
    lines: list[SaleLineInput]
    payments: list[PaymentSplitInput] = field(default_factory=list)
    status: str | None = None
    user_id: int | None = None
    client_name: str | None = None
    client_dni: str | None = None
    currency: str | None = None
    expired_at: Any = None


@dataclass(frozen=True)
class PaymentPatchInput:
    amount_cancelled_cents: int
    payments: list[PaymentSplitInput]


def parse_line(raw: Any, index: int) -> SaleLineInput:
    if not isinstance(raw, dict):
        raise InvalidRequestError(f"lines[{index}] must be an object")
    try:
        return SaleLineInput(
            stock_id=require_int(raw, "stock_id", minimum=1),
            quantity=require_int(raw, "quantity", minimum=1),
            unit_price_cents=require_cents(raw, "unit_price_cents"),
            line_id=optional_int(raw, "id", minimum=1),
        )
    except InvalidRequestError as exc:
        raise InvalidRequestError(f"lines[{index}]: {exc.message}")


def parse_payment(raw: Any, index: int) -> PaymentSplitInput:
    if not isinstance(raw, dict):
        raise InvalidRequestError(f"payments[{index}] must be an object")
    try:
        return PaymentSplitInput(
            payment_method_id=require_int(raw, "payment_method_id", minimum=1),
            amount_cancelled_cents=require_cents(raw, "amount_cancelled_cents"),
        )
    except InvalidRequestError as exc:
        raise InvalidRequestError(f"payments[{index}]: {exc.message}")


def parse_sale_input(data: dict, *, for_update: bool = False) -> SaleInput:
    """
    Parse a create or update payload.

    On update the cash register may be omitted; the sale keeps its own.
    """
    expired_raw = optional_str(data, "expired_at", max_length=64)
    try:
        expired_at = parse_iso_datetime(expired_raw)
    except ValueError:
        raise InvalidRequestError("expired_at must be an ISO-8601 datetime")

    return SaleInput(
        cash_register_id=(
            optional_int(data, "cash_register_id", minimum=1)
            if for_update
            else require_int(data, "cash_register_id", minimum=1)
        ),
        total_amount_cents=require_cents(data, "total_amount_cents"),
        amount_cancelled_cents=require_cents(data, "amount_cancelled_cents"),
        lines=[parse_line(item, i) for i, item in enumerate(require_list(data, "lines"))],
        payments=[parse_payment(item, i) for i, item in enumerate(require_list(data, "payments"))],
        status=optional_str(data, "status", max_length=16),
        user_id=optional_int(data, "user_id", minimum=1),
        client_name=optional_str(data, "client_name"),
        client_dni=optional_str(data, "client_dni", max_length=64),
        currency=optional_str(data, "currency", max_length=8),
        expired_at=expired_at,
    )


def parse_payment_patch(data: dict) -> PaymentPatchInput:
    payments = require_list(data, "payments")
    if not payments:
        raise InvalidRequestError("At least one payment split is required")
    return PaymentPatchInput(
        amount_cancelled_cents=require_cents(data, "amount_cancelled_cents"),
        payments=[parse_payment(item, i) for i, item in enumerate(payments)],
    )
