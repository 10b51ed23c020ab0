# Overview: Error taxonomy shared by the sale engine services and routes.

from __future__ import annotations


class SaleError(Exception):
    """Base class for sale engine errors."""

    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class NotFoundError(SaleError):
    """Unknown cash register, sale, stock unit or user."""

    http_status = 404


class InvalidRequestError(SaleError):
    """Missing required fields, empty line list, malformed payment splits."""

    http_status = 400


class InsufficientStockError(SaleError):
    """
    One or more lines exceed availability.

    Carries every offending line so the caller can fix them in one retry:
    - details["shortages"]: human-readable descriptions
    - details["items"]: structured rows (stock_id, product_id, requested, available)
    """

    http_status = 409

    def __init__(self, shortages: list[dict], message: str = "Insufficient stock for one or more items"):
        super().__init__(
            message,
            details={
                "shortages": [s["description"] for s in shortages],
                "items": [{k: v for k, v in s.items() if k != "description"} for s in shortages],
            },
        )
        self.shortages = shortages


class ConflictOnCommitError(SaleError):
    """A storage-level race (lock timeout, stale row, unique collision) outlived its retries."""

    http_status = 409
