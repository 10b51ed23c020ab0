# Overview: Post-commit purchase notifications addressed to a user.

"""
Purchase events are fire-and-forget: they are emitted after the sale's unit
of work has committed and a failing emitter never affects the sale.

The transport is pluggable. An emitter is any callable taking
(user_id, payload); install one with set_purchase_emitter(app, emitter).
Without one, events are written to the application log.
"""

from __future__ import annotations

from typing import Callable

from flask import current_app

PurchaseEmitter = Callable[[int, dict], None]

EVENT_PURCHASE_CREATED = "purchase.created"
EVENT_PURCHASE_UPDATED = "purchase.updated"

_EXTENSION_KEY = "purchase_emitter"


def log_purchase_event(user_id: int, payload: dict) -> None:
    current_app.logger.info(
        "Purchase event %s for user %s (sale %s)",
        payload.get("event"),
        user_id,
        payload.get("sale", {}).get("id"),
    )


def set_purchase_emitter(app, emitter: PurchaseEmitter | None) -> None:
    app.extensions[_EXTENSION_KEY] = emitter or log_purchase_event


def get_purchase_emitter() -> PurchaseEmitter:
    return current_app.extensions.get(_EXTENSION_KEY) or log_purchase_event


def emit_purchase_event(user_id: int | None, payload: dict) -> bool:
    """
    Deliver a purchase event to a user. Returns True when delivered.

    Failures are logged and swallowed.
    """
    if not user_id or not current_app.config.get("SALE_NOTIFICATIONS_ENABLED", True):
        return False
    try:
        get_purchase_emitter()(user_id, payload)
        return True
    except Exception:
        current_app.logger.exception("Failed to emit purchase event for user %s", user_id)
        return False
