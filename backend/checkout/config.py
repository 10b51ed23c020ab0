# backend/checkout/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///checkout.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Current VAT rate in basis points (1600 = 16%). Reference data owned elsewhere.
    VAT_RATE_BPS = int(os.environ.get("VAT_RATE_BPS", "1600"))

    # When enabled, payment splits must add up to the sale's amount cancelled.
    STRICT_PAYMENT_SPLITS = _env_bool("STRICT_PAYMENT_SPLITS", False)

    COMMIT_RETRY_ATTEMPTS = int(os.environ.get("COMMIT_RETRY_ATTEMPTS", "3"))
    COMMIT_RETRY_BACKOFF = float(os.environ.get("COMMIT_RETRY_BACKOFF", "0.1"))

    SALE_NOTIFICATIONS_ENABLED = _env_bool("SALE_NOTIFICATIONS_ENABLED", True)
