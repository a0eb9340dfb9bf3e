# backend/shopledger/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/shopledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///shopledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Tenant used when a request carries no X-Tenant-ID header
    DEFAULT_TENANT = os.environ.get("DEFAULT_TENANT", "default")

    # True: one DB transaction per lifecycle call.
    # False: every document write commits on its own (per-key store semantics).
    LEDGER_ATOMIC_OPERATIONS = _env_bool("LEDGER_ATOMIC_OPERATIONS", True)

    # clamp | allow | reject
    STOCK_NEGATIVE_POLICY = os.environ.get("STOCK_NEGATIVE_POLICY", "clamp")

    # additive | diffed
    SUPPLIER_BALANCE_POLICY = os.environ.get("SUPPLIER_BALANCE_POLICY", "additive")

    # scan | counter
    INVOICE_SEQUENCE_MODE = os.environ.get("INVOICE_SEQUENCE_MODE", "scan")
    INVOICE_NUMBER_WIDTH = int(os.environ.get("INVOICE_NUMBER_WIDTH", "3"))
    INVOICE_SERIES = {
        "sale": {"prefix": "INV", "collection": "sales"},
        "purchase": {"prefix": "PUR", "collection": "purchases"},
        "old_battery": {"prefix": "OB", "collection": "oldBatterySales"},
    }
