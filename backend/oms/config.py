# backend/oms/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/oms.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///oms.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bounded statement timeout (PostgreSQL only; ignored elsewhere)
    STATEMENT_TIMEOUT_MS = int(os.environ.get("STATEMENT_TIMEOUT_MS", "15000"))

    # Invoicing defaults
    INVOICE_DUE_DAYS = int(os.environ.get("INVOICE_DUE_DAYS", "30"))
    DEFAULT_INVOICE_PREFIX = os.environ.get("DEFAULT_INVOICE_PREFIX", "INV-")
    DEFAULT_GST_RATE = os.environ.get("DEFAULT_GST_RATE", "18")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Outbox: a PROCESSING claim older than this is treated as abandoned
    OUTBOX_CLAIM_TIMEOUT_SECONDS = int(os.environ.get("OUTBOX_CLAIM_TIMEOUT_SECONDS", "300"))

    # Per-user read view cache
    VIEW_CACHE_TTL_SECONDS = int(os.environ.get("VIEW_CACHE_TTL_SECONDS", "300"))
    VIEW_CACHE_MAX_ENTRIES = int(os.environ.get("VIEW_CACHE_MAX_ENTRIES", "1000"))
