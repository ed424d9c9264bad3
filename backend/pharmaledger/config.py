# backend/pharmaledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/pharmaledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///pharmaledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Optimistic transaction retry policy (see services/concurrency.py)
    TX_RETRY_ATTEMPTS = int(os.environ.get("TX_RETRY_ATTEMPTS", "3"))
    TX_RETRY_BACKOFF_SECONDS = float(os.environ.get("TX_RETRY_BACKOFF_SECONDS", "0.1"))

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "12"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Expense category used for supplier purchase payments
    EXPENSE_CATEGORY_SUPPLIER_PURCHASE = "Compra Proveedores"

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    ]

    # Shared secret the identity provider's bridge sends to POST /api/session.
    # Unset disables the endpoint; tokens then come from `flask users issue-token`.
    IDENTITY_BRIDGE_SECRET = os.environ.get("IDENTITY_BRIDGE_SECRET")
