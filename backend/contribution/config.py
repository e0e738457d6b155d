# backend/contribution/config.py
from __future__ import annotations
import os
from decimal import Decimal


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///contribution.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Customers with no payment inside this window are flagged as defaulting
    DEFAULTING_WINDOW_DAYS = int(os.environ.get("DEFAULTING_WINDOW_DAYS", "7"))

    # Box prices below this are treated as data-entry errors (e.g. amount keyed in the wrong unit)
    MIN_BOX_PRICE = Decimal(os.environ.get("MIN_BOX_PRICE", "0.10"))

    # Optimistic-lock / database-lock retries for ledger mutations
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))
    LEDGER_RETRY_BACKOFF = float(os.environ.get("LEDGER_RETRY_BACKOFF", "0.1"))
