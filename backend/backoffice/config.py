# backend/backoffice/config.py
from __future__ import annotations
import os
from decimal import Decimal


class Config:
    # SQLite DB stored next to the instance by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///backoffice.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Late-charge policy for overdue ledger entries (fractions, not percentages)
    LATE_PENALTY_RATE = Decimal(os.environ.get("LATE_PENALTY_RATE", "0.02"))
    LATE_DAILY_INTEREST_RATE = Decimal(os.environ.get("LATE_DAILY_INTEREST_RATE", "0.00033"))

    # Days between installments when a sale is split into receivables
    RECEIVABLE_INTERVAL_DAYS = int(os.environ.get("RECEIVABLE_INTERVAL_DAYS", "30"))

    # Fiscal issuer identity used to build access keys
    FISCAL_REGION_CODE = os.environ.get("FISCAL_REGION_CODE", "35")
    FISCAL_ISSUER_TAX_ID = os.environ.get("FISCAL_ISSUER_TAX_ID", "")
    FISCAL_SERIES = int(os.environ.get("FISCAL_SERIES", "1"))
    FISCAL_ENVIRONMENT = os.environ.get("FISCAL_ENVIRONMENT", "homologation")
    FISCAL_EMISSION_MODE = os.environ.get("FISCAL_EMISSION_MODE", "1")
