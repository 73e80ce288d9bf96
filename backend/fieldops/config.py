# backend/fieldops/config.py
from __future__ import annotations
import os


def _int_list(raw: str) -> list[int]:
    return [int(part) for part in raw.split(",") if part.strip()]


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///fieldops.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Due date default applied when an invoice is sent without one
    INVOICE_PAYMENT_TERMS_DAYS = int(os.environ.get("INVOICE_PAYMENT_TERMS_DAYS", "30"))

    # Automation scan windows
    VISIT_REMINDER_HOURS_BEFORE = int(os.environ.get("VISIT_REMINDER_HOURS_BEFORE", "24"))
    INVOICE_FOLLOWUP_DAYS = _int_list(os.environ.get("INVOICE_FOLLOWUP_DAYS", "7,14,30"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "DEBUG"
