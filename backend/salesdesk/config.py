# backend/salesdesk/config.py
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

    # SQLite DB stored in backend/instance/salesdesk.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///salesdesk.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Completion runs in a single transaction; False keeps per-item commits
    SALE_COMPLETION_ATOMIC = _env_bool("SALE_COMPLETION_ATOMIC", True)

    # Discount rules (percentages over the original, pre-markdown value)
    DISCOUNT_AUTHORIZATION_THRESHOLD_PCT = float(os.environ.get("DISCOUNT_AUTHORIZATION_THRESHOLD_PCT", "6"))
    DISCOUNT_TOKEN_MIN_LENGTH = int(os.environ.get("DISCOUNT_TOKEN_MIN_LENGTH", "3"))
    LINE_MARKDOWN_LIMIT_PCT = float(os.environ.get("LINE_MARKDOWN_LIMIT_PCT", "6"))

    MAX_INSTALLMENTS = int(os.environ.get("MAX_INSTALLMENTS", "10"))

    DEFAULT_CLIENT_NAME = os.environ.get("DEFAULT_CLIENT_NAME", "FINAL CONSUMER")
    CURRENCY_SYMBOL = os.environ.get("CURRENCY_SYMBOL", "R$")

    # None keeps the unit catalog in memory only
    UNITS_CONFIG_PATH = os.environ.get("UNITS_CONFIG_PATH")
