# backend/loyalpos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/loyalpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location (e.g. postgresql://...)
        "sqlite:///loyalpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Inventory defaults
    DEFAULT_LOW_STOCK_THRESHOLD = int(os.environ.get("DEFAULT_LOW_STOCK_THRESHOLD", "10"))

    # Loyalty: spend (in cents) required to earn one point
    DEFAULT_CENTS_PER_POINT = int(os.environ.get("DEFAULT_CENTS_PER_POINT", "10000"))

    # Maximum price: 9,999,999.99
    MAX_PRICE_CENTS = 999_999_999

    # Largest quantity accepted for one receipt, adjustment or sale line
    MAX_QUANTITY = int(os.environ.get("MAX_QUANTITY", "1000000"))

    # Largest cash amount accepted as tendered (20,000,000.00)
    MAX_TENDERED_CENTS = 2_000_000_000

    # Widest date range for sales analytics
    MAX_ANALYTICS_DAYS = 366

    # Attempts for writes that hit lock / version conflicts
    WRITE_RETRY_ATTEMPTS = int(os.environ.get("WRITE_RETRY_ATTEMPTS", "3"))
