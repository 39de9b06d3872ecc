# backend/resale/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/resale.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///resale.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Marketplace fee charged on the sold price, in basis points (1000 = 10%)
    PLATFORM_FEE_BPS = int(os.environ.get("PLATFORM_FEE_BPS", "1000"))

    # Initial listing price as a percentage of the nominal purchase cost
    DEFAULT_MARKUP_PERCENT = int(os.environ.get("DEFAULT_MARKUP_PERCENT", "250"))
