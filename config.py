"""
Application configuration.

Defines database connection, secret key, document numbering and logging
settings. Sensitive values come from environment variables with development
defaults. In production set SECRET_KEY and DATABASE_URL.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


class Config:
    """Settings for every environment; override through environment variables."""

    # Must be set in production (sessions and CSRF tokens are signed with it)
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # SQLite file next to this module unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'salesdocs.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CSRF protection for mutating requests (X-CSRFToken header)
    WTF_CSRF_ENABLED = True

    APP_NAME = "Sales Documents"

    # Used for line items that carry no VAT % and no document VAT %
    DEFAULT_VAT_PERCENT = os.environ.get("DEFAULT_VAT_PERCENT", "15")

    # First invoice number per tenant (INV001 by default)
    INVOICE_REFERENCE_START = _env_int("INVOICE_REFERENCE_START", 1)

    # Unique-constraint collisions tolerated before a 409 is returned
    REFERENCE_ALLOCATION_ATTEMPTS = _env_int("REFERENCE_ALLOCATION_ATTEMPTS", 3)

    # Customer/product/unit list cache lifetime
    LIST_CACHE_TTL_SECONDS = _env_int("LIST_CACHE_TTL_SECONDS", 300)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    LOGGING = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "verbose": {
                "format": "{levelname} {asctime} {name} {message}",
                "style": "{",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "verbose",
            },
        },
        "loggers": {
            "salesdocs": {
                "handlers": ["console"],
                "level": LOG_LEVEL,
                "propagate": True,
            },
        },
    }
