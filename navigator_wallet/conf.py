"""
Process-level settings for Navigator Wallet.

Only non-secret, process-wide flags live here. Secret material is loaded
by ``vault.config`` and ledger credentials by ``ledger.config``.
"""
import os

APP_ENV = os.environ.get("APP_ENV", "production").strip().lower()

DEBUG = os.environ.get("DEBUG", "false").strip().lower() in ("1", "true", "yes")


def is_development() -> bool:
    """Return True when internal error details may be exposed to callers."""
    return DEBUG or APP_ENV == "development"
