"""Ledger gateway adapter: contract, Horizon implementation and settings."""

from .client import AccountResult, SubmitResult, LedgerClient
from .config import LedgerSettings, REQUIRED_SETTINGS
from .horizon import HorizonClient

__all__ = [
    "AccountResult",
    "SubmitResult",
    "LedgerClient",
    "LedgerSettings",
    "REQUIRED_SETTINGS",
    "HorizonClient",
]
