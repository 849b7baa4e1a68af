"""
Ledger store backends.
"""

from holder_rewards.core.config import Settings
from holder_rewards.core.database import Database

from .base import LedgerStore
from .memory_store import MemoryLedgerStore
from .sql_store import SqlLedgerStore


def create_ledger_store(settings: Settings) -> LedgerStore:
    """Pick the backend for the configured database URL."""
    if settings.database_url == "memory://":
        return MemoryLedgerStore()
    return SqlLedgerStore(Database.from_settings(settings))


__all__ = [
    "LedgerStore",
    "MemoryLedgerStore",
    "SqlLedgerStore",
    "create_ledger_store",
]
