"""Storage layer for persistent data."""

from voile.storage.database import (
    DatabaseManager,
    SpentNullifier,
    Base,
    get_db_manager,
    reset_db_manager,
)
from voile.storage.nullifier_store import SQLNullifierStore

__all__ = [
    "DatabaseManager",
    "SpentNullifier",
    "Base",
    "get_db_manager",
    "reset_db_manager",
    "SQLNullifierStore",
]
