#!/usr/bin/env python3
"""
Database Reset Script
Clears the spent-nullifier database.

Only for development deployments: a reset re-enables every spent exit.
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from voile.config import get_settings
from voile.storage.database import DatabaseManager


def reset_database(database_url=None):
    """Drop and recreate the nullifier tables"""
    database_url = database_url or get_settings().database_url
    print(f"🔄 Resetting database {database_url}...")

    manager = DatabaseManager(database_url)

    print("  ⚠️  Dropping all tables...")
    manager.drop_tables()

    print("  ✨ Creating tables...")
    manager.create_tables()

    with manager.get_session() as session:
        print(f"  ✓ {manager.count_spent_nullifiers(session)} spent nullifiers")

    manager.dispose()
    print("✅ Database reset complete")


if __name__ == "__main__":
    reset_database(sys.argv[1] if len(sys.argv) > 1 else None)
