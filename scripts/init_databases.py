#!/usr/bin/env python3
"""
Initialize the AccountGuard database.

Usage:
    python scripts/init_databases.py            # create tables
    python scripts/init_databases.py --purge    # also drop expired tokens and sessions

This script:
1. Creates all tables (idempotent)
2. Optionally purges expired verification tokens and sessions
"""
import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from accountguard.auth.tokens import VerificationTokenManager
from accountguard.database.auth_db import get_auth_db
from accountguard.database.schema import metadata


def init_schema(db):
    print("Creating tables...")
    db.init_schema()
    print(f"  Tables: {', '.join(sorted(metadata.tables))}")


def purge_expired(db):
    print("Purging expired records...")
    tokens = VerificationTokenManager(db).purge_expired()
    sessions = db.purge_expired_sessions()
    print(f"  Verification tokens removed: {tokens}")
    print(f"  Sessions removed: {sessions}")


def main():
    parser = argparse.ArgumentParser(description="Initialize the AccountGuard database")
    parser.add_argument("--purge", action="store_true", help="Remove expired tokens and sessions")
    args = parser.parse_args()

    print("=" * 60)
    print("AccountGuard Database Initialization")
    print("=" * 60)

    db = get_auth_db()

    steps = 2 if args.purge else 1
    print(f"\n[1/{steps}] Schema:")
    init_schema(db)

    if args.purge:
        print(f"\n[2/{steps}] Maintenance:")
        purge_expired(db)

    print("\n" + "=" * 60)
    print("Database initialization complete!")
    print("=" * 60)


if __name__ == "__main__":
    main()
