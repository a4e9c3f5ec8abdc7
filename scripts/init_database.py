#!/usr/bin/env python3
"""
Create the selection table (checked_states) in Postgres and install the trigger
that publishes row changes on the NOTIFY channel the sync engine listens on.

Uses DATABASE_URL environment variable. Does NOT drop existing tables.
"""

from __future__ import annotations
import argparse
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
load_dotenv()

# Make sure src is on sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import inspect, text
from sqlalchemy.exc import OperationalError

from src.database.postgres_real import PostgresSelectionStore
from src.utils.config_loader import load_sync_config


def main() -> int:
    parser = argparse.ArgumentParser(description="Create the selection table and change-notification trigger")
    parser.add_argument("--config", type=Path, default=None, help="Path to sync_config.yml")
    parser.add_argument("--channel", default=None, help="NOTIFY channel (defaults to store.channel from config)")
    args = parser.parse_args()

    config = load_sync_config(args.config)
    url = os.environ.get(config.store.database_url_env)
    if not url:
        print(f"{config.store.database_url_env} is not set", file=sys.stderr)
        return 1

    try:
        store = PostgresSelectionStore(connection_string=url, channel=args.channel or config.store.channel)

        # Test connection using text()
        with store.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("✅ Database connection OK")

        store.create_tables()
        tables = inspect(store.engine).get_table_names()
        print("✅ App tables now exist:", sorted(tables))
        print(f"✅ Change notifications published on channel '{store.channel}'")
        store.engine.dispose()
        return 0

    except OperationalError as e:
        print(f"❌ Failed to connect to database: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
