"""
CLI helper to apply record store migrations.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from saladbar.config import get_settings
from saladbar.db import SqlRecordStore
from saladbar.migrations import pending_migrations, run_migrations


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Apply salad bar schema migrations")
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="SQLAlchemy URL (defaults to DATABASE_URL)",
    )
    parser.add_argument(
        "--app-version",
        type=str,
        default=None,
        help="Application version used to select migrations",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only list pending migrations",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    database_url = args.database_url or settings.database_url
    if not database_url:
        parser.error("No database URL given and DATABASE_URL is not set")
    app_version = args.app_version or settings.app_version

    store = SqlRecordStore(database_url)
    if args.dry_run:
        for migration in pending_migrations(store, app_version):
            print(migration.name)
        return 0

    applied = run_migrations(store, app_version)
    print(f"Applied {len(applied)} migration(s); collections: {', '.join(store.list_collections())}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
