"""
Versioned schema migrations for the record store.

A migration applies to every application version inside its inclusive
version range. Applied migrations are recorded in the store itself so running
``run_migrations`` again is a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from saladbar.collection_schemas import SCHEMAS
from saladbar.db import RecordStore

logger = logging.getLogger(__name__)


def parse_version(version: str) -> tuple[int, ...]:
    try:
        return tuple(int(part) for part in version.strip().split("."))
    except ValueError as exc:
        raise ValueError(f"Invalid version string {version!r}") from exc


@dataclass(frozen=True)
class Migration:
    name: str
    min_version: str
    max_version: str
    apply: Callable[[RecordStore], None]

    def applies_to(self, app_version: str) -> bool:
        version = parse_version(app_version)
        return parse_version(self.min_version) <= version <= parse_version(self.max_version)


MIGRATIONS: list[Migration] = []


def register_migration(name: str, version_range: tuple[str, str]):
    """Decorator adding ``fn(store)`` to the migration registry."""

    def decorator(fn: Callable[[RecordStore], None]):
        if any(migration.name == name for migration in MIGRATIONS):
            raise ValueError(f"Migration {name!r} is already registered")
        MIGRATIONS.append(Migration(name, version_range[0], version_range[1], fn))
        return fn

    return decorator


@register_migration("001_init", ("0.0.0", "999.999.999"))
def create_initial_collections(store: RecordStore) -> None:
    for name, schema in SCHEMAS.items():
        if store.has_collection(name):
            logger.info("Collection %s already exists, skipping", name)
            continue
        store.create_collection(schema)
        logger.info("Created collection %s", name)


def pending_migrations(store: RecordStore, app_version: str) -> list[Migration]:
    applied = store.applied_migrations()
    return [
        migration
        for migration in MIGRATIONS
        if migration.name not in applied and migration.applies_to(app_version)
    ]


def run_migrations(store: RecordStore, app_version: str) -> list[str]:
    """Apply pending migrations in registration order. Returns the names applied."""
    applied: list[str] = []
    for migration in pending_migrations(store, app_version):
        logger.info("Applying migration %s", migration.name)
        migration.apply(store)
        store.mark_migration_applied(migration.name)
        applied.append(migration.name)
    if not applied:
        logger.info("Record store schema is up to date")
    return applied
