"""
CLI helper to seed the default salads and custom options.

Records are matched by name (and category for options); existing ones are
left untouched so the script can be re-run safely.
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
from saladbar.db import RecordStore, SqlRecordStore
from saladbar.migrations import run_migrations

logger = logging.getLogger(__name__)

DEFAULT_SALADS = [
    {
        "name": "Nonna's Caesar",
        "description": "Romaine hearts, shaved parmesan and sourdough croutons with house Caesar dressing.",
        "price": 8.5,
        "ingredients": [
            "Romaine Lettuce",
            "Parmesan Cheese",
            "Sourdough Croutons",
            "House Caesar Dressing",
        ],
        "category": "signature",
        "calories": 320,
    },
    {
        "name": "Tropical Twist",
        "description": "Baby spinach, mango, avocado and jicama with honey-lime vinaigrette.",
        "price": 9.0,
        "ingredients": ["Baby Spinach", "Fresh Mango", "Avocado", "Jicama"],
        "category": "seasonal",
        "calories": 290,
    },
    {
        "name": "Méditerranéenne",
        "description": "Rocket, cherry tomatoes, cucumber, kalamata olives and feta.",
        "price": 12.99,
        "ingredients": ["Rocket", "Cherry Tomatoes", "Cucumber", "Kalamata Olives", "Feta"],
        "category": "featured",
        "calories": 410,
    },
]

DEFAULT_OPTIONS = [
    {"category": "base", "name": "romaine", "price": 0},
    {"category": "base", "name": "spinach", "price": 0},
    {"category": "base", "name": "rocket", "price": 0.5},
    {"category": "base", "name": "quinoa", "price": 1.0},
    {"category": "topping", "name": "grilled chicken", "price": 2.5},
    {"category": "topping", "name": "avocado", "price": 1.5},
    {"category": "topping", "name": "cherry tomatoes", "price": 0.75},
    {"category": "topping", "name": "boiled egg", "price": 1.0},
    {"category": "topping", "name": "croutons", "price": 0.5},
    {"category": "dressing", "name": "olive oil", "price": 0},
    {"category": "dressing", "name": "balsamic", "price": 0},
    {"category": "dressing", "name": "caesar", "price": 0.5},
]


def seed_menu(store: RecordStore) -> tuple[int, int]:
    """Create missing default records. Returns (salads created, options created)."""
    salads_created = 0
    for salad in DEFAULT_SALADS:
        if store.find_records("salads", {"name": salad["name"]}, limit=1):
            continue
        store.create_record("salads", salad)
        salads_created += 1

    options_created = 0
    for option in DEFAULT_OPTIONS:
        existing = store.find_records(
            "custom_options",
            {"category": option["category"], "name": option["name"]},
            limit=1,
        )
        if existing:
            continue
        store.create_record("custom_options", option)
        options_created += 1

    logger.info("Seeded %d salads and %d options", salads_created, options_created)
    return salads_created, options_created


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Seed the default salad menu")
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="SQLAlchemy URL (defaults to DATABASE_URL)",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    database_url = args.database_url or settings.database_url
    if not database_url:
        parser.error("No database URL given and DATABASE_URL is not set")

    store = SqlRecordStore(database_url)
    run_migrations(store, settings.app_version)
    salads, options = seed_menu(store)
    print(f"Created {salads} salad(s) and {options} option(s)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
