import os
import tempfile
import threading
import unittest
from datetime import datetime, timezone
from unittest.mock import patch

from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from saladbar.auth import register_user
from saladbar.db import SqlRecordStore
from saladbar.errors import (
    BadRequest,
    CollectionNotFound,
    RecordNotFound,
    RecordValidationError,
    StoreUnavailable,
)
from saladbar.migrations import run_migrations


class SqlRecordStoreTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the SQL store logic.
    """

    def setUp(self):
        self.store = SqlRecordStore("sqlite+pysqlite:///:memory:")
        run_migrations(self.store, "1.0.0")
        self.user = self.store.create_record(
            "users", {"email": "sql@example.com", "password": "hash"}
        )

    def test_create_and_get_record(self):
        salad = self.store.create_record("salads", {"name": "Cobb", "price": 10})
        self.assertTrue(salad["id"])
        self.assertTrue(salad["is_default"])
        self.assertEqual(salad["ingredients"], [])

        fetched = self.store.get_record("salads", salad["id"])
        self.assertEqual(fetched, salad)
        self.assertIsNone(self.store.get_record("salads", "missing"))
        # ids are not shared across collections
        self.assertIsNone(self.store.get_record("orders", salad["id"]))

    def test_find_records_filters_and_sorts(self):
        for name, price in (("b", 2.0), ("a", 1.0), ("c", 3.0)):
            self.store.create_record("salads", {"name": name, "price": price})
        cheap = self.store.find_records("salads", {"price": 1.0})
        self.assertEqual([s["name"] for s in cheap], ["a"])

        by_price = self.store.find_records("salads", sort="-price", limit=2)
        self.assertEqual([s["name"] for s in by_price], ["c", "b"])

    def test_update_keeps_created(self):
        created_at = datetime(2026, 1, 1, tzinfo=timezone.utc)
        updated_at = datetime(2026, 1, 2, tzinfo=timezone.utc)
        order = self.store.create_record(
            "orders",
            {"user_id": self.user["id"], "items": {"salad_id": "s"}, "total": 5},
            now=created_at,
        )
        self.assertEqual(order["status"], "pending")

        updated = self.store.update_record(
            "orders", order["id"], {"status": "prepping"}, now=updated_at
        )
        self.assertEqual(updated["status"], "prepping")
        self.assertEqual(updated["created"], created_at.isoformat())
        self.assertEqual(updated["updated"], updated_at.isoformat())
        self.assertEqual(updated["items"], {"salad_id": "s"})

        with self.assertRaises(RecordValidationError):
            self.store.update_record("orders", order["id"], {"created": "2020-01-01"})
        with self.assertRaises(RecordNotFound):
            self.store.update_record("orders", "missing", {"status": "ready"})

    def test_schema_constraints_enforced(self):
        with self.assertRaises(RecordValidationError):
            self.store.create_record(
                "users", {"email": "SQL@example.com", "password": "other"}
            )
        with self.assertRaises(RecordValidationError):
            self.store.create_record(
                "subscriptions",
                {"user_id": self.user["id"], "plan": "daily", "salads_per_cycle": 1},
            )
        with self.assertRaises(RecordValidationError):
            self.store.create_record(
                "orders", {"user_id": "ghost", "items": {}, "total": 1}
            )

    def test_unknown_collection(self):
        with self.assertRaises(CollectionNotFound):
            self.store.find_records("reviews")
        with self.assertRaises(CollectionNotFound):
            self.store.create_record("reviews", {"text": "yum"})

    def test_schema_survives_reopen_of_cache(self):
        self.store._schemas.clear()
        schema = self.store.get_schema("custom_options")
        self.assertEqual(schema.get_field("price").default, 0)
        self.assertEqual(
            schema.get_field("category").options, ("base", "topping", "dressing")
        )

    def test_driver_errors_become_store_unavailable(self):
        with patch.object(
            self.store,
            "Session",
            side_effect=OperationalError("SELECT 1", {}, Exception("gone")),
        ):
            with self.assertRaises(StoreUnavailable):
                self.store.list_collections()

    def test_filters_and_limit_run_in_sql(self):
        for day, email in ((2, "a@example.com"), (3, "b@example.com")):
            self.store.create_record(
                "users",
                {"email": email, "password": "x"},
                now=datetime(2099, 1, day, tzinfo=timezone.utc),
            )
        statements = []

        def capture(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement.upper())

        event.listen(self.store.engine, "before_cursor_execute", capture)
        try:
            found = self.store.find_records("users", {"email": "b@example.com"}, limit=1)
        finally:
            event.remove(self.store.engine, "before_cursor_execute", capture)
        self.assertEqual([user["email"] for user in found], ["b@example.com"])
        query = next(statement for statement in statements if "FROM RECORDS" in statement)
        self.assertIn("JSON_EXTRACT", query)
        self.assertIn("LIMIT", query)

        newest = self.store.find_records("users", sort="-created", limit=1)
        self.assertEqual(newest[0]["email"], "b@example.com")

    def test_bool_and_number_filters(self):
        self.store.create_record("salads", {"name": "Kale", "price": 7, "available": False})
        self.store.create_record("salads", {"name": "Greek", "price": 7.5})
        hidden = self.store.find_records("salads", {"available": False})
        self.assertEqual([s["name"] for s in hidden], ["Kale"])
        self.assertEqual(
            [s["name"] for s in self.store.find_records("salads", {"price": 7})], ["Kale"]
        )

    def test_unique_value_moves_with_updates(self):
        other = self.store.create_record(
            "users", {"email": "other@example.com", "password": "x"}
        )
        with self.assertRaises(RecordValidationError):
            self.store.update_record("users", other["id"], {"email": "sql@example.com"})

        self.store.update_record("users", self.user["id"], {"email": "renamed@example.com"})
        moved = self.store.update_record("users", other["id"], {"email": "SQL@example.com"})
        self.assertEqual(moved["email"], "sql@example.com")
        self.store.update_record("users", other["id"], {"name": "Other"})
        with self.assertRaises(RecordValidationError):
            self.store.create_record(
                "users", {"email": "sql@example.com", "password": "y"}
            )

    def test_delete_record_releases_unique_values(self):
        self.store.delete_record("users", self.user["id"])
        self.assertIsNone(self.store.get_record("users", self.user["id"]))
        with self.assertRaises(RecordNotFound):
            self.store.delete_record("users", self.user["id"])

        again = self.store.create_record(
            "users", {"email": "sql@example.com", "password": "hash"}
        )
        self.assertNotEqual(again["id"], self.user["id"])


class SqlRecordStoreConcurrencyTests(unittest.TestCase):
    """Uses a file database so that every thread gets its own connection."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        url = f"sqlite+pysqlite:///{os.path.join(self.tmpdir.name, 'race.db')}"
        self.store = SqlRecordStore(url)
        run_migrations(self.store, "1.0.0")

    def tearDown(self):
        self.store.engine.dispose()
        self.tmpdir.cleanup()

    def test_concurrent_registrations_keep_email_unique(self):
        both_checked = threading.Barrier(2, timeout=10)
        lookup = self.store.find_records

        def find_then_wait(*args, **kwargs):
            found = lookup(*args, **kwargs)
            both_checked.wait()
            return found

        registered, rejected = [], []

        def register():
            try:
                registered.append(
                    register_user(self.store, email="dup@example.com", password="pw-123456")
                )
            except BadRequest as exc:
                rejected.append(exc)

        with patch.object(self.store, "find_records", side_effect=find_then_wait):
            threads = [threading.Thread(target=register) for _ in range(2)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join(timeout=30)

        self.assertEqual(len(registered), 1)
        self.assertEqual(len(rejected), 1)
        self.assertEqual(
            len(self.store.find_records("users", {"email": "dup@example.com"})), 1
        )


if __name__ == "__main__":
    unittest.main()
