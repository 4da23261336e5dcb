import unittest
from datetime import datetime, timedelta, timezone

from saladbar.collection_schemas import (
    CUSTOM_OPTIONS,
    ORDERS,
    SALADS,
    SCHEMAS,
    SUBSCRIPTIONS,
    USERS,
    CollectionSchema,
    validate_record,
)
from saladbar.errors import RecordValidationError


class ValidateRecordTests(unittest.TestCase):
    def test_declares_five_collections(self):
        self.assertEqual(
            sorted(SCHEMAS),
            ["custom_options", "orders", "salads", "subscriptions", "users"],
        )

    def test_defaults_are_applied_on_create(self):
        user = validate_record(USERS, {"email": "a@example.com", "password": "h"})
        self.assertEqual(user["role"], "customer")
        self.assertEqual(user["points"], 0)
        self.assertEqual(user["salad_streak"], 0)

        option = validate_record(CUSTOM_OPTIONS, {"category": "dressing", "name": "ranch"})
        self.assertEqual(option["price"], 0)
        self.assertTrue(option["available"])

        order = validate_record(ORDERS, {"user_id": "u1", "items": {}})
        self.assertEqual(order["status"], "pending")

    def test_json_defaults_are_not_shared(self):
        first = validate_record(SALADS, {"name": "a", "price": 1})
        first["ingredients"].append("kale")
        second = validate_record(SALADS, {"name": "b", "price": 1})
        self.assertEqual(second["ingredients"], [])

    def test_rejects_constraint_violations(self):
        cases = [
            (USERS, {"email": "not-an-email", "password": "h"}),
            (USERS, {"email": "a@example.com", "password": "h", "points": -1}),
            (USERS, {"email": "a@example.com", "password": "h", "points": 1.5}),
            (USERS, {"email": "a@example.com", "password": "h", "role": "chef"}),
            (USERS, {"email": "a@example.com"}),
            (SALADS, {"name": "a", "price": -2}),
            (SALADS, {"name": "a", "price": "7"}),
            (SALADS, {"name": "a", "price": 1, "is_default": "yes"}),
            (CUSTOM_OPTIONS, {"category": "protein", "name": "tofu"}),
            (ORDERS, {"user_id": "u1", "items": {}, "status": "cancelled"}),
            (SUBSCRIPTIONS, {"user_id": "u1", "plan": "weekly", "salads_per_cycle": 0}),
            (SUBSCRIPTIONS, {"user_id": "u1", "plan": "weekly", "salads_per_cycle": 1, "next_delivery": "soon"}),
            (SALADS, {"name": "a", "price": 1, "colour": "green"}),
            (SALADS, {"id": "x", "name": "a", "price": 1}),
        ]
        for schema, data in cases:
            with self.subTest(schema=schema.name, data=data):
                with self.assertRaises(RecordValidationError):
                    validate_record(schema, data)

    def test_partial_update_only_checks_given_fields(self):
        cleaned = validate_record(ORDERS, {"status": "ready"}, partial=True)
        self.assertEqual(cleaned, {"status": "ready"})

    def test_dates_are_normalized_to_utc(self):
        local = datetime(2026, 5, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        cleaned = validate_record(
            SUBSCRIPTIONS,
            {"user_id": "u1", "plan": "monthly", "salads_per_cycle": 4, "next_delivery": local},
        )
        self.assertEqual(cleaned["next_delivery"], "2026-05-01T10:00:00+00:00")

    def test_relation_lookup(self):
        with self.assertRaises(RecordValidationError):
            validate_record(
                ORDERS,
                {"user_id": "ghost", "items": {}},
                relation_exists=lambda collection, record_id: False,
            )

    def test_schema_round_trips_through_dict(self):
        self.assertEqual(CollectionSchema.from_dict(SALADS.as_dict()), SALADS)
        self.assertEqual(SALADS.get_field("image").max_size, 1024 * 1024)


if __name__ == "__main__":
    unittest.main()
