"""
Collection schemas for the record store.

Each collection is declared once here as a ``CollectionSchema``. The store
persists the declaration when a migration creates the collection and runs
``validate_record`` on every write, so these constraints are enforced in
one place regardless of which store backend is in use.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from email_validator import EmailNotValidError, validate_email

from saladbar.errors import RecordValidationError
from shared.types import (
    OptionCategory,
    OrderStatus,
    SubscriptionPlan,
    UserRole,
    enum_values,
)

FIELD_TYPES = (
    "text",
    "email",
    "password",
    "number",
    "bool",
    "json",
    "select",
    "relation",
    "file",
    "date",
)

SYSTEM_FIELDS = ("id", "created", "updated")

ONE_MIB = 1024 * 1024


@dataclass(frozen=True)
class FieldSpec:
    name: str
    type: str
    required: bool = False
    default: Any = None
    options: tuple[str, ...] = ()
    min: Optional[float] = None
    max: Optional[float] = None
    only_int: bool = False
    max_size: Optional[int] = None
    collection: Optional[str] = None
    unique: bool = False

    def __post_init__(self):
        if self.type not in FIELD_TYPES:
            raise ValueError(f"Unknown field type {self.type!r} for {self.name!r}")
        if self.type == "relation" and not self.collection:
            raise ValueError(f"Relation field {self.name!r} needs a target collection")

    def as_dict(self) -> dict:
        data = asdict(self)
        data["options"] = list(self.options)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "FieldSpec":
        values = dict(data)
        values["options"] = tuple(values.get("options") or ())
        return cls(**values)


@dataclass(frozen=True)
class CollectionSchema:
    name: str
    fields: tuple[FieldSpec, ...] = field(default_factory=tuple)

    def get_field(self, name: str) -> FieldSpec:
        for spec in self.fields:
            if spec.name == name:
                return spec
        raise KeyError(name)

    @property
    def field_names(self) -> list[str]:
        return [spec.name for spec in self.fields]

    def as_dict(self) -> dict:
        return {"name": self.name, "fields": [spec.as_dict() for spec in self.fields]}

    @classmethod
    def from_dict(cls, data: dict) -> "CollectionSchema":
        return cls(
            name=data["name"],
            fields=tuple(FieldSpec.from_dict(item) for item in data.get("fields", [])),
        )


USERS = CollectionSchema(
    "users",
    (
        FieldSpec("email", "email", required=True, unique=True),
        FieldSpec("password", "password", required=True),
        FieldSpec("name", "text"),
        FieldSpec("address", "text"),
        FieldSpec("points", "number", default=0, min=0, only_int=True),
        FieldSpec("salad_streak", "number", default=0, min=0, only_int=True),
        FieldSpec(
            "role",
            "select",
            default=UserRole.CUSTOMER.value,
            options=enum_values(UserRole),
        ),
    ),
)

SALADS = CollectionSchema(
    "salads",
    (
        FieldSpec("name", "text", required=True),
        FieldSpec("description", "text"),
        FieldSpec("price", "number", required=True, min=0),
        FieldSpec("ingredients", "json", default=[]),
        FieldSpec("image", "file", max_size=ONE_MIB),
        FieldSpec("is_default", "bool", default=True),
        FieldSpec("available", "bool", default=True),
        FieldSpec("category", "text"),
        FieldSpec("calories", "number", min=0),
    ),
)

CUSTOM_OPTIONS = CollectionSchema(
    "custom_options",
    (
        FieldSpec(
            "category",
            "select",
            required=True,
            options=enum_values(OptionCategory),
        ),
        FieldSpec("name", "text", required=True),
        FieldSpec("price", "number", default=0, min=0),
        FieldSpec("available", "bool", default=True),
    ),
)

ORDERS = CollectionSchema(
    "orders",
    (
        FieldSpec("user_id", "relation", required=True, collection="users"),
        FieldSpec("items", "json", required=True),
        FieldSpec("total", "number", min=0),
        FieldSpec(
            "status",
            "select",
            default=OrderStatus.PENDING.value,
            options=enum_values(OrderStatus),
        ),
        FieldSpec("delivery", "bool", default=False),
    ),
)

SUBSCRIPTIONS = CollectionSchema(
    "subscriptions",
    (
        FieldSpec("user_id", "relation", required=True, collection="users"),
        FieldSpec(
            "plan",
            "select",
            required=True,
            options=enum_values(SubscriptionPlan),
        ),
        FieldSpec("salads_per_cycle", "number", required=True, min=1, only_int=True),
        FieldSpec("active", "bool", default=True),
        FieldSpec("next_delivery", "date"),
    ),
)

SCHEMAS: dict[str, CollectionSchema] = {
    schema.name: schema
    for schema in (USERS, SALADS, CUSTOM_OPTIONS, ORDERS, SUBSCRIPTIONS)
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _normalize_date(value: Any) -> str:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value)
    else:
        raise ValueError("expected a datetime or ISO-8601 string")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).isoformat()


def _check_value(
    schema: CollectionSchema,
    spec: FieldSpec,
    value: Any,
    relation_exists: Optional[Callable[[str, str], bool]],
) -> Any:
    def fail(reason: str):
        raise RecordValidationError(schema.name, spec.name, reason)

    if spec.type in ("text", "password", "file"):
        if not isinstance(value, str):
            fail("must be a string")
        if spec.required and not value:
            fail("must not be blank")
        return value

    if spec.type == "email":
        if not isinstance(value, str):
            fail("must be a string")
        try:
            validate_email(value, check_deliverability=False)
        except EmailNotValidError as exc:
            fail(str(exc))
        return value.strip().lower()

    if spec.type == "number":
        if not _is_number(value):
            fail("must be a number")
        if spec.only_int and float(value) != int(value):
            fail("must be an integer")
        if spec.min is not None and value < spec.min:
            fail(f"must be >= {spec.min:g}")
        if spec.max is not None and value > spec.max:
            fail(f"must be <= {spec.max:g}")
        return int(value) if spec.only_int else value

    if spec.type == "bool":
        if not isinstance(value, bool):
            fail("must be a boolean")
        return value

    if spec.type == "select":
        if value not in spec.options:
            fail(f"must be one of {', '.join(spec.options)}")
        return value

    if spec.type == "relation":
        if not isinstance(value, str) or not value:
            fail("must be a record id")
        if relation_exists is not None and not relation_exists(spec.collection, value):
            fail(f"no {spec.collection} record with id {value!r}")
        return value

    if spec.type == "date":
        try:
            return _normalize_date(value)
        except ValueError as exc:
            fail(str(exc))

    # json: stored as-is
    return value


def validate_record(
    schema: CollectionSchema,
    data: dict,
    *,
    partial: bool = False,
    relation_exists: Optional[Callable[[str, str], bool]] = None,
) -> dict:
    """
    Check ``data`` against ``schema`` and return the cleaned values.

    On create (``partial=False``) defaults are filled in and required fields
    must be present. On update only the given fields are checked. ``None``
    clears an optional field.
    """
    for key in data:
        if key in SYSTEM_FIELDS:
            raise RecordValidationError(schema.name, key, "is read-only")
        if key not in schema.field_names:
            raise RecordValidationError(schema.name, key, "unknown field")

    cleaned: dict = {}
    for spec in schema.fields:
        if spec.name in data:
            value = data[spec.name]
        elif partial:
            continue
        else:
            value = spec.default
            if isinstance(value, (list, dict)):
                value = type(value)(value)

        if value is None:
            if spec.required:
                raise RecordValidationError(schema.name, spec.name, "is required")
            cleaned[spec.name] = None
            continue
        cleaned[spec.name] = _check_value(schema, spec, value, relation_exists)
    return cleaned
