"""
Record store abstraction: a SQLAlchemy-backed store and an in-memory test implementation.

Records live in named collections whose schemas are declared in
``saladbar.collection_schemas``. Both stores validate every write against the
collection schema, assign ids and maintain the ``created``/``updated``
timestamps.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Protocol

from sqlalchemy import JSON, Column, String, create_engine, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from saladbar.collection_schemas import CollectionSchema, validate_record
from saladbar.errors import (
    CollectionNotFound,
    RecordNotFound,
    RecordValidationError,
    StoreUnavailable,
)

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    """Interface for record persistence."""

    def has_collection(self, name: str) -> bool:
        ...

    def list_collections(self) -> list[str]:
        ...

    def create_collection(self, schema: CollectionSchema) -> None:
        ...

    def get_schema(self, name: str) -> CollectionSchema:
        ...

    def create_record(
        self, collection: str, data: dict, *, now: Optional[datetime] = None
    ) -> dict:
        ...

    def get_record(self, collection: str, record_id: str) -> Optional[dict]:
        ...

    def find_records(
        self,
        collection: str,
        filters: Optional[dict] = None,
        *,
        sort: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        ...

    def update_record(
        self,
        collection: str,
        record_id: str,
        data: dict,
        *,
        now: Optional[datetime] = None,
    ) -> dict:
        ...

    def delete_record(self, collection: str, record_id: str) -> None:
        ...

    def applied_migrations(self) -> set[str]:
        ...

    def mark_migration_applied(self, name: str) -> None:
        ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_record_id() -> str:
    return uuid.uuid4().hex


def _timestamp(now: Optional[datetime]) -> str:
    return (now or utc_now()).astimezone(timezone.utc).isoformat()


def _matches(record: dict, filters: Optional[dict]) -> bool:
    if not filters:
        return True
    return all(record.get(key) == value for key, value in filters.items())


def _json_equals(key: str, value: Any):
    """
    SQL equality on a top-level value of ``RecordRow.data``, or None when the
    value has no portable JSON comparison and must be matched in Python.
    """
    element = RecordRow.data[key]
    if isinstance(value, bool):
        return element.as_boolean() == value
    if isinstance(value, (int, float)):
        return element.as_float() == float(value)
    if isinstance(value, str):
        return element.as_string() == value
    return None


def _apply_sort_and_limit(
    records: list[dict], sort: Optional[str], limit: Optional[int]
) -> list[dict]:
    """
    ``sort`` is a field name, prefixed with ``-`` for descending order.
    Records missing the field sort first.
    """
    if sort:
        reverse = sort.startswith("-")
        key = sort.lstrip("-+")
        records = sorted(
            records,
            key=lambda record: (record.get(key) is not None, record.get(key)),
            reverse=reverse,
        )
    if limit:
        records = records[: int(limit)]
    return records


def _as_record(record_id: str, values: dict, created: str, updated: str) -> dict:
    record = {"id": record_id}
    record.update(values)
    record["created"] = created
    record["updated"] = updated
    return record


def _check_unique(
    store: RecordStore,
    schema: CollectionSchema,
    values: dict,
    record_id: Optional[str] = None,
) -> None:
    for spec in schema.fields:
        if not spec.unique or values.get(spec.name) is None:
            continue
        for existing in store.find_records(schema.name, {spec.name: values[spec.name]}):
            if existing["id"] != record_id:
                raise RecordValidationError(schema.name, spec.name, "must be unique")


def _validate_write(
    store: RecordStore,
    schema: CollectionSchema,
    data: dict,
    *,
    record_id: Optional[str] = None,
) -> dict:
    return validate_record(
        schema,
        data,
        partial=record_id is not None,
        relation_exists=lambda target, rid: store.get_record(target, rid) is not None,
    )


class InMemoryRecordStore:
    """Simple in-memory record store for development and tests."""

    def __init__(self):
        self.schemas: Dict[str, CollectionSchema] = {}
        self.records: Dict[str, Dict[str, dict]] = {}
        self.migrations: set[str] = set()
        self._lock = threading.RLock()

    def has_collection(self, name: str) -> bool:
        return name in self.schemas

    def list_collections(self) -> list[str]:
        return sorted(self.schemas)

    def create_collection(self, schema: CollectionSchema) -> None:
        with self._lock:
            if schema.name in self.schemas:
                raise ValueError(f"Collection {schema.name!r} already exists")
            self.schemas[schema.name] = schema
            self.records[schema.name] = {}

    def get_schema(self, name: str) -> CollectionSchema:
        schema = self.schemas.get(name)
        if schema is None:
            raise CollectionNotFound(name)
        return schema

    def _collection(self, name: str) -> Dict[str, dict]:
        if name not in self.records:
            raise CollectionNotFound(name)
        return self.records[name]

    def create_record(
        self, collection: str, data: dict, *, now: Optional[datetime] = None
    ) -> dict:
        with self._lock:
            schema = self.get_schema(collection)
            values = _validate_write(self, schema, data)
            _check_unique(self, schema, values)
            stamp = _timestamp(now)
            record = _as_record(new_record_id(), values, stamp, stamp)
            self._collection(collection)[record["id"]] = record
            return copy.deepcopy(record)

    def get_record(self, collection: str, record_id: str) -> Optional[dict]:
        with self._lock:
            record = self._collection(collection).get(record_id)
            return copy.deepcopy(record) if record else None

    def find_records(
        self,
        collection: str,
        filters: Optional[dict] = None,
        *,
        sort: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        with self._lock:
            matched = [
                copy.deepcopy(record)
                for record in self._collection(collection).values()
                if _matches(record, filters)
            ]
        return _apply_sort_and_limit(matched, sort or "created", limit)

    def update_record(
        self,
        collection: str,
        record_id: str,
        data: dict,
        *,
        now: Optional[datetime] = None,
    ) -> dict:
        with self._lock:
            records = self._collection(collection)
            record = records.get(record_id)
            if record is None:
                raise RecordNotFound(collection, record_id)
            schema = self.get_schema(collection)
            values = _validate_write(self, schema, data, record_id=record_id)
            _check_unique(self, schema, values, record_id)
            record.update(values)
            record["updated"] = _timestamp(now)
            return copy.deepcopy(record)

    def delete_record(self, collection: str, record_id: str) -> None:
        with self._lock:
            records = self._collection(collection)
            if records.pop(record_id, None) is None:
                raise RecordNotFound(collection, record_id)

    def applied_migrations(self) -> set[str]:
        return set(self.migrations)

    def mark_migration_applied(self, name: str) -> None:
        self.migrations.add(name)


class SqlRecordStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlRecordStore")
        try:
            self.engine = create_engine(
                database_url,
                future=True,
                pool_pre_ping=True,
                pool_recycle=1800,
            )
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Could not open record store: {exc}") from exc
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        self._schemas: Dict[str, CollectionSchema] = {}

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self.Session() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("Record store query failed: %s", exc)
            raise StoreUnavailable("Record store unavailable") from exc

    def _to_record(self, row: "RecordRow") -> dict:
        return _as_record(row.id, dict(row.data or {}), row.created, row.updated)

    def has_collection(self, name: str) -> bool:
        return name in self.list_collections()

    def list_collections(self) -> list[str]:
        with self._session() as session:
            names = session.execute(select(CollectionRow.name)).scalars().all()
            return sorted(names)

    def create_collection(self, schema: CollectionSchema) -> None:
        with self._session() as session:
            if session.get(CollectionRow, schema.name):
                raise ValueError(f"Collection {schema.name!r} already exists")
            session.add(
                CollectionRow(
                    name=schema.name,
                    schema=schema.as_dict(),
                    created=_timestamp(None),
                )
            )
            session.commit()
        self._schemas[schema.name] = schema

    def get_schema(self, name: str) -> CollectionSchema:
        cached = self._schemas.get(name)
        if cached is not None:
            return cached
        with self._session() as session:
            row = session.get(CollectionRow, name)
            if row is None:
                raise CollectionNotFound(name)
            schema = CollectionSchema.from_dict(row.schema)
        self._schemas[name] = schema
        return schema

    def _claim_unique(
        self,
        session: Session,
        schema: CollectionSchema,
        record_id: str,
        values: dict,
    ) -> None:
        """Point the unique-value ledger at ``record_id`` within ``session``'s transaction."""
        with session.no_autoflush:
            for spec in schema.fields:
                if not spec.unique or spec.name not in values:
                    continue
                self._claim_value(session, schema, spec.name, values[spec.name], record_id)

    def _claim_value(
        self,
        session: Session,
        schema: CollectionSchema,
        field: str,
        value: Any,
        record_id: str,
    ) -> None:
        key = None if value is None else str(value)
        held = session.execute(
            select(UniqueValueRow).where(
                UniqueValueRow.collection == schema.name,
                UniqueValueRow.field == field,
                UniqueValueRow.record_id == record_id,
            )
        ).scalar_one_or_none()
        if held is not None and held.value == key:
            return
        if held is not None:
            session.delete(held)
        if key is None:
            return
        taken = session.get(UniqueValueRow, (schema.name, field, key))
        if taken is not None:
            raise RecordValidationError(schema.name, field, "must be unique")
        session.add(
            UniqueValueRow(
                collection=schema.name,
                field=field,
                value=key,
                record_id=record_id,
            )
        )

    def _commit(self, session: Session, schema: CollectionSchema, values: dict) -> None:
        try:
            session.commit()
        except IntegrityError as exc:
            # Lost a race for a unique value against a concurrent writer.
            session.rollback()
            fields = [spec.name for spec in schema.fields if spec.unique and spec.name in values]
            raise RecordValidationError(
                schema.name, ",".join(fields) or "id", "must be unique"
            ) from exc

    def create_record(
        self, collection: str, data: dict, *, now: Optional[datetime] = None
    ) -> dict:
        schema = self.get_schema(collection)
        values = _validate_write(self, schema, data)
        stamp = _timestamp(now)
        with self._session() as session:
            row = RecordRow(
                id=new_record_id(),
                collection=collection,
                data=values,
                created=stamp,
                updated=stamp,
            )
            self._claim_unique(session, schema, row.id, values)
            session.add(row)
            self._commit(session, schema, values)
            return self._to_record(row)

    def get_record(self, collection: str, record_id: str) -> Optional[dict]:
        self.get_schema(collection)
        with self._session() as session:
            row = session.get(RecordRow, record_id)
            if row is None or row.collection != collection:
                return None
            return self._to_record(row)

    def find_records(
        self,
        collection: str,
        filters: Optional[dict] = None,
        *,
        sort: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        self.get_schema(collection)
        sort = sort or "created"
        stmt = select(RecordRow).where(RecordRow.collection == collection)
        leftover: dict = {}
        for key, value in (filters or {}).items():
            clause = _json_equals(key, value)
            if clause is None:
                leftover[key] = value
            else:
                stmt = stmt.where(clause)

        # Only the created column can be ordered on in SQL; other sorts happen here.
        sorted_in_sql = sort.lstrip("-+") == "created"
        if sorted_in_sql and sort.startswith("-"):
            stmt = stmt.order_by(RecordRow.created.desc(), RecordRow.id.desc())
        else:
            stmt = stmt.order_by(RecordRow.created.asc(), RecordRow.id.asc())
        if sorted_in_sql and limit and not leftover:
            stmt = stmt.limit(int(limit))

        with self._session() as session:
            records = [self._to_record(row) for row in session.execute(stmt).scalars()]
        records = [record for record in records if _matches(record, leftover)]
        if sorted_in_sql:
            return _apply_sort_and_limit(records, None, limit)
        return _apply_sort_and_limit(records, sort, limit)

    def update_record(
        self,
        collection: str,
        record_id: str,
        data: dict,
        *,
        now: Optional[datetime] = None,
    ) -> dict:
        if self.get_record(collection, record_id) is None:
            raise RecordNotFound(collection, record_id)
        schema = self.get_schema(collection)
        values = _validate_write(self, schema, data, record_id=record_id)
        with self._session() as session:
            row = session.get(RecordRow, record_id)
            if row is None:
                raise RecordNotFound(collection, record_id)
            self._claim_unique(session, schema, record_id, values)
            merged = dict(row.data or {})
            merged.update(values)
            row.data = merged
            row.updated = _timestamp(now)
            self._commit(session, schema, values)
            return self._to_record(row)

    def delete_record(self, collection: str, record_id: str) -> None:
        self.get_schema(collection)
        with self._session() as session:
            row = session.get(RecordRow, record_id)
            if row is None or row.collection != collection:
                raise RecordNotFound(collection, record_id)
            held = session.execute(
                select(UniqueValueRow).where(UniqueValueRow.record_id == record_id)
            ).scalars()
            for claim in held:
                session.delete(claim)
            session.delete(row)
            session.commit()

    def applied_migrations(self) -> set[str]:
        with self._session() as session:
            return set(session.execute(select(MigrationRow.name)).scalars().all())

    def mark_migration_applied(self, name: str) -> None:
        with self._session() as session:
            if session.get(MigrationRow, name) is None:
                session.add(MigrationRow(name=name, applied_at=_timestamp(None)))
                session.commit()


Base = declarative_base()


class CollectionRow(Base):
    __tablename__ = "collections"

    name = Column(String, primary_key=True)
    schema = Column(JSON, nullable=False)
    created = Column(String, nullable=False)


class RecordRow(Base):
    __tablename__ = "records"

    id = Column(String, primary_key=True)
    collection = Column(String, nullable=False, index=True)
    data = Column(JSON, nullable=False)
    created = Column(String, nullable=False, index=True)
    updated = Column(String, nullable=False)


class MigrationRow(Base):
    __tablename__ = "schema_migrations"

    name = Column(String, primary_key=True)
    applied_at = Column(String, nullable=False)


class UniqueValueRow(Base):
    """One row per value held by a unique field; the primary key enforces uniqueness."""

    __tablename__ = "unique_values"

    collection = Column(String, primary_key=True)
    field = Column(String, primary_key=True)
    value = Column(String, primary_key=True)
    record_id = Column(String, nullable=False, index=True)
