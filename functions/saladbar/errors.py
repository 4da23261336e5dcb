"""
Error taxonomy for the salad bar API.

Every error carries the HTTP status it is reported with; the app factory
registers a single handler that turns them into JSON responses.
"""

from __future__ import annotations


class SaladBarError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequest(SaladBarError):
    status_code = 400


class RecordValidationError(BadRequest):
    """A record violated a constraint declared by its collection schema."""

    def __init__(self, collection: str, field: str, reason: str):
        super().__init__(f"{collection}.{field}: {reason}")
        self.collection = collection
        self.field = field


class Unauthorized(SaladBarError):
    status_code = 401


class Forbidden(SaladBarError):
    status_code = 403


class RecordNotFound(SaladBarError):
    status_code = 404

    def __init__(self, collection: str, record_id: str):
        super().__init__(f"Record {record_id!r} not found in {collection!r}")
        self.collection = collection
        self.record_id = record_id


class PayloadTooLarge(SaladBarError):
    status_code = 413


class CollectionNotFound(SaladBarError):
    """The collection was never created: a migration or deployment defect."""

    status_code = 500

    def __init__(self, collection: str):
        super().__init__(f"Collection {collection!r} does not exist")
        self.collection = collection


class StoreUnavailable(SaladBarError):
    status_code = 500
