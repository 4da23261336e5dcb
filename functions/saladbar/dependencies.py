"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from saladbar.auth import Principal, resolve_principal
from saladbar.config import Settings, get_settings
from saladbar.db import InMemoryRecordStore, RecordStore, SqlRecordStore
from saladbar.errors import Forbidden, Unauthorized
from saladbar.migrations import run_migrations
from saladbar.storage import InMemoryStorageClient, S3StorageClient, StorageClient

logger = logging.getLogger(__name__)

_record_store: RecordStore | None = None
_storage_client: StorageClient | None = None
_singleton_lock = threading.Lock()

bearer_scheme = HTTPBearer(auto_error=False)


def get_record_store() -> RecordStore:
    """
    Return a singleton record store, migrated to the running app version.
    """
    global _record_store
    if _record_store is not None:
        return _record_store

    with _singleton_lock:
        # Another request may have built it while this one waited.
        if _record_store is not None:
            return _record_store
        settings = get_settings()
        if settings.use_in_memory_backends or not settings.database_url:
            store: RecordStore = InMemoryRecordStore()
        else:
            store = SqlRecordStore(settings.database_url)
        applied = run_migrations(store, settings.app_version)
        logger.info(
            "Using %s (migrations applied: %s)", type(store).__name__, applied or "none"
        )
        _record_store = store
    return _record_store


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client is not None:
        return _storage_client

    with _singleton_lock:
        if _storage_client is not None:
            return _storage_client
        settings = get_settings()
        if settings.use_in_memory_backends or not settings.s3_bucket:
            _storage_client = InMemoryStorageClient()
        else:
            _storage_client = S3StorageClient(
                bucket=settings.s3_bucket,
                region=settings.s3_region or "",
                endpoint=settings.s3_endpoint or "",
                access_key_id=settings.aws_access_key_id or "",
                secret_access_key=settings.aws_secret_access_key or "",
            )
    return _storage_client


def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    store: RecordStore = Depends(get_record_store),
    settings: Settings = Depends(get_settings),
) -> Principal:
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Missing Bearer token")
    return resolve_principal(store, credentials.credentials, secret=settings.secret_key)


def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    if not principal.is_admin:
        raise Forbidden("Admin role required")
    return principal
