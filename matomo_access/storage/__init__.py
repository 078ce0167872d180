"""Durable SQLite stores for the report cache and tracking idempotency.

This module provides:
- A shared WAL-mode SQLite connection with schema migrations
- A CacheStore implementation with JSON-serialized values
- An IdempotencyStore implementation with an expiry column
"""

from matomo_access.storage.errors import StorageError, StoreConnectionError
from matomo_access.storage.migrations import CURRENT_VERSION, MigrationManager
from matomo_access.storage.sqlite import (
    SqliteCacheStore,
    SqliteDatabase,
    SqliteIdempotencyStore,
)


__all__ = [
    # Stores
    "SqliteCacheStore",
    "SqliteDatabase",
    "SqliteIdempotencyStore",
    # Schema
    "CURRENT_VERSION",
    "MigrationManager",
    # Errors
    "StorageError",
    "StoreConnectionError",
]
