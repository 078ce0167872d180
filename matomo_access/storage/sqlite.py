"""SQLite-backed report cache and idempotency stores."""

import asyncio
import json
import sqlite3
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

import structlog

from matomo_access.reports.cache import CacheEntry
from matomo_access.storage.errors import StoreConnectionError
from matomo_access.storage.migrations import CURRENT_VERSION, MigrationManager
from matomo_access.tracking.models import DEFAULT_IDEMPOTENCY_TTL_MS, IdempotencyRecord
from matomo_access.tracking.store import SWEEP_INTERVAL_MS


logger = structlog.get_logger()

T = TypeVar("T")


class SqliteDatabase:
    """Shared SQLite connection for the durable stores.

    Uses WAL mode and applies schema migrations on connect. Statements run
    on worker threads, serialized by a lock.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Initialize the database handle.

        Args:
            db_path: Path to the SQLite file, or ":memory:".
        """
        self._db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        self._log = logger.bind(component="storage", db_path=self._db_path)

    @property
    def is_connected(self) -> bool:
        """Check if connected to database."""
        return self._conn is not None

    def connect(self) -> None:
        """Open the connection and apply migrations.

        Creates parent directories for file databases.
        """
        if self._conn is not None:
            return
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")

        applied = MigrationManager(self._conn).apply_migrations()
        self._log.info(
            "database_connected",
            schema_version=CURRENT_VERSION,
            migrations_applied=applied,
        )

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            self._log.info("database_closed")

    def __enter__(self) -> "SqliteDatabase":
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit."""
        self.close()

    @contextmanager
    def transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Run statements atomically, rolling back on error.

        Args:
            operation: Name of the operation for logging.

        Yields:
            The connection.

        Raises:
            StoreConnectionError: If not connected.
        """
        if self._conn is None:
            raise StoreConnectionError("Database not connected. Call connect() first.")
        conn = self._conn
        with self._lock:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                self._log.error("transaction_failed", op=operation)
                raise

    async def run(self, operation: str, func: Callable[[sqlite3.Connection], T]) -> T:
        """Run a function inside a transaction on a worker thread."""

        def call() -> T:
            with self.transaction(operation) as conn:
                return func(conn)

        return await asyncio.to_thread(call)


class SqliteCacheStore:
    """Report cache store persisted in SQLite.

    Values must be JSON-serializable; expiry decisions on lookup stay with
    ReportCache. Writes also purge expired rows at most once per sweep
    interval.
    """

    def __init__(self, db: SqliteDatabase, clock: Callable[[], float] = time.time) -> None:
        """Initialize the store.

        Args:
            db: Connected database.
            clock: Source of epoch seconds for write-time sweeps.
        """
        self._db = db
        self._clock = clock
        self._next_sweep_at = 0.0

    async def get(self, key: str) -> CacheEntry | None:
        def select(conn: sqlite3.Connection) -> sqlite3.Row | None:
            row: sqlite3.Row | None = conn.execute(
                "SELECT feature, value_json, expires_at FROM report_cache WHERE cache_key = ?",
                (key,),
            ).fetchone()
            return row

        row = await self._db.run("cache_get", select)
        if row is None:
            return None
        return CacheEntry(
            feature=row["feature"],
            value=json.loads(row["value_json"]),
            expires_at=row["expires_at"],
        )

    async def set(self, key: str, entry: CacheEntry) -> None:
        value_json = json.dumps(entry.value, separators=(",", ":"))
        now = self._clock()
        sweep = now >= self._next_sweep_at
        if sweep:
            self._next_sweep_at = now + SWEEP_INTERVAL_MS / 1000

        def upsert(conn: sqlite3.Connection) -> None:
            if sweep:
                conn.execute("DELETE FROM report_cache WHERE expires_at <= ?", (now,))
            conn.execute(
                """
                INSERT INTO report_cache (cache_key, feature, value_json, expires_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(cache_key) DO UPDATE SET
                    feature = excluded.feature,
                    value_json = excluded.value_json,
                    expires_at = excluded.expires_at
                """,
                (key, entry.feature, value_json, entry.expires_at),
            )

        await self._db.run("cache_set", upsert)

    async def delete(self, key: str) -> None:
        def remove(conn: sqlite3.Connection) -> None:
            conn.execute("DELETE FROM report_cache WHERE cache_key = ?", (key,))

        await self._db.run("cache_delete", remove)

    async def feature_counts(self) -> dict[str, int]:
        def count(conn: sqlite3.Connection) -> dict[str, int]:
            rows = conn.execute(
                "SELECT feature, COUNT(*) AS n FROM report_cache GROUP BY feature"
            ).fetchall()
            return {row["feature"]: row["n"] for row in rows}

        return await self._db.run("cache_feature_counts", count)

    async def sweep_expired(self, now: float | None = None) -> int:
        """Delete expired entries and return how many were removed."""
        current = now if now is not None else self._clock()

        def sweep(conn: sqlite3.Connection) -> int:
            return conn.execute(
                "DELETE FROM report_cache WHERE expires_at <= ?", (current,)
            ).rowcount

        return await self._db.run("cache_sweep", sweep)


class SqliteIdempotencyStore:
    """Idempotency records persisted in SQLite with TTL retention.

    Writes purge expired rows at most once per sweep interval.
    """

    def __init__(
        self,
        db: SqliteDatabase,
        ttl_ms: int = DEFAULT_IDEMPOTENCY_TTL_MS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the store.

        Args:
            db: Connected database.
            ttl_ms: Retention, measured from the record's first submission.
            clock: Source of epoch seconds.
        """
        self._db = db
        self._ttl_s = ttl_ms / 1000
        self._sweep_interval_s = min(ttl_ms, SWEEP_INTERVAL_MS) / 1000
        self._next_sweep_at = 0.0
        self._clock = clock

    async def get(self, key: str) -> IdempotencyRecord | None:
        now = self._clock()

        def select(conn: sqlite3.Connection) -> str | None:
            row = conn.execute(
                "SELECT record_json, expires_at FROM idempotency_records "
                "WHERE idempotency_key = ?",
                (key,),
            ).fetchone()
            if row is None:
                return None
            if row["expires_at"] <= now:
                conn.execute(
                    "DELETE FROM idempotency_records WHERE idempotency_key = ?", (key,)
                )
                return None
            record_json: str = row["record_json"]
            return record_json

        record_json = await self._db.run("idempotency_get", select)
        if record_json is None:
            return None
        return IdempotencyRecord.model_validate_json(record_json)

    async def set(self, record: IdempotencyRecord) -> None:
        params: tuple[Any, ...] = (
            record.key,
            record.status,
            record.model_dump_json(),
            record.created_at,
            record.created_at + self._ttl_s,
        )
        now = self._clock()
        sweep = now >= self._next_sweep_at
        if sweep:
            self._next_sweep_at = now + self._sweep_interval_s

        def upsert(conn: sqlite3.Connection) -> None:
            if sweep:
                conn.execute("DELETE FROM idempotency_records WHERE expires_at <= ?", (now,))
            conn.execute(
                """
                INSERT INTO idempotency_records
                    (idempotency_key, status, record_json, created_at, expires_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(idempotency_key) DO UPDATE SET
                    status = excluded.status,
                    record_json = excluded.record_json,
                    created_at = excluded.created_at,
                    expires_at = excluded.expires_at
                """,
                params,
            )

        await self._db.run("idempotency_set", upsert)

    async def sweep_expired(self) -> int:
        """Delete expired records and return how many were removed."""
        now = self._clock()

        def sweep(conn: sqlite3.Connection) -> int:
            return conn.execute(
                "DELETE FROM idempotency_records WHERE expires_at <= ?", (now,)
            ).rowcount

        return await self._db.run("idempotency_sweep", sweep)
