"""Schema versions for the durable store database."""

import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog


logger = structlog.get_logger()

CURRENT_VERSION = 1


@dataclass(frozen=True)
class Migration:
    """One forward-only schema step."""

    version: int
    description: str
    script: str


MIGRATIONS: tuple[Migration, ...] = (
    Migration(
        version=1,
        description="Report cache and idempotency record tables",
        script="""
CREATE TABLE IF NOT EXISTS report_cache (
    cache_key TEXT PRIMARY KEY,
    feature TEXT NOT NULL,
    value_json TEXT NOT NULL,
    expires_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_report_cache_expires_at ON report_cache(expires_at);
CREATE INDEX IF NOT EXISTS idx_report_cache_feature ON report_cache(feature);

CREATE TABLE IF NOT EXISTS idempotency_records (
    idempotency_key TEXT PRIMARY KEY,
    status TEXT NOT NULL,
    record_json TEXT NOT NULL,
    created_at REAL NOT NULL,
    expires_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_idempotency_expires_at ON idempotency_records(expires_at);
""",
    ),
)

_VERSION_TABLE = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL,
    description TEXT
)
"""


class MigrationManager:
    """Brings a connection's schema up to CURRENT_VERSION."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._conn = connection
        self._log = logger.bind(component="storage", operation="migration")

    def schema_version(self) -> int:
        """Highest applied version, 0 for a fresh database."""
        self._conn.execute(_VERSION_TABLE)
        self._conn.commit()
        (version,) = self._conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return int(version or 0)

    def apply_migrations(self) -> list[int]:
        """Run every migration newer than the stored version.

        Returns:
            Versions applied by this call, oldest first.
        """
        current = self.schema_version()
        applied: list[int] = []
        for migration in MIGRATIONS:
            if migration.version <= current:
                continue
            self._log.info(
                "applying_migration",
                version=migration.version,
                description=migration.description,
            )
            self._conn.executescript(migration.script)
            self._conn.execute(
                "INSERT INTO schema_version (version, applied_at, description) VALUES (?, ?, ?)",
                (migration.version, datetime.now(UTC).isoformat(), migration.description),
            )
            self._conn.commit()
            applied.append(migration.version)
        return applied
