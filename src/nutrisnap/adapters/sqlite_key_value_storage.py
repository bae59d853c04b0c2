"""SQLite-backed key-value storage for the device-local cache."""

import sqlite3
from dataclasses import dataclass, field
from pathlib import Path

from nutrisnap.services.local_cache import (
    KeyValueStorage,
    StorageError,
    StorageWriteError,
)

_DDL = """
CREATE TABLE IF NOT EXISTS local_cache (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""
_DB_ERRORS = (sqlite3.Error, OSError)


@dataclass
class SqliteKeyValueStorage(KeyValueStorage):
    """Single-table SQLite store with localStorage semantics."""

    db_path: str | Path
    _conn: sqlite3.Connection | None = field(default=None, init=False, repr=False)

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            path = Path(self.db_path).expanduser()
            if str(path) != ":memory:":
                path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(path), check_same_thread=False)
            try:
                conn.executescript(_DDL)
                conn.commit()
            except sqlite3.Error:
                conn.close()
                raise
            self._conn = conn
        return self._conn

    def get_item(self, key: str) -> str | None:
        """Return the raw value stored under key."""
        try:
            row = (
                self._get_conn()
                .execute("SELECT value FROM local_cache WHERE key = ?", (key,))
                .fetchone()
            )
        except _DB_ERRORS as exc:
            raise StorageError(f"Failed to read {key}") from exc
        return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        """Upsert a raw value."""
        self._write(
            key,
            """INSERT INTO local_cache (key, value) VALUES (?, ?)
               ON CONFLICT(key) DO UPDATE SET
                   value = excluded.value,
                   updated_at = datetime('now')""",
            (key, value),
        )

    def remove_item(self, key: str) -> None:
        """Delete a key; no-op if absent."""
        self._write(key, "DELETE FROM local_cache WHERE key = ?", (key,))

    def keys(self) -> list[str]:
        """Return every stored key."""
        try:
            rows = self._get_conn().execute("SELECT key FROM local_cache").fetchall()
        except _DB_ERRORS as exc:
            raise StorageError("Failed to list keys") from exc
        return [row[0] for row in rows]

    def close(self) -> None:
        """Close the underlying connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _write(self, key: str, sql: str, params: tuple[str, ...]) -> None:
        try:
            conn = self._get_conn()
        except _DB_ERRORS as exc:
            raise StorageWriteError(f"Failed to open storage for {key}") from exc
        try:
            conn.execute(sql, params)
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageWriteError(f"Failed to write {key}") from exc
