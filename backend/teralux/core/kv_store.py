"""
Durable key-value store on SQLite.

Two write modes share one table:
  - TTL-bounded entries, used for the "cache:" namespace.
  - Persistent entries (expires_at NULL), e.g. "device_state:<id>".

flush_cache_namespace() drops only "cache:" keys, so a user-invoked
"clear cache" never destroys device control memory.

Uses synchronous sqlite3 behind a lock; safe to share between the
request threads of the FastAPI threadpool.
"""

import logging
import os
import sqlite3
import threading
import time
import zlib
from contextlib import contextmanager
from typing import Callable, Iterator

from teralux.core.exceptions import StoreError

logger = logging.getLogger(__name__)

CACHE_PREFIX = "cache:"
KEY_LOCK_STRIPES = 64

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS kv_entries (
    key TEXT PRIMARY KEY,
    value BLOB NOT NULL,
    expires_at REAL
);
CREATE INDEX IF NOT EXISTS idx_kv_entries_expires ON kv_entries(expires_at);
"""


def _escape_like(prefix: str) -> str:
    return prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class KeyValueStore:
    """SQLite-backed store with TTL and persistent entries."""

    def __init__(
        self,
        db_path: str,
        default_ttl: float = 3600,
        clock: Callable[[], float] = time.time,
    ):
        self.db_path = db_path
        self.default_ttl = default_ttl
        self._clock = clock
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._key_locks = [threading.Lock() for _ in range(KEY_LOCK_STRIPES)]

    def connect(self):
        """Open the database and apply schema."""
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(SCHEMA_SQL)
        self._conn.commit()
        logger.info(f"Key-value store opened: {self.db_path} (default TTL {self.default_ttl}s)")

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None

    @property
    def conn(self) -> sqlite3.Connection:
        if not self._conn:
            raise StoreError("Key-value store not connected")
        return self._conn

    # ── Reads ────────────────────────────────────────────

    def get(self, key: str) -> bytes | None:
        """Return the value for key, or None when absent or expired.

        Raises:
            StoreError: On a storage fault (a missing key is not a fault).
        """
        now = self._clock()
        try:
            with self._lock:
                row = self.conn.execute(
                    "SELECT value, expires_at FROM kv_entries WHERE key = ?",
                    (key,),
                ).fetchone()
                if row is None:
                    return None
                value, expires_at = row
                if expires_at is not None and expires_at <= now:
                    self.conn.execute("DELETE FROM kv_entries WHERE key = ?", (key,))
                    self.conn.commit()
                    return None
        except sqlite3.Error as e:
            logger.error(f"KeyValueStore: failed to get key {key}: {e}")
            raise StoreError(f"failed to get key {key}: {e}") from e

        if expires_at is None:
            logger.debug(f"Cache hit for '{key}' | Expires in: never (persistent)")
        else:
            logger.debug(f"Cache hit for '{key}' | Expires in: {expires_at - now:.0f}s")
        return bytes(value)

    def list_keys_with_prefix(self, prefix: str) -> list[str]:
        """All live keys starting with prefix, in key order."""
        now = self._clock()
        try:
            with self._lock:
                rows = self.conn.execute(
                    "SELECT key FROM kv_entries "
                    "WHERE key LIKE ? ESCAPE '\\' AND (expires_at IS NULL OR expires_at > ?) "
                    "ORDER BY key",
                    (_escape_like(prefix) + "%", now),
                ).fetchall()
        except sqlite3.Error as e:
            logger.error(f"KeyValueStore: failed to list keys with prefix {prefix}: {e}")
            raise StoreError(f"failed to list keys with prefix {prefix}: {e}") from e

        keys = [row[0] for row in rows]
        logger.debug(f"KeyValueStore: found {len(keys)} keys with prefix '{prefix}'")
        return keys

    # ── Writes ───────────────────────────────────────────

    def set(self, key: str, value: bytes):
        """Store value with the configured default TTL."""
        self.set_with_ttl(key, value, self.default_ttl)

    def set_with_ttl(self, key: str, value: bytes, ttl: float):
        self._write(key, value, self._clock() + ttl)

    def set_persistent(self, key: str, value: bytes):
        """Store value without expiry."""
        self._write(key, value, None)
        logger.debug(f"KeyValueStore: set persistent key '{key}' (no TTL)")

    def _write(self, key: str, value: bytes, expires_at: float | None):
        try:
            with self._lock:
                self.conn.execute(
                    "INSERT INTO kv_entries (key, value, expires_at) VALUES (?, ?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                    "expires_at = excluded.expires_at",
                    (key, value, expires_at),
                )
                self.conn.commit()
        except sqlite3.Error as e:
            logger.error(f"KeyValueStore: failed to set key {key}: {e}")
            raise StoreError(f"failed to set key {key}: {e}") from e

    def delete(self, key: str):
        try:
            with self._lock:
                self.conn.execute("DELETE FROM kv_entries WHERE key = ?", (key,))
                self.conn.commit()
        except sqlite3.Error as e:
            logger.error(f"KeyValueStore: failed to delete key {key}: {e}")
            raise StoreError(f"failed to delete key {key}: {e}") from e

    def drop_prefix(self, prefix: str) -> int:
        """Delete every key starting with prefix. Returns the number removed."""
        try:
            with self._lock:
                cursor = self.conn.execute(
                    "DELETE FROM kv_entries WHERE key LIKE ? ESCAPE '\\'",
                    (_escape_like(prefix) + "%",),
                )
                self.conn.commit()
        except sqlite3.Error as e:
            logger.error(f"KeyValueStore: failed to drop prefix {prefix}: {e}")
            raise StoreError(f"failed to drop prefix {prefix}: {e}") from e
        return cursor.rowcount

    def flush_cache_namespace(self) -> int:
        """Remove all "cache:" entries; persistent entries are preserved."""
        removed = self.drop_prefix(CACHE_PREFIX)
        logger.info(f"KeyValueStore: flushed {removed} cache entries (persistent data preserved)")
        return removed

    # ── Per-key serialization ────────────────────────────

    def key_lock(self, key: str) -> threading.Lock:
        """Fixed pool of locks; distinct keys may share one."""
        return self._key_locks[zlib.crc32(key.encode("utf-8")) % KEY_LOCK_STRIPES]

    @contextmanager
    def locked(self, key: str) -> Iterator[None]:
        """Serialize read-modify-write sequences on one key within this process."""
        with self.key_lock(key):
            yield
