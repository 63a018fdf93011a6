"""Response caches for registry queries.

Two interchangeable implementations keyed by query signature:

* ``SqliteResponseCache`` persists entries across runs. Each insert is its
  own transaction (``INSERT OR IGNORE``), so an interrupted write never leaves
  a partial row and an existing entry is never overwritten.
* ``MemoryResponseCache`` keeps entries for the life of the process and is
  used when the persistent cache is disabled.

Registry data is treated as immutable once published, so neither cache
expires entries.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from constants import Constants
from common.errors import CacheCorruption

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """A single cached registry response."""

    signature: str
    payload: Any
    fetched_at: float = field(default_factory=time.time)


class MemoryResponseCache:
    """Process-local cache with the same interface as the persistent one."""

    persistent = False

    def __init__(self) -> None:
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, signature: str) -> Optional[CacheEntry]:
        """Return the entry for ``signature`` or None."""
        with self._lock:
            return self._entries.get(signature)

    def put(self, signature: str, payload: Any) -> CacheEntry:
        """Store ``payload`` unless an entry already exists; return the stored entry."""
        with self._lock:
            existing = self._entries.get(signature)
            if existing is not None:
                return existing
            entry = CacheEntry(signature=signature, payload=payload)
            self._entries[signature] = entry
            return entry

    def discard(self, signature: str) -> None:
        """Delete one entry."""
        with self._lock:
            self._entries.pop(signature, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return {"backend": "memory", "total_entries": len(self)}

    def close(self) -> None:
        with self._lock:
            self._entries.clear()


class SqliteResponseCache:
    """SQLite-backed cache surviving process restarts."""

    persistent = True

    def __init__(self, path: Optional[str] = None):
        """Open (creating if needed) the cache database.

        Args:
            path: Database file. Defaults to ``Constants.CACHE_DIR/CACHE_FILE``.
        """
        self.path = path or os.path.join(Constants.CACHE_DIR, Constants.CACHE_FILE)
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False, isolation_level=None)
        with self._lock:
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute(
                "CREATE TABLE IF NOT EXISTS entries ("
                " signature TEXT PRIMARY KEY,"
                " fetched_at REAL NOT NULL,"
                " payload TEXT NOT NULL)"
            )
            self._conn.execute(
                "CREATE TABLE IF NOT EXISTS meta (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
            )
            self._conn.execute(
                "INSERT OR IGNORE INTO meta (key, value) VALUES ('schema', ?)",
                (str(Constants.CACHE_SCHEMA_VERSION),),
            )
        logger.debug("Opened registry cache at %s", self.path)

    def get(self, signature: str) -> Optional[CacheEntry]:
        """Return the entry for ``signature`` or None.

        Raises:
            CacheCorruption: the stored payload could not be decoded. The row is
                deleted before raising so the caller can re-fetch.
        """
        with self._lock:
            row = self._conn.execute(
                "SELECT fetched_at, payload FROM entries WHERE signature = ?", (signature,)
            ).fetchone()
        if row is None:
            return None
        fetched_at, raw = row
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as exc:
            self.discard(signature)
            raise CacheCorruption(signature, str(exc)) from exc
        return CacheEntry(signature=signature, payload=payload, fetched_at=fetched_at)

    def put(self, signature: str, payload: Any) -> CacheEntry:
        """Persist ``payload`` (write-once) and return the stored entry."""
        entry = CacheEntry(signature=signature, payload=payload)
        encoded = json.dumps(payload, sort_keys=True)
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                self._conn.execute(
                    "INSERT OR IGNORE INTO entries (signature, fetched_at, payload) VALUES (?, ?, ?)",
                    (signature, entry.fetched_at, encoded),
                )
                self._conn.execute("COMMIT")
            except sqlite3.Error:
                self._conn.execute("ROLLBACK")
                raise
        return entry

    def discard(self, signature: str) -> None:
        """Delete one entry."""
        with self._lock:
            self._conn.execute("DELETE FROM entries WHERE signature = ?", (signature,))

    def __len__(self) -> int:
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM entries").fetchone()[0]

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return {"backend": "sqlite", "path": self.path, "total_entries": len(self)}

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def open_cache(use_persistent_cache: bool, path: Optional[str] = None):
    """Return the cache implementation selected by configuration."""
    if use_persistent_cache:
        return SqliteResponseCache(path)
    return MemoryResponseCache()
