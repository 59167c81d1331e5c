"""
Theme Adapter Store.

Keyed by theme fingerprint. Adapters live in memory and, when a database
path is configured, are persisted to SQLite (one row per fingerprint) so a
restarted service keeps its discovered mappings.

There is no TTL: an adapter stays until it is explicitly invalidated or
replaced by a newer ``put`` for the same fingerprint.
"""

from datetime import datetime
from pathlib import Path
from typing import Any
import json
import logging
import sqlite3
import threading

from variant_mapper.models import ThemeAdapter

logger = logging.getLogger(__name__)


class ThemeAdapterStore:
    """
    Shared, read-mostly store of Theme Adapters.

    Stored adapters are kept as serialized snapshots; ``get`` returns a fresh
    copy, so a caller mutating its adapter cannot affect other readers and no
    reader ever sees a half-written entry.
    """

    _SCHEMA = """
    CREATE TABLE IF NOT EXISTS theme_adapters (
        fingerprint TEXT PRIMARY KEY,
        theme_id TEXT,
        payload TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS idx_adapters_theme_id ON theme_adapters(theme_id);
    """

    def __init__(self, db_path: Path | str | None = None):
        """
        Initialize the store.

        Args:
            db_path: SQLite file to persist adapters in; None keeps them in memory only
        """
        self._db_path = Path(db_path) if db_path else None
        self._lock = threading.Lock()
        self._snapshots: dict[str, dict[str, Any]] = {}
        self._conn: sqlite3.Connection | None = None
        self._hits = 0
        self._misses = 0

        if self._db_path is not None:
            self._init_db()

    def _init_db(self) -> None:
        """Initialize SQLite database and load persisted adapters."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(self._SCHEMA)
        self._conn.commit()

        cursor = self._conn.execute("SELECT fingerprint, payload FROM theme_adapters")
        for row in cursor.fetchall():
            try:
                self._snapshots[row["fingerprint"]] = json.loads(row["payload"])
            except json.JSONDecodeError:
                logger.warning(f"Skipping corrupt adapter row for {row['fingerprint']}")
        logger.info(f"Loaded {len(self._snapshots)} theme adapters from {self._db_path}")

    def get(self, theme_fingerprint: str) -> ThemeAdapter | None:
        """
        Look up the adapter for a theme fingerprint.

        Returns:
            A copy of the stored adapter, or None if absent
        """
        with self._lock:
            snapshot = self._snapshots.get(theme_fingerprint)
            if snapshot is None:
                self._misses += 1
                return None
            self._hits += 1
        return ThemeAdapter.from_dict(snapshot)

    def put(self, adapter: ThemeAdapter) -> ThemeAdapter:
        """
        Store an adapter, replacing any adapter with the same fingerprint.

        The original ``created_at`` of a replaced adapter is kept.

        Returns:
            The adapter as stored
        """
        fingerprint = adapter.theme_fingerprint
        with self._lock:
            snapshot = adapter.to_dict()
            existing = self._snapshots.get(fingerprint)
            if existing is not None:
                snapshot["created_at"] = existing["created_at"]
                snapshot["updated_at"] = datetime.now().isoformat()

            if self._conn is not None:
                self._conn.execute(
                    """INSERT OR REPLACE INTO theme_adapters
                       (fingerprint, theme_id, payload, created_at, updated_at)
                       VALUES (?, ?, ?, ?, ?)""",
                    (
                        fingerprint,
                        snapshot.get("theme_id"),
                        json.dumps(snapshot),
                        snapshot["created_at"],
                        snapshot["updated_at"],
                    ),
                )
                self._conn.commit()

            self._snapshots[fingerprint] = snapshot

        logger.info(
            f"Stored adapter {fingerprint} ({len(snapshot['selectors'])} fields"
            f"{', replaced' if existing is not None else ''})"
        )
        return ThemeAdapter.from_dict(snapshot)

    def invalidate(self, theme_fingerprint: str) -> bool:
        """
        Remove the adapter for a fingerprint.

        Returns:
            True if an adapter was found and removed
        """
        with self._lock:
            if theme_fingerprint not in self._snapshots:
                return False
            if self._conn is not None:
                self._conn.execute(
                    "DELETE FROM theme_adapters WHERE fingerprint = ?", (theme_fingerprint,)
                )
                self._conn.commit()
            del self._snapshots[theme_fingerprint]

        logger.info(f"Invalidated adapter {theme_fingerprint}")
        return True

    def list_fingerprints(self) -> list[str]:
        """Fingerprints currently stored, oldest first."""
        with self._lock:
            items = sorted(self._snapshots.items(), key=lambda item: item[1]["created_at"])
        return [fingerprint for fingerprint, _ in items]

    def clear(self) -> int:
        """Remove every adapter. Returns count removed."""
        with self._lock:
            count = len(self._snapshots)
            if self._conn is not None:
                self._conn.execute("DELETE FROM theme_adapters")
                self._conn.commit()
            self._snapshots.clear()
        return count

    def stats(self) -> dict[str, Any]:
        """Get store statistics."""
        with self._lock:
            return {
                "adapter_count": len(self._snapshots),
                "persistent": self._conn is not None,
                "db_path": str(self._db_path) if self._db_path else None,
                "hits": self._hits,
                "misses": self._misses,
            }

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __contains__(self, theme_fingerprint: str) -> bool:
        with self._lock:
            return theme_fingerprint in self._snapshots

    def __len__(self) -> int:
        with self._lock:
            return len(self._snapshots)
