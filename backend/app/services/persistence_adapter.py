"""
Persistence Adapter Module

Key/value storage used by the annotation engine to save and restore the
highlight collection and the category registry. The engine treats storage as
best-effort: adapters never raise, they log and report failure instead, and
running with ``NullPersistenceAdapter`` (session-only annotation) is always
valid.

Schema (sqlite backend):
    annotation_state (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,          -- JSON document
        updated_at TIMESTAMP
    )
"""

import json
import logging
import threading
from typing import Any, Protocol

from .base_database_service import BaseDatabaseService

logger = logging.getLogger(__name__)


class PersistenceAdapter(Protocol):
    """Durable key/value surface consumed by the annotation engine"""

    def save(self, key: str, value: Any) -> bool: ...

    def load(self, key: str) -> Any | None: ...


class NullPersistenceAdapter:
    """Adapter that stores nothing. Annotation state lives for the session only."""

    def save(self, key: str, value: Any) -> bool:
        return True

    def load(self, key: str) -> Any | None:
        return None


class InMemoryPersistenceAdapter:
    """Process-local adapter, values are round-tripped through JSON like the sqlite one."""

    def __init__(self):
        self._values: dict[str, str] = {}
        self._lock = threading.Lock()

    def save(self, key: str, value: Any) -> bool:
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.error(f"Could not serialize value for key {key}: {e}")
            return False
        with self._lock:
            self._values[key] = encoded
        return True

    def load(self, key: str) -> Any | None:
        with self._lock:
            encoded = self._values.get(key)
        if encoded is None:
            return None
        return json.loads(encoded)


class SQLitePersistenceAdapter(BaseDatabaseService):
    """
    SQLite-backed key/value adapter.

    Each key holds one JSON document, e.g. the full highlight array for a
    document. Writes replace the previous value for the key.
    """

    def __init__(self, db_path: str = "data/annotations.db"):
        """
        Initialize the adapter and make sure its table exists.

        Args:
            db_path (str): Path to the SQLite database file
        """
        super().__init__(db_path)
        self._init_table()

    def _init_table(self):
        """
        Initialize the annotation_state table.
        """
        try:
            with self.get_connection() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS annotation_state (
                        key TEXT PRIMARY KEY,          -- Storage key, e.g. contract-highlights:<document>
                        value TEXT NOT NULL,           -- JSON encoded value
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)
                conn.commit()
        except Exception as e:
            logger.error(f"Error creating annotation_state table: {e}")

    def save(self, key: str, value: Any) -> bool:
        """
        Store a JSON-serializable value under key.

        Args:
            key (str): Storage key
            value (Any): JSON-serializable value

        Returns:
            bool: True if the value was written, False on serialization or database error
        """
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.error(f"Could not serialize value for key {key}: {e}")
            return False

        query = """
            INSERT INTO annotation_state (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
        """
        saved = self.execute_write(query, (key, encoded, self.get_current_timestamp()))
        if saved:
            logger.debug(f"Saved annotation state for {key}")
        return saved

    def load(self, key: str) -> Any | None:
        """
        Load the value stored under key.

        Args:
            key (str): Storage key

        Returns:
            Any | None: Decoded JSON value, or None if absent or unreadable
        """
        row = self.fetch_one("SELECT value FROM annotation_state WHERE key = ?", (key,))
        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except (json.JSONDecodeError, TypeError):
            logger.warning(f"Invalid JSON stored for key {key}")
            return None

    def delete(self, key: str) -> bool:
        """Remove the value stored under key."""
        return self.execute_write("DELETE FROM annotation_state WHERE key = ?", (key,))


def create_persistence_adapter(
    backend: str, db_path: str = "data/annotations.db"
) -> PersistenceAdapter:
    """
    Build the adapter named by the ``persistence_backend`` setting.

    Args:
        backend (str): One of "sqlite", "memory" or "none"
        db_path (str): Database path for the sqlite backend

    Returns:
        PersistenceAdapter: The configured adapter
    """
    if backend == "sqlite":
        return SQLitePersistenceAdapter(db_path)
    if backend == "memory":
        return InMemoryPersistenceAdapter()
    if backend == "none":
        return NullPersistenceAdapter()
    raise ValueError(f"Unknown persistence backend: {backend}")
