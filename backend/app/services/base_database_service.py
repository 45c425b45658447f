"""
Base Database Service Module

Shared SQLite plumbing for the annotation state table: locating the database
file, opening connections, reading a single row and running writes.
"""

import logging
import os
import sqlite3
from datetime import datetime

logger = logging.getLogger(__name__)


class BaseDatabaseService:
    """
    SQLite helpers for services that keep annotation state on disk.

    Every helper opens its own connection, so one instance can be shared by
    request handlers and the persistence worker thread.
    """

    def __init__(self, db_path: str = "data/annotations.db"):
        """
        Args:
            db_path (str): SQLite file. Its parent directory is created on demand.
        """
        self.db_path = db_path
        self._ensure_data_dir()

    def _ensure_data_dir(self):
        data_dir = os.path.dirname(self.db_path)
        if data_dir:
            os.makedirs(data_dir, exist_ok=True)

    def get_connection(self) -> sqlite3.Connection:
        """Open a connection whose rows can be indexed by column name."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def fetch_one(self, query: str, params: tuple = ()) -> sqlite3.Row | None:
        """
        Run a SELECT and return its first row.

        Returns:
            sqlite3.Row | None: The row, or None if nothing matched or the query failed
        """
        try:
            with self.get_connection() as conn:
                return conn.execute(query, params).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Database query error: {e}")
            return None

    def execute_write(self, query: str, params: tuple) -> bool:
        """
        Run an INSERT, UPDATE or DELETE.

        Returns:
            bool: True if rows were affected, False otherwise
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.execute(query, params)
                conn.commit()
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"Database write error: {e}")
            return False

    def get_current_timestamp(self) -> str:
        """Current local time in SQLite's TIMESTAMP format."""
        return datetime.now().strftime("%Y-%m-%d %H:%M:%S")
