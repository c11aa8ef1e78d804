"""
Database management and connection handling.
"""

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from ..core.exceptions import PersistenceError, ConfigurationError

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"


class DatabaseManager(ABC):
    """Abstract base class for database management."""

    @abstractmethod
    def execute_query(self, query: str, params: Optional[tuple] = None) -> List[Dict[str, Any]]:
        """Execute a query and return results."""
        pass

    @abstractmethod
    def execute_update(self, query: str, params: Optional[tuple] = None) -> int:
        """Execute an update query and return affected rows."""
        pass

    def close(self) -> None:
        """Release any held connection."""
        pass


class SQLiteDatabase(DatabaseManager):
    """
    SQLite database implementation.

    A file database opens a connection per operation. ``:memory:`` keeps one
    shared connection for the lifetime of the manager, since every new
    connection to ``:memory:`` would see an empty database.
    """

    def __init__(self, database_path: str = "lyceum.db"):
        self._database_path = database_path
        self._lock = threading.RLock()
        self._shared_connection: Optional[sqlite3.Connection] = None
        if database_path == MEMORY_DATABASE:
            self._shared_connection = self._connect()
        self._initialize_database()

    @property
    def database_path(self) -> str:
        return self._database_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._database_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _initialize_database(self) -> None:
        """Initialize the database with basic schema."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS entities (
                    id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    data TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    version INTEGER DEFAULT 1,
                    status TEXT DEFAULT 'active',
                    PRIMARY KEY (type, id)
                )
            """)
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_entities_type ON entities (type)")
            conn.commit()
        logger.debug("SQLite database ready at %s", self._database_path)

    @contextmanager
    def _get_connection(self):
        """Get database connection with proper cleanup."""
        with self._lock:
            conn = None
            try:
                conn = self._shared_connection or self._connect()
                yield conn
            except sqlite3.Error as e:
                if conn:
                    conn.rollback()
                raise PersistenceError(f"Database error: {str(e)}")
            finally:
                if conn is not None and conn is not self._shared_connection:
                    conn.close()

    def execute_query(self, query: str, params: Optional[tuple] = None) -> List[Dict[str, Any]]:
        """Execute a query and return results."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())
            columns = [description[0] for description in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def execute_update(self, query: str, params: Optional[tuple] = None) -> int:
        """Execute an update query and return affected rows."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())
            conn.commit()
            return cursor.rowcount

    def close(self) -> None:
        with self._lock:
            if self._shared_connection is not None:
                self._shared_connection.close()
                self._shared_connection = None


class DatabaseFactory:
    """Factory for creating database instances."""

    @staticmethod
    def create_database(database_type: str, **kwargs) -> DatabaseManager:
        """Create a database instance based on type."""
        if database_type.lower() == "sqlite":
            return SQLiteDatabase(**kwargs)
        raise ConfigurationError(f"Unsupported database type: {database_type}")
