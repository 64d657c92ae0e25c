"""SQLite connection and initialization utilities."""

import sqlite3
from pathlib import Path
import threading

from .schema import get_init_schema, SCHEMA_VERSION
from ..core.exceptions import StorageError


class DatabaseConnection:
    """Manage SQLite connections and schema init."""

    __slots__ = ("db_path", "_local", "_lock", "_initialized", "_schema", "_connections")

    def __init__(self, db_path="./strongbox.db", schema=None):
        """Initialize connection state. ``schema`` defaults to the record store schema."""
        self.db_path = Path(db_path)
        self._local = threading.local()
        self._lock = threading.Lock()
        self._initialized = False
        self._schema = schema or get_init_schema
        self._connections = []

    def initialize(self):
        """Initialize schema if not already initialized."""
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return

            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)

                conn = self._get_connection()

                for statement in self._schema():
                    conn.execute(statement)

                self._initialized = True

            except sqlite3.Error as e:
                raise StorageError(f"Failed to initialize database: {e}") from e

    def _get_connection(self):
        """Get or create a thread-local SQLite connection."""
        if getattr(self._local, "connection", None) is None:
            conn = sqlite3.connect(
                str(self.db_path), check_same_thread=False, isolation_level=None
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            self._local.connection = conn
            with self._lock:
                self._connections.append(conn)

        return self._local.connection

    def get_cursor_context(self):
        """Return a context manager for a SQLite cursor."""
        return CursorContext(self._get_connection())

    def get_transaction_context(self):
        """Return a transaction context manager (BEGIN/COMMIT/ROLLBACK)."""
        return TransactionContext(self._get_connection())

    def execute(self, query, params=None):
        """Execute a single SQL statement and return the row count."""
        with self.get_cursor_context() as cursor:
            cursor.execute(query, params or ())
            return cursor.rowcount

    def execute_many(self, query, params_list):
        """Execute a statement against multiple parameter sets."""
        with self.get_cursor_context() as cursor:
            cursor.executemany(query, params_list)

    def fetch_one(self, query, params=None):
        """Fetch a single row as a dict or None."""
        with self.get_cursor_context() as cursor:
            cursor.execute(query, params or ())
            row = cursor.fetchone()
            return dict(row) if row else None

    def fetch_all(self, query, params=None):
        """Fetch all rows as a list of dicts."""
        with self.get_cursor_context() as cursor:
            cursor.execute(query, params or ())
            return [dict(row) for row in cursor.fetchall()]

    def get_version(self):
        """Return current schema version number."""
        try:
            result = self.fetch_one("SELECT MAX(version) as version FROM schema_version")
            return result["version"] if result and result["version"] else 0
        except StorageError:
            return 0

    def close(self):
        """Close the thread-local connection if open."""
        conn = getattr(self._local, "connection", None)
        if conn is not None:
            conn.close()
            self._local.connection = None
            with self._lock:
                if conn in self._connections:
                    self._connections.remove(conn)

    def close_all(self):
        """Close every connection opened by any thread (used around a restore)."""
        with self._lock:
            conns, self._connections = self._connections, []
        for conn in conns:
            try:
                conn.close()
            except sqlite3.ProgrammingError:
                pass
        self._local = threading.local()


class CursorContext:
    """Context manager for SQLite cursor; wraps sqlite3 errors in StorageError."""

    __slots__ = ("connection", "cursor")

    def __init__(self, connection):
        """Initialize with a SQLite connection."""
        self.connection = connection
        self.cursor = None

    def __enter__(self):
        """Create and return a cursor."""
        self.cursor = self.connection.cursor()
        return self.cursor

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Close the cursor; translate database errors."""
        if self.cursor:
            self.cursor.close()
        if exc_type is not None and issubclass(exc_type, sqlite3.Error):
            raise StorageError(f"Database operation failed: {exc_val}") from exc_val
        return False


class TransactionContext:
    """Context manager for transactions (BEGIN/COMMIT/ROLLBACK)."""

    __slots__ = ("connection", "cursor")

    def __init__(self, connection):
        """Initialize with a SQLite connection."""
        self.connection = connection
        self.cursor = None

    def __enter__(self):
        """Begin a transaction and return a cursor."""
        self.cursor = self.connection.cursor()
        self.cursor.execute("BEGIN")
        return self.cursor

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Commit on success, rollback on error, then close cursor."""
        try:
            if exc_type is None:
                self.connection.commit()
            else:
                self.connection.rollback()
        finally:
            if self.cursor:
                self.cursor.close()
        if exc_type is not None and issubclass(exc_type, sqlite3.Error):
            raise StorageError(f"Database transaction failed: {exc_val}") from exc_val
        return False
