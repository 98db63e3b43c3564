"""Connection handle and driver factory."""

import atexit
import logging
import threading
import time
from typing import Any, Dict, Optional, Type

from dbaccess.config.models import DatabaseConfig, DatabaseType, DBAccessConfig, RetryPolicy
from dbaccess.db.adapters.mysql import MySQLDriver
from dbaccess.db.adapters.sqlite import SQLiteDriver
from dbaccess.db.base import DatabaseEngine, Driver, QueryResult
from dbaccess.db.batch import InsertBatcher
from dbaccess.db.executor import SerializedExecutor
from dbaccess.db.transaction import TransactionGuard
from dbaccess.exceptions import DatabaseError

logger = logging.getLogger(__name__)


class DriverFactory:
    """Factory for creating database drivers."""

    _drivers: Dict[DatabaseType, Type[Driver]] = {
        DatabaseType.MYSQL: MySQLDriver,
        DatabaseType.SQLITE: SQLiteDriver,
    }

    @classmethod
    def create_driver(
        cls,
        config: DatabaseConfig,
        retry: Optional[RetryPolicy] = None,
    ) -> Driver:
        """Create a database driver based on configuration.

        Args:
            config: Database configuration.
            retry: Recovery policy handed to the driver.

        Returns:
            Database driver instance.

        Raises:
            DatabaseError: If database type is not supported.
        """
        driver_class = cls._drivers.get(config.type)
        if not driver_class:
            supported_types = [t.value for t in cls._drivers]
            raise DatabaseError(
                f"Unsupported database type: {config.type}. "
                f"Supported types: {supported_types}"
            )

        return driver_class(config, retry)

    @classmethod
    def register_driver(cls, db_type: DatabaseType, driver_class: Type[Driver]) -> None:
        """Register a custom database driver.

        Args:
            db_type: Database type.
            driver_class: Driver class to register.
        """
        cls._drivers[db_type] = driver_class

    @classmethod
    def get_supported_types(cls) -> list[DatabaseType]:
        """Get list of supported database types."""
        return list(cls._drivers.keys())


class ConnectionHandle:
    """The process-wide database connection.

    Owns the single driver instance and the serialized executor that every
    statement passes through. Only one handle may be live per process; it is
    handed to the code that needs it rather than looked up globally.

    Every method fails closed: backend errors are reported as False or None
    and kept in ``last_error``.
    """

    _live: Optional["ConnectionHandle"] = None
    _live_lock = threading.Lock()

    def __init__(
        self,
        config: Optional[DBAccessConfig] = None,
        driver: Optional[Driver] = None,
    ) -> None:
        """Initialize the connection handle.

        Args:
            config: Configuration used to create the driver on first access
                and as the default connection parameters.
            driver: Ready driver instance, used instead of one built from config.

        Raises:
            DatabaseError: If another handle is live, or neither argument is given.
        """
        if config is None and driver is None:
            raise DatabaseError("A connection handle needs a configuration or a driver")

        with ConnectionHandle._live_lock:
            if ConnectionHandle._live is not None:
                raise DatabaseError("A connection handle is already open in this process")
            ConnectionHandle._live = self

        self.config = config
        self.executor = SerializedExecutor()
        self.connected = False
        self.last_use = time.monotonic()
        self._driver = driver
        self._closed = False
        atexit.register(self.close)

    def __enter__(self) -> "ConnectionHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def driver(self) -> Driver:
        """The driver, created from configuration on first access."""
        if self._driver is None:
            with self.executor.acquire():
                if self._driver is None:
                    self._driver = DriverFactory.create_driver(self.config.database, self.config.retry)
        return self._driver

    # --- Connectivity ---------------------------------------------------------------
    def connect(
        self,
        host: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        database: Optional[str] = None,
        port: Optional[int] = None,
        unix_socket: Optional[str] = None,
    ) -> bool:
        """Connect the driver.

        Arguments left as None fall back to the handle's database configuration.

        Returns:
            Whether the connection was established.
        """
        if self.config is not None:
            db = self.config.database
            host = host if host is not None else db.host
            user = user if user is not None else db.username
            password = password if password is not None else db.password
            database = database if database is not None else (db.path or db.database)
            port = port if port is not None else db.port
            unix_socket = unix_socket if unix_socket is not None else db.unix_socket

        with self.executor.acquire():
            self.connected = self.driver.connect(host, user, password, database, port, unix_socket)
            self.mark_used()
        return self.connected

    def is_connected(self) -> bool:
        return self.connected

    def mark_used(self) -> None:
        """Record the current time as the last use of the connection."""
        self.last_use = time.monotonic()

    def idle_seconds(self) -> float:
        return time.monotonic() - self.last_use

    def disconnect(self) -> None:
        """Close the driver connection, the handle stays live."""
        with self.executor.acquire():
            if self._driver is not None:
                self._driver.close()
            if self.connected:
                logger.info("Disconnected from database")
            self.connected = False

    def close(self) -> None:
        """Disconnect and release the process-wide handle slot."""
        if self._closed:
            return
        self._closed = True
        self.disconnect()
        atexit.unregister(self.close)
        with ConnectionHandle._live_lock:
            if ConnectionHandle._live is self:
                ConnectionHandle._live = None

    # --- Statements -----------------------------------------------------------------
    def execute(self, statement: str) -> bool:
        """Execute a statement that returns no rows.

        Returns:
            True on success.
        """
        with self.executor.acquire():
            ok = self.driver.execute_statement(statement)
            self.mark_used()
        if not ok:
            self._check_fatal()
        return ok

    def query(self, statement: str) -> Optional[QueryResult]:
        """Execute a statement that returns rows.

        Returns:
            QueryResult owned by the caller, or None on failure.
        """
        with self.executor.acquire():
            result = self.driver.query_statement(statement)
            self.mark_used()
        if result is None:
            self._check_fatal()
        return result

    def ping(self) -> bool:
        """Run a probe query to keep an idle connection alive."""
        result = self.query("SELECT 1")
        if result is None:
            return False
        result.free()
        return True

    def _check_fatal(self) -> None:
        if self.connected and not self.driver.is_connected():
            logger.error("Database connection lost")
            self.connected = False

    # --- Units of work --------------------------------------------------------------
    def transaction(self) -> TransactionGuard:
        """Create a transaction guard bound to this handle."""
        return TransactionGuard(self)

    def insert_batcher(
        self,
        template: Optional[str] = None,
        max_statement_size: Optional[int] = None,
    ) -> InsertBatcher:
        """Create an insert batcher bound to this handle."""
        batch = self.config.batch if self.config is not None else None
        return InsertBatcher(
            self,
            template=template,
            max_statement_size=max_statement_size or (batch.max_statement_size if batch else None),
            row_separator=batch.row_separator if batch else ",",
        )

    # --- Dialect metadata -----------------------------------------------------------
    def escape_string(self, value: str) -> str:
        return self.driver.escape_string(value)

    def escape_binary(self, data: bytes) -> str:
        return self.driver.escape_binary(data)

    @property
    def string_comparer(self) -> str:
        """Case-insensitive comparison operator text."""
        return self.driver.string_comparer

    @property
    def update_limiter(self) -> str:
        """Clause limiting an UPDATE to a single row."""
        return self.driver.update_limiter

    @property
    def engine(self) -> DatabaseEngine:
        return self.driver.engine

    @property
    def supports_multi_row_insert(self) -> bool:
        return self.driver.supports_multi_row_insert

    def last_inserted_id(self) -> int:
        with self.executor.acquire():
            return self.driver.last_inserted_id()

    @property
    def last_error(self) -> Optional[Exception]:
        return self._driver.last_error if self._driver is not None else None

    def status(self) -> Dict[str, Any]:
        """Get status information for the connection.

        Returns:
            Dictionary with connection status information.
        """
        error = self.last_error
        return {
            'engine': self.engine.value,
            'connected': self.connected,
            'idle_seconds': round(self.idle_seconds(), 3),
            'multi_row_insert': self.supports_multi_row_insert,
            'last_error': str(error) if error is not None else None,
        }
