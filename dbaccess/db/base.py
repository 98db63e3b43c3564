"""Driver contract, result cursor and shared SQLAlchemy driver machinery."""

import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

import pandas as pd
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine, URL
from sqlalchemy.exc import SQLAlchemyError

from dbaccess.config.models import DatabaseConfig, RetryPolicy
from dbaccess.exceptions import (
    ConnectionFailure,
    DatabaseError,
    StatementFailure,
    TransactionFailure,
)

logger = logging.getLogger(__name__)


class DatabaseEngine(str, Enum):
    """Engine identity reported by a driver."""
    NONE = "none"
    MYSQL = "mysql"
    SQLITE = "sqlite"


class QueryResult:
    """Cursor over the rows returned by a query.

    The cursor starts on the first row. Column values are read through the
    typed accessors, ``next()`` moves to the following row. Callers own the
    result and release it with ``free()`` or a ``with`` block.
    """

    def __init__(
        self,
        data: Optional[pd.DataFrame] = None,
        columns: Optional[List[str]] = None,
        execution_time: Optional[float] = None,
    ) -> None:
        """Initialize query result.

        Args:
            data: Result rows as DataFrame.
            columns: Column names, used when ``data`` is not given.
            execution_time: Query execution time in seconds.
        """
        if data is None:
            data = pd.DataFrame(columns=columns or [])
        self.data: Optional[pd.DataFrame] = data
        self.columns = list(data.columns)
        self.execution_time = execution_time or 0.0
        self._position = 0

    def __enter__(self) -> "QueryResult":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.free()

    @property
    def is_empty(self) -> bool:
        """Check if result is empty."""
        return self.data is None or self.data.empty

    @property
    def row_count(self) -> int:
        """Get number of rows in result."""
        return len(self.data) if self.data is not None else 0

    @property
    def position(self) -> int:
        return self._position

    def next(self) -> bool:
        """Move to the next row.

        Returns:
            True if the cursor now points at a row, False once past the end.
        """
        if self._position < self.row_count:
            self._position += 1
        return self._position < self.row_count

    def _value(self, column: str) -> Any:
        if self.data is None or self._position >= self.row_count:
            return None
        if column not in self.data.columns:
            logger.error(f"Column '{column}' does not exist in result set")
            return None
        value = self.data.iat[self._position, self.data.columns.get_loc(column)]
        if not isinstance(value, (bytes, bytearray, str)) and pd.isna(value):
            return None
        return value

    def get_int(self, column: str) -> int:
        """Integer value of ``column`` in the current row, 0 when absent."""
        value = self._value(column)
        return int(value) if value is not None else 0

    def get_long(self, column: str) -> int:
        """64-bit integer value of ``column`` in the current row, 0 when absent."""
        value = self._value(column)
        return int(value) if value is not None else 0

    def get_string(self, column: str) -> str:
        value = self._value(column)
        if value is None:
            return ""
        if isinstance(value, (bytes, bytearray)):
            return bytes(value).decode("utf-8", errors="replace")
        return str(value)

    def get_bytes(self, column: str) -> Tuple[bytes, int]:
        """Raw bytes of ``column`` in the current row and their length."""
        value = self._value(column)
        if value is None:
            return b"", 0
        if isinstance(value, str):
            value = value.encode("utf-8")
        data = bytes(value)
        return data, len(data)

    def rows(self) -> Iterator[Dict[str, Any]]:
        """Iterate over all rows as dictionaries, independent of the cursor."""
        if self.data is None:
            return iter(())
        return iter(self.data.to_dict('records'))

    def to_dataframe(self) -> pd.DataFrame:
        return self.data.copy() if self.data is not None else pd.DataFrame(columns=self.columns)

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary."""
        return {
            'data': self.data.to_dict('records') if self.data is not None else [],
            'execution_time': self.execution_time,
            'columns': self.columns,
            'row_count': self.row_count,
            'is_empty': self.is_empty,
        }

    def free(self) -> None:
        """Release the rows held by this result."""
        self.data = None
        self._position = 0


class Driver(ABC):
    """Capability contract every backend driver satisfies.

    Drivers never raise for backend failures. They record the failure as
    ``last_error`` and report it through their return value.
    """

    engine: DatabaseEngine = DatabaseEngine.NONE
    string_comparer: str = "= "
    update_limiter: str = " LIMIT 1;"
    supports_multi_row_insert: bool = False

    def __init__(self) -> None:
        self.last_error: Optional[DatabaseError] = None

    @abstractmethod
    def connect(
        self,
        host: Optional[str],
        user: Optional[str],
        password: Optional[str],
        database: Optional[str],
        port: Optional[int],
        unix_socket: Optional[str] = None,
    ) -> bool:
        """Connect to the backend.

        Returns:
            True if the connection is usable.
        """
        pass

    @abstractmethod
    def begin_transaction(self) -> bool:
        """Start a transaction. Backends without transactions return True."""
        pass

    @abstractmethod
    def commit(self) -> bool:
        pass

    @abstractmethod
    def rollback(self) -> bool:
        pass

    @abstractmethod
    def execute_statement(self, statement: str) -> bool:
        """Execute a statement that produces no rows (INSERT, UPDATE, DDL...)."""
        pass

    @abstractmethod
    def query_statement(self, statement: str) -> Optional[QueryResult]:
        """Execute a statement that produces rows.

        Returns:
            QueryResult, or None on error.
        """
        pass

    @abstractmethod
    def escape_string(self, value: str) -> str:
        """Quote ``value`` for direct use in a statement."""
        pass

    def escape_binary(self, data: bytes) -> str:
        """Quote a binary value as a hex literal."""
        return "X'" + bytes(data).hex() + "'"

    def last_inserted_id(self) -> int:
        """Id generated by the last INSERT, 0 if there is none."""
        return 0

    def is_connected(self) -> bool:
        """Whether the driver still holds a usable connection."""
        return True

    def handle_error(self, error: Exception) -> bool:
        """Recovery hook called after a failed statement.

        Returns:
            True if the driver recovered and the statement should be retried.
        """
        return False

    def close(self) -> None:
        pass


class SQLAlchemyDriver(Driver):
    """Driver running every statement on one SQLAlchemy connection.

    Outside a transaction each statement is committed on its own. Between
    ``begin_transaction()`` and ``commit()``/``rollback()`` statements join the
    open transaction.
    """

    def __init__(
        self,
        config: DatabaseConfig,
        retry: Optional[RetryPolicy] = None,
    ) -> None:
        """Initialize the driver.

        Args:
            config: Database configuration.
            retry: Recovery policy used by ``handle_error``.
        """
        super().__init__()
        self.config = config
        self.retry = retry or RetryPolicy()
        self._engine: Optional[Engine] = None
        self._connection: Optional[Connection] = None
        self._transaction = None
        self._last_insert_id = 0
        self._connect_args: Optional[Tuple[Any, ...]] = None

    @abstractmethod
    def build_url(
        self,
        host: Optional[str],
        user: Optional[str],
        password: Optional[str],
        database: Optional[str],
        port: Optional[int],
        unix_socket: Optional[str],
    ) -> Union[str, URL]:
        """Build the SQLAlchemy URL for the given connection parameters."""
        pass

    def _get_engine_options(self) -> Dict[str, Any]:
        """Get database-specific engine options."""
        return {}

    def _configure_engine(self, engine: Engine) -> None:
        """Register database-specific engine event listeners."""
        pass

    @property
    def in_transaction(self) -> bool:
        return self._transaction is not None

    def is_connected(self) -> bool:
        return self._connection is not None

    def connect(
        self,
        host: Optional[str],
        user: Optional[str],
        password: Optional[str],
        database: Optional[str],
        port: Optional[int],
        unix_socket: Optional[str] = None,
    ) -> bool:
        self.close()
        self._connect_args = (host, user, password, database, port, unix_socket)
        try:
            url = self.build_url(host, user, password, database, port, unix_socket)
            self._engine = create_engine(url, **self._get_engine_options())
            self._configure_engine(self._engine)
            self._connection = self._engine.connect()
        except Exception as e:
            self.last_error = ConnectionFailure(
                f"Failed to connect to {self.engine.value} database: {e}",
                engine=self.engine.value,
            )
            logger.error(self.last_error.message)
            self.close()
            return False

        logger.info(f"Connected to {self.engine.value} database {database or ''}".rstrip())
        return True

    def reconnect(self) -> bool:
        """Re-open the connection with the last ``connect()`` arguments."""
        if self._connect_args is None:
            return False
        return self.connect(*self._connect_args)

    def _run(self, statement: str, work: Callable[[Connection], Any]) -> Tuple[bool, Any]:
        """Run ``work`` on the connection, consulting ``handle_error`` on failure."""
        attempts = 0
        while True:
            if self._connection is None:
                self.last_error = StatementFailure(
                    "Not connected", statement=statement, engine=self.engine.value
                )
                logger.error(f"Cannot run statement, {self.engine.value} driver is not connected")
                return False, None

            try:
                logger.debug(f"Executing SQL: {statement}")
                value = work(self._connection)
                if self._transaction is None:
                    self._connection.commit()
                return True, value
            except SQLAlchemyError as e:
                if self._transaction is None:
                    self._reset_connection()
                if attempts < self.retry.retry_attempts and self.handle_error(e):
                    attempts += 1
                    logger.warning(f"Retrying statement after recovery (attempt {attempts})")
                    continue

                self.last_error = StatementFailure(
                    f"Statement failed: {e}", statement=statement, engine=self.engine.value
                )
                logger.error(self.last_error.message)
                return False, None

    def _reset_connection(self) -> None:
        if self._connection is None:
            return
        try:
            self._connection.rollback()
        except SQLAlchemyError as e:
            logger.debug(f"Rollback after failed statement did not complete: {e}")

    def execute_statement(self, statement: str) -> bool:
        def work(conn: Connection) -> None:
            result = conn.execute(text(statement))
            try:
                lastrowid = result.lastrowid
            except SQLAlchemyError:
                lastrowid = None
            if lastrowid:
                self._last_insert_id = int(lastrowid)

        ok, _ = self._run(statement, work)
        return ok

    def query_statement(self, statement: str) -> Optional[QueryResult]:
        start_time = time.time()

        def work(conn: Connection) -> QueryResult:
            result = conn.execute(text(statement))
            columns = list(result.keys())
            rows = result.fetchall() if result.returns_rows else []
            # object dtype, pandas would turn nullable integer columns into float64
            df = pd.DataFrame(rows, columns=columns, dtype=object)
            return QueryResult(data=df, execution_time=time.time() - start_time)

        ok, value = self._run(statement, work)
        return value if ok else None

    def begin_transaction(self) -> bool:
        if self._connection is None:
            self.last_error = TransactionFailure("Not connected", operation="begin", engine=self.engine.value)
            return False
        if self._transaction is not None:
            self.last_error = TransactionFailure(
                "A transaction is already open", operation="begin", engine=self.engine.value
            )
            return False
        try:
            if self._connection.in_transaction():
                self._connection.commit()
            self._transaction = self._connection.begin()
            return True
        except SQLAlchemyError as e:
            self.last_error = TransactionFailure(
                f"BEGIN failed: {e}", operation="begin", engine=self.engine.value
            )
            logger.error(self.last_error.message)
            return False

    def commit(self) -> bool:
        return self._end_transaction("commit")

    def rollback(self) -> bool:
        return self._end_transaction("rollback")

    def _end_transaction(self, operation: str) -> bool:
        transaction, self._transaction = self._transaction, None
        if transaction is None:
            logger.debug(f"No open transaction to {operation}")
            return True
        try:
            getattr(transaction, operation)()
            return True
        except SQLAlchemyError as e:
            self.last_error = TransactionFailure(
                f"{operation.upper()} failed: {e}", operation=operation, engine=self.engine.value
            )
            logger.error(self.last_error.message)
            self._reset_connection()
            return False

    def last_inserted_id(self) -> int:
        return self._last_insert_id

    def close(self) -> None:
        """Close the connection and dispose of the engine."""
        self._transaction = None
        if self._connection is not None:
            try:
                self._connection.close()
            except SQLAlchemyError as e:
                logger.debug(f"Error closing connection: {e}")
            self._connection = None
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
