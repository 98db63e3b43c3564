"""Core exceptions for dbaccess.

Connection, statement and transaction failures are not raised out of the
database layer. Drivers build them, record them as ``last_error`` and report
failure through their return value instead.
"""

from typing import Any, Dict, Optional


class DBAccessError(Exception):
    """Base exception for all dbaccess errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(DBAccessError):
    """Raised when there's an error in configuration parsing or validation."""
    pass


class DatabaseError(DBAccessError):
    """Raised when the connection handle is misused or cannot be created."""

    def __init__(
        self,
        message: str,
        engine: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.engine = engine


class ConnectionFailure(DatabaseError):
    """Connecting to the backend failed."""
    pass


class StatementFailure(DatabaseError):
    """A statement or query was rejected by the backend."""

    def __init__(
        self,
        message: str,
        statement: Optional[str] = None,
        engine: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, engine, details)
        self.statement = statement


class TransactionFailure(DatabaseError):
    """BEGIN, COMMIT or ROLLBACK failed at the wire level."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        engine: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, engine, details)
        self.operation = operation


class BatchFlushFailure(DBAccessError):
    """An insert batch could not be flushed."""

    def __init__(
        self,
        message: str,
        rows: int = 0,
        cause: Optional[StatementFailure] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.rows = rows
        self.cause = cause
