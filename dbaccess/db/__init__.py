"""Database connectivity and serialized statement execution."""

from dbaccess.db.base import Driver, SQLAlchemyDriver, QueryResult, DatabaseEngine
from dbaccess.db.executor import SerializedExecutor
from dbaccess.db.transaction import TransactionGuard, TransactionState
from dbaccess.db.batch import InsertBatcher
from dbaccess.db.connection import ConnectionHandle, DriverFactory
from dbaccess.db.adapters import (
    MySQLDriver,
    SQLiteDriver,
)

__all__ = [
    # Driver contract
    "Driver",
    "SQLAlchemyDriver",
    "QueryResult",
    "DatabaseEngine",
    # Core
    "SerializedExecutor",
    "TransactionGuard",
    "TransactionState",
    "InsertBatcher",
    "ConnectionHandle",
    "DriverFactory",
    # Drivers
    "MySQLDriver",
    "SQLiteDriver",
]
