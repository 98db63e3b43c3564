"""dbaccess: serialized, transaction-safe access to a single SQL connection.

dbaccess provides:
- One process-wide connection handle over an interchangeable backend
- A re-entrant executor that serializes every statement
- Transaction guards that roll back when abandoned
- Insert batching for backends with multi-row INSERT
- MySQL and SQLite drivers built on SQLAlchemy
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Core exports
from dbaccess.exceptions import (
    DBAccessError,
    ConfigurationError,
    DatabaseError,
    ConnectionFailure,
    StatementFailure,
    TransactionFailure,
    BatchFlushFailure,
)

__all__ = [
    "__version__",
    "DBAccessError",
    "ConfigurationError",
    "DatabaseError",
    "ConnectionFailure",
    "StatementFailure",
    "TransactionFailure",
    "BatchFlushFailure",
]
