"""Database drivers for different backends."""

from dbaccess.db.adapters.mysql import MySQLDriver
from dbaccess.db.adapters.sqlite import SQLiteDriver

__all__ = [
    "MySQLDriver",
    "SQLiteDriver",
]
