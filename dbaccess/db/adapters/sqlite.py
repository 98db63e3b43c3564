"""SQLite database driver."""

import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Dict, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool

from dbaccess.config.models import DatabaseConfig, RetryPolicy
from dbaccess.db.base import DatabaseEngine, SQLAlchemyDriver

logger = logging.getLogger(__name__)

# Multi-row VALUES lists arrived in SQLite 3.7.11
MULTI_ROW_INSERT_VERSION = (3, 7, 11)


class SQLiteDriver(SQLAlchemyDriver):
    """SQLite driver using SQLAlchemy's pysqlite dialect."""

    engine = DatabaseEngine.SQLITE
    string_comparer = "LIKE "
    update_limiter = ";"
    supports_multi_row_insert = sqlite3.sqlite_version_info >= MULTI_ROW_INSERT_VERSION

    def __init__(
        self,
        config: DatabaseConfig,
        retry: Optional[RetryPolicy] = None,
    ) -> None:
        """Initialize SQLite driver."""
        super().__init__(config, retry)

    def build_url(
        self,
        host: Optional[str],
        user: Optional[str],
        password: Optional[str],
        database: Optional[str],
        port: Optional[int],
        unix_socket: Optional[str],
    ) -> str:
        """Build SQLite connection string.

        Only ``database`` is used. It names the database file, or ``:memory:``.
        """
        path = database or self.config.path
        if not path or path == ":memory:":
            return "sqlite://"

        db_path = Path(path)
        if not db_path.is_absolute():
            db_path = Path.cwd() / db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)

        return f"sqlite:///{db_path}"

    def _get_engine_options(self) -> Dict[str, Any]:
        """Get SQLite-specific engine options."""
        return {
            'poolclass': StaticPool,
            'connect_args': {
                'check_same_thread': False,
                'timeout': self.config.options.get('timeout', 30),
            },
        }

    def _configure_engine(self, engine: Engine) -> None:
        """Emit BEGIN ourselves so DDL and SELECTs join transactions too.

        pysqlite only opens a transaction before DML statements on its own.
        """

        @event.listens_for(engine, "connect")
        def on_connect(dbapi_conn, connection_record):
            dbapi_conn.isolation_level = None

        @event.listens_for(engine, "begin")
        def on_begin(conn):
            conn.exec_driver_sql("BEGIN")

    def escape_string(self, value: str) -> str:
        return "'" + value.replace("'", "''") + "'"

    def handle_error(self, error: Exception) -> bool:
        """Wait and retry when another process holds the database lock."""
        if not isinstance(error, OperationalError) or "database is locked" not in str(error):
            return False

        logger.warning("SQLite database is locked, retrying")
        time.sleep(self.retry.retry_delay)
        return True
