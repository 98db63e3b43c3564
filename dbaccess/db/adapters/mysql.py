"""MySQL database driver."""

import logging
import time
from typing import Any, Dict, Optional

from pymysql.converters import escape_string as mysql_escape_string
from sqlalchemy.engine import URL
from sqlalchemy.exc import DBAPIError

from dbaccess.db.base import DatabaseEngine, SQLAlchemyDriver

logger = logging.getLogger(__name__)

# Server gone away, lost connection during query, lost connection at handshake
LOST_CONNECTION_CODES = {2006, 2013, 2055}

DEFAULT_PORT = 3306


class MySQLDriver(SQLAlchemyDriver):
    """MySQL driver using SQLAlchemy with PyMySQL."""

    engine = DatabaseEngine.MYSQL
    string_comparer = "LIKE "
    update_limiter = " LIMIT 1;"
    supports_multi_row_insert = True

    def build_url(
        self,
        host: Optional[str],
        user: Optional[str],
        password: Optional[str],
        database: Optional[str],
        port: Optional[int],
        unix_socket: Optional[str],
    ) -> URL:
        """Build MySQL connection URL."""
        query: Dict[str, str] = {
            'charset': str(self.config.options.get('charset', 'utf8mb4')),
        }
        if unix_socket:
            query['unix_socket'] = unix_socket

        return URL.create(
            "mysql+pymysql",
            username=user,
            password=password or None,
            host=None if unix_socket else host,
            port=None if unix_socket else (port or DEFAULT_PORT),
            database=database,
            query=query,
        )

    def _get_engine_options(self) -> Dict[str, Any]:
        """Get MySQL-specific engine options."""
        return {
            'pool_size': 1,
            'max_overflow': 0,
            'pool_pre_ping': True,
            'pool_recycle': 3600,
            'connect_args': {
                'connect_timeout': self.config.options.get('connect_timeout', 10),
            },
        }

    def escape_string(self, value: str) -> str:
        return "'" + mysql_escape_string(value) + "'"

    def handle_error(self, error: Exception) -> bool:
        """Reconnect after a lost connection.

        Statements inside an open transaction are not retried, the transaction
        died with the connection.
        """
        if not self._is_lost_connection(error) or self.in_transaction:
            return False

        logger.warning(f"Lost connection to MySQL server, reconnecting: {error}")
        time.sleep(self.retry.retry_delay)
        return self.reconnect()

    @staticmethod
    def _is_lost_connection(error: Exception) -> bool:
        if not isinstance(error, DBAPIError):
            return False
        if error.connection_invalidated:
            return True
        args = getattr(error.orig, 'args', ())
        return bool(args) and args[0] in LOST_CONNECTION_CODES
