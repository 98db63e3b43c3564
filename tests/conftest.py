"""Shared fixtures for dbaccess tests."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Callable, List, Optional

import pandas as pd
import pytest

from dbaccess.config.models import DatabaseConfig, DatabaseType, DBAccessConfig
from dbaccess.db.base import DatabaseEngine, Driver, QueryResult
from dbaccess.db.connection import ConnectionHandle
from dbaccess.exceptions import StatementFailure, TransactionFailure


class RecordingDriver(Driver):
    """In-memory driver that records every call it receives.

    ``in_flight``/``max_in_flight`` count statements running at the same time,
    ``statement_delay`` widens the window in which overlaps would show up.
    """

    engine = DatabaseEngine.NONE

    def __init__(self, multi_row: bool = True, statement_delay: float = 0.0) -> None:
        super().__init__()
        self.supports_multi_row_insert = multi_row
        self.statement_delay = statement_delay
        self.statements: List[str] = []
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.connect_result = True
        self.fail_begin = False
        self.fail_commit = False
        self.fail_rollback = False
        self.fail_when: Optional[Callable[[str], bool]] = None
        self._counter = threading.Lock()

    def connect(self, host, user, password, database, port, unix_socket=None) -> bool:
        self.calls.append("connect")
        return self.connect_result

    def _run(self, statement: str) -> bool:
        with self._counter:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.statement_delay:
                time.sleep(self.statement_delay)
            if self.fail_when is not None and self.fail_when(statement):
                self.last_error = StatementFailure("rejected", statement=statement)
                return False
            self.statements.append(statement)
            return True
        finally:
            with self._counter:
                self.in_flight -= 1

    def execute_statement(self, statement: str) -> bool:
        return self._run(statement)

    def query_statement(self, statement: str) -> Optional[QueryResult]:
        if not self._run(statement):
            return None
        return QueryResult(pd.DataFrame({"value": [1]}))

    def begin_transaction(self) -> bool:
        self.calls.append("begin")
        if self.fail_begin:
            self.last_error = TransactionFailure("begin rejected", operation="begin")
            return False
        return True

    def commit(self) -> bool:
        self.calls.append("commit")
        if self.fail_commit:
            self.last_error = TransactionFailure("commit rejected", operation="commit")
            return False
        return True

    def rollback(self) -> bool:
        self.calls.append("rollback")
        if self.fail_rollback:
            self.last_error = TransactionFailure("rollback rejected", operation="rollback")
            return False
        return True

    def escape_string(self, value: str) -> str:
        return "'" + value.replace("'", "''") + "'"


@pytest.fixture(autouse=True)
def release_live_handle():
    """Make sure no handle outlives the test that opened it."""
    yield
    live = ConnectionHandle._live
    if live is not None:
        live.close()


@pytest.fixture
def recording_driver() -> RecordingDriver:
    return RecordingDriver()


@pytest.fixture
def fake_handle(recording_driver: RecordingDriver) -> ConnectionHandle:
    handle = ConnectionHandle(driver=recording_driver)
    assert handle.connect()
    yield handle
    handle.close()


@pytest.fixture
def sqlite_config(tmp_path: Path) -> DBAccessConfig:
    db_config = DatabaseConfig(type=DatabaseType.SQLITE, path=str(tmp_path / "dbaccess_test.db"))
    return DBAccessConfig(database=db_config)


@pytest.fixture
def sqlite_handle(sqlite_config: DBAccessConfig) -> ConnectionHandle:
    handle = ConnectionHandle(sqlite_config)
    assert handle.connect()
    assert handle.execute("CREATE TABLE items (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT, payload BLOB)")
    yield handle
    handle.close()


@pytest.fixture
def count_rows() -> Callable[[ConnectionHandle], int]:
    """Return a helper counting the rows of a table through a handle."""

    def count(handle: ConnectionHandle, table: str = "items") -> int:
        result = handle.query(f"SELECT COUNT(*) AS n FROM {table}")
        assert result is not None
        with result:
            return result.get_int("n")

    return count
