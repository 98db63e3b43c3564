"""Tests for the connection handle and driver factory."""

from __future__ import annotations

import threading

import pytest

from dbaccess.config.models import DatabaseConfig, DatabaseType, DBAccessConfig
from dbaccess.db.adapters import MySQLDriver, SQLiteDriver
from dbaccess.db.base import DatabaseEngine, QueryResult
from dbaccess.db.connection import ConnectionHandle, DriverFactory
from dbaccess.exceptions import ConnectionFailure, DatabaseError, StatementFailure


class TestHandleLifecycle:
    def test_only_one_live_handle(self, recording_driver) -> None:
        first = ConnectionHandle(driver=recording_driver)

        with pytest.raises(DatabaseError, match="already open"):
            ConnectionHandle(driver=recording_driver)

        first.close()
        second = ConnectionHandle(driver=recording_driver)
        second.close()

    def test_requires_config_or_driver(self) -> None:
        with pytest.raises(DatabaseError):
            ConnectionHandle()
        assert ConnectionHandle._live is None

    def test_driver_created_lazily(self, sqlite_config) -> None:
        handle = ConnectionHandle(sqlite_config)

        assert handle._driver is None
        assert isinstance(handle.driver, SQLiteDriver)
        assert handle.driver is handle.driver
        handle.close()

    def test_connect_uses_config_values(self, sqlite_config, tmp_path) -> None:
        with ConnectionHandle(sqlite_config) as handle:
            assert handle.connect()
            assert handle.is_connected()

        assert (tmp_path / "dbaccess_test.db").exists()
        assert not handle.is_connected()
        assert ConnectionHandle._live is None

    def test_connect_failure_is_reported(self, tmp_path) -> None:
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("")
        config = DBAccessConfig(
            database=DatabaseConfig(type=DatabaseType.SQLITE, path=str(blocker / "db.sqlite"))
        )

        with ConnectionHandle(config) as handle:
            assert not handle.connect()
            assert not handle.is_connected()
            assert isinstance(handle.last_error, ConnectionFailure)

    def test_disconnect_keeps_handle_live(self, sqlite_handle) -> None:
        sqlite_handle.disconnect()

        assert not sqlite_handle.is_connected()
        assert ConnectionHandle._live is sqlite_handle
        assert not sqlite_handle.execute("SELECT 1")
        assert isinstance(sqlite_handle.last_error, StatementFailure)

    def test_mark_used_resets_idle_time(self, fake_handle) -> None:
        fake_handle.last_use -= 60
        assert fake_handle.idle_seconds() >= 60

        fake_handle.execute("UPDATE t SET a = 1")
        assert fake_handle.idle_seconds() < 60


class TestStatements:
    def test_execute_and_query(self, sqlite_handle) -> None:
        assert sqlite_handle.execute("INSERT INTO items (name, payload) VALUES ('alpha', X'0102')")
        assert sqlite_handle.last_inserted_id() == 1
        assert sqlite_handle.execute("INSERT INTO items (name) VALUES ('beta')")
        assert sqlite_handle.last_inserted_id() == 2

        with sqlite_handle.query("SELECT id, name, payload FROM items ORDER BY id") as result:
            assert result.row_count == 2
            assert result.get_int("id") == 1
            assert result.get_string("name") == "alpha"
            assert result.get_bytes("payload") == (b"\x01\x02", 2)

            assert result.next()
            assert result.get_long("id") == 2
            assert result.get_string("payload") == ""
            assert result.get_bytes("payload") == (b"", 0)

            assert not result.next()
            assert result.get_int("id") == 0

    def test_nullable_bigint_keeps_full_precision(self, sqlite_handle) -> None:
        big = 2 ** 62 + 1
        assert sqlite_handle.execute("CREATE TABLE counters (id INTEGER PRIMARY KEY, v BIGINT)")
        assert sqlite_handle.execute(f"INSERT INTO counters (id, v) VALUES (1, {big}), (2, NULL), (3, 5)")

        with sqlite_handle.query("SELECT v FROM counters ORDER BY id") as result:
            assert result.get_long("v") == big
            assert result.get_string("v") == str(big)

            assert result.next()
            assert result.get_long("v") == 0
            assert result.get_string("v") == ""

            assert result.next()
            assert result.get_int("v") == 5
            assert result.get_string("v") == "5"

    def test_empty_result_is_not_an_error(self, sqlite_handle) -> None:
        result = sqlite_handle.query("SELECT id FROM items")

        assert isinstance(result, QueryResult)
        assert result.is_empty
        assert result.columns == ["id"]
        assert not result.next()

    def test_unknown_column_reads_as_empty(self, sqlite_handle) -> None:
        sqlite_handle.execute("INSERT INTO items (name) VALUES ('alpha')")
        result = sqlite_handle.query("SELECT name FROM items")

        assert result.get_string("missing") == ""
        assert result.get_int("missing") == 0

    def test_failed_statement_returns_false(self, sqlite_handle) -> None:
        assert not sqlite_handle.execute("INSERT INTO missing_table VALUES (1)")
        assert isinstance(sqlite_handle.last_error, StatementFailure)
        assert sqlite_handle.last_error.statement == "INSERT INTO missing_table VALUES (1)"
        assert sqlite_handle.query("SELECT * FROM missing_table") is None

        assert sqlite_handle.is_connected()
        assert sqlite_handle.execute("INSERT INTO items (name) VALUES ('after')")

    def test_ping(self, sqlite_handle) -> None:
        assert sqlite_handle.ping()

    def test_ping_fails_when_disconnected(self, sqlite_handle) -> None:
        sqlite_handle.disconnect()
        assert not sqlite_handle.ping()

    def test_statements_never_overlap(self, fake_handle, recording_driver) -> None:
        recording_driver.statement_delay = 0.001

        def worker(n: int) -> None:
            for i in range(25):
                fake_handle.execute(f"INSERT INTO t VALUES ({n}, {i})")
                fake_handle.query("SELECT 1")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert len(recording_driver.statements) == 8 * 25 * 2
        assert recording_driver.max_in_flight == 1

    def test_status(self, sqlite_handle) -> None:
        status = sqlite_handle.status()

        assert status['engine'] == "sqlite"
        assert status['connected'] is True
        assert status['last_error'] is None
        assert status['idle_seconds'] >= 0


class TestDialect:
    def test_sqlite_dialect(self, sqlite_handle) -> None:
        assert sqlite_handle.engine == DatabaseEngine.SQLITE
        assert sqlite_handle.string_comparer == "LIKE "
        assert sqlite_handle.update_limiter == ";"
        assert sqlite_handle.escape_string("it's") == "'it''s'"
        assert sqlite_handle.escape_binary(b"\xde\xad") == "X'dead'"

    def test_sqlite_escaped_value_round_trips(self, sqlite_handle) -> None:
        name = "O'Reilly; DROP TABLE items"
        assert sqlite_handle.execute(f"INSERT INTO items (name) VALUES ({sqlite_handle.escape_string(name)})")

        result = sqlite_handle.query(
            f"SELECT name FROM items WHERE name {sqlite_handle.string_comparer}'o''reilly%'"
        )
        assert result.get_string("name") == name

    def test_default_driver_dialect(self, fake_handle) -> None:
        assert fake_handle.engine == DatabaseEngine.NONE
        assert fake_handle.string_comparer == "= "
        assert fake_handle.update_limiter == " LIMIT 1;"
        assert fake_handle.last_inserted_id() == 0


class TestDriverFactory:
    def test_creates_driver_for_type(self) -> None:
        sqlite = DatabaseConfig(type=DatabaseType.SQLITE, path=":memory:")
        mysql = DatabaseConfig(type=DatabaseType.MYSQL, host="db", database="app", username="app")

        assert isinstance(DriverFactory.create_driver(sqlite), SQLiteDriver)
        assert isinstance(DriverFactory.create_driver(mysql), MySQLDriver)

    def test_supported_types(self) -> None:
        assert set(DriverFactory.get_supported_types()) == {DatabaseType.MYSQL, DatabaseType.SQLITE}

    def test_register_driver(self, monkeypatch) -> None:
        class CustomSQLiteDriver(SQLiteDriver):
            pass

        monkeypatch.setattr(DriverFactory, "_drivers", dict(DriverFactory._drivers))
        DriverFactory.register_driver(DatabaseType.SQLITE, CustomSQLiteDriver)

        config = DatabaseConfig(type=DatabaseType.SQLITE, path=":memory:")
        assert isinstance(DriverFactory.create_driver(config), CustomSQLiteDriver)
