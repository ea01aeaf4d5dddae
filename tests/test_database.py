"""
Database handle tests.

Connection, direct queries, prepared statements, error translation and
error logging, all against an in-memory SQLite database.
"""

import sqlite3
from unittest.mock import MagicMock

import pytest

from database_helper.errors import (
    BindError,
    ConnectionError,
    DatabaseError,
    NotConnectedError,
    NotPreparedError,
    QueryError,
)
from database_helper.infra.db import Database, PymssqlDriver, SqliteDriver, Statement


class TestConnect:
    """connect / adopt / close"""

    def test_from_config_connects(self) -> None:
        db = Database.from_config({"database": ":memory:"}, driver="sqlite")

        assert db.is_connected is True
        assert isinstance(db.driver, SqliteDriver)
        assert db.close() is True
        assert db.is_connected is False

    def test_connect_failure_raises_connection_error(self, tmp_path) -> None:
        missing = tmp_path / "missing" / "dir" / "test.db"
        db = Database(driver=SqliteDriver())

        with pytest.raises(ConnectionError) as exc:
            db.connect({"database": str(missing)})

        assert isinstance(exc.value, DatabaseError)
        assert isinstance(exc.value.__cause__, sqlite3.Error)
        assert db.is_connected is False

    def test_connect_failure_from_driver(self, fake_module) -> None:
        fake_module.connect.side_effect = fake_module.Error(18456, b"Login failed for user 'sa'.")
        db = Database(driver=PymssqlDriver(module=fake_module))

        with pytest.raises(ConnectionError) as exc:
            db.connect({"host": "db.local", "user": "sa", "password": "wrong"})

        assert exc.value.code == 18456

    def test_adopt_existing_connection(self) -> None:
        conn = sqlite3.connect(":memory:")
        db = Database.from_connection(conn)

        assert db.connection is conn
        assert isinstance(db.driver, SqliteDriver)
        assert db.run_direct("SELECT 1").fetchone()[0] == 1
        assert db.close() is True

    def test_set_connection_is_adopt(self, db: Database) -> None:
        other = sqlite3.connect(":memory:")
        db.set_connection(other)

        assert db.connection is other
        other.close()

    def test_close_twice_raises(self, db: Database) -> None:
        assert db.close() is True

        with pytest.raises(NotConnectedError):
            db.close()
        with pytest.raises(NotConnectedError):
            db.run_direct("SELECT 1")

    def test_close_reports_driver_failure(self, fake_module, mock_logger) -> None:
        conn = MagicMock()
        conn.close.side_effect = fake_module.Error("connection reset")
        db = Database.from_connection(conn, driver=SqliteDriver(module=fake_module), logger=mock_logger)

        assert db.close() is False
        assert db.is_connected is False
        assert mock_logger.error.call_count == 3

    def test_connect_after_adopt_leaves_external_open(self) -> None:
        external = sqlite3.connect(":memory:")
        db = Database.from_connection(external)
        statement = db.prepare("SELECT 1")

        db.connect({"database": ":memory:"})

        assert statement.closed is True
        assert db.connection is not external
        assert external.execute("SELECT 1").fetchone() == (1,)
        db.close()
        external.close()

    def test_adopt_replaces_owned_connection(self, db: Database) -> None:
        owned = db.connection
        statement = db.prepare("SELECT 1")
        other = sqlite3.connect(":memory:")

        db.adopt(other)

        assert statement.closed is True
        assert db.connection is other
        with pytest.raises(sqlite3.ProgrammingError):
            owned.execute("SELECT 1")
        other.close()

    def test_adopt_twice_leaves_first_open(self) -> None:
        first = sqlite3.connect(":memory:")
        second = sqlite3.connect(":memory:")
        db = Database.from_connection(first)

        db.adopt(second)

        assert first.execute("SELECT 1").fetchone() == (1,)
        first.close()
        second.close()

    def test_close_closes_connection_when_cursor_close_fails(self, fake_module, mock_logger) -> None:
        conn = MagicMock()
        conn.cursor.return_value.close.side_effect = fake_module.Error("cursor gone")
        db = Database.from_connection(conn, driver=SqliteDriver(module=fake_module), logger=mock_logger)
        db.prepare("SELECT 1")

        assert db.close() is False
        conn.close.assert_called_once_with()
        assert db.is_connected is False
        assert mock_logger.error.call_count == 3

    def test_context_manager_closes(self) -> None:
        with Database.from_config({}, driver="sqlite") as db:
            assert db.run_direct("SELECT 1").fetchone() == (1,)

        assert db.is_connected is False

    def test_unconnected_handle(self) -> None:
        db = Database()

        with pytest.raises(NotConnectedError):
            db.run_direct("SELECT 1")
        with pytest.raises(NotConnectedError):
            db.query("SELECT 1 FROM a WHERE id = ?", [1])
        with pytest.raises(NotConnectedError):
            _ = db.connection


class TestRunDirect:
    """run_direct"""

    def test_select_one(self, db: Database) -> None:
        result = db.run_direct("SELECT 1").fetchone()

        assert result[0] == 1

    def test_missing_table_raises_query_error(self, db: Database) -> None:
        with pytest.raises(QueryError) as exc:
            db.run_direct("SELECT 1 FROM a")

        assert exc.value.sql == "SELECT 1 FROM a"
        assert "SELECT 1 FROM a" in exc.value.message
        assert "no such table" in exc.value.message


class TestPreparedStatements:
    """prepare / execute / query / close_statement"""

    def test_query_with_parameter(self, table_a: Database) -> None:
        rows = table_a.query("SELECT * FROM a WHERE id = ?", [3]).fetchall()

        assert rows == [(3, "test3")]

    def test_query_returns_current_statement(self, table_a: Database) -> None:
        statement = table_a.query("SELECT * FROM a WHERE id = ?", [3])

        assert isinstance(statement, Statement)
        assert table_a.statement is statement
        assert statement.columns == ["id", "name"]

    def test_prepare_then_execute(self, table_a: Database) -> None:
        table_a.prepare("SELECT 1")
        table_a.execute()
        result = table_a.statement.fetchall()

        assert result == [(1,)]
        assert table_a.close_statement() is True

        table_a.prepare("SELECT * FROM a WHERE id = ?")
        table_a.execute([3])
        result = table_a.statement.fetchall()

        assert len(result) == 1
        assert result[0][0] == 3
        assert result[0][1] == "test3"

    def test_statement_can_be_reexecuted(self, table_a: Database) -> None:
        table_a.prepare("SELECT name FROM a WHERE id = ?")

        assert table_a.execute([1]).fetchone() == ("test1",)
        assert table_a.execute([2]).fetchone() == ("test2",)

    def test_prepare_replaces_statement(self, db: Database) -> None:
        first = db.prepare("SELECT 1")
        second = db.prepare("SELECT 2")

        assert first.closed is True
        assert db.statement is second

    def test_fetch_dicts(self, table_a: Database) -> None:
        rows = table_a.query("SELECT id, name FROM a WHERE id < ? ORDER BY id", [2]).fetch_dicts()

        assert rows == [{"id": 0, "name": "test0"}, {"id": 1, "name": "test1"}]

    def test_parameters_bound_as_text(self, db: Database) -> None:
        row = db.query("SELECT typeof(?), typeof(?), typeof(?), ?", [3, 1.5, None, True]).fetchone()

        assert row == ("text", "text", "null", "1")

    def test_execute_without_prepare(self, db: Database) -> None:
        with pytest.raises(NotPreparedError):
            db.execute([1])

    def test_execute_after_close_statement(self, db: Database) -> None:
        db.prepare("SELECT 1")
        db.close_statement()

        with pytest.raises(NotPreparedError):
            db.execute()

    def test_statement_accessor_without_prepare(self, db: Database) -> None:
        with pytest.raises(NotPreparedError):
            _ = db.statement

    def test_close_statement_without_statement(self, db: Database) -> None:
        assert db.close_statement() is True
        assert db.close_statement() is True

    def test_wrong_parameter_count_raises_bind_error(self, db: Database) -> None:
        db.prepare("SELECT ?, ?")

        with pytest.raises(BindError) as exc:
            db.execute([1])

        assert isinstance(exc.value, QueryError)
        assert exc.value.sql == "SELECT ?, ?"

    def test_close_statement_driver_failure(self, fake_module) -> None:
        conn = MagicMock()
        conn.cursor.return_value.close.side_effect = fake_module.Error("cursor gone")
        db = Database.from_connection(conn, driver=SqliteDriver(module=fake_module))
        db.prepare("SELECT 1")

        with pytest.raises(QueryError) as exc:
            db.close_statement()

        assert exc.value.sql == "SELECT 1"
        assert isinstance(exc.value.__cause__, fake_module.Error)

    def test_prepare_reports_failure_closing_previous(self, fake_module, mock_logger) -> None:
        conn = MagicMock()
        conn.cursor.return_value.close.side_effect = fake_module.Error("cursor gone")
        db = Database.from_connection(conn, driver=SqliteDriver(module=fake_module), logger=mock_logger)
        db.prepare("SELECT 1")

        with pytest.raises(QueryError):
            db.prepare("SELECT 2")

        assert mock_logger.error.call_count == 3

    def test_query_missing_table(self, db: Database) -> None:
        with pytest.raises(QueryError):
            db.query("SELECT 1 FROM a WHERE id = ?", [1])


class TestErrorLogging:
    """Errors reach the configured logger before propagating."""

    def test_run_direct_logs(self, db: Database, mock_logger) -> None:
        db.set_logger(mock_logger)

        with pytest.raises(QueryError):
            db.run_direct("SELECT 1 FROM a")

        assert mock_logger.error.call_count == 3
        messages = [call.args[0] for call in mock_logger.error.call_args_list]
        assert "SELECT 1 FROM a" in messages[0]
        assert messages[1] == "Trace:"
        assert "QueryError" in messages[2]

    def test_query_logs_once(self, db: Database, mock_logger) -> None:
        db.set_logger(mock_logger)

        with pytest.raises(QueryError):
            db.query("SELECT 1 FROM a WHERE id = ?", [1])

        assert mock_logger.error.call_count == 3

    def test_prepare_and_execute_logs(self, db: Database, mock_logger) -> None:
        db.set_logger(mock_logger)

        with pytest.raises(QueryError):
            db.prepare("SELECT 1 FROM a WHERE id = ?")
            db.execute([1])

        assert mock_logger.error.call_count == 3

    def test_execute_without_prepare_logs(self, db: Database, mock_logger) -> None:
        db.set_logger(mock_logger)

        with pytest.raises(NotPreparedError):
            db.execute([1])

        assert mock_logger.error.call_count == 3

    def test_no_logger_no_logging(self, db: Database, mock_logger) -> None:
        db.set_logger(mock_logger)
        db.set_logger(None)

        with pytest.raises(QueryError):
            db.run_direct("SELECT 1 FROM a")

        mock_logger.error.assert_not_called()

    def test_success_does_not_log(self, db: Database, mock_logger) -> None:
        db.set_logger(mock_logger)

        db.query("SELECT ?", [1])

        mock_logger.error.assert_not_called()
