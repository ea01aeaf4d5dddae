"""
Shared pytest fixtures.

Behavioural tests run against the standard library ``sqlite3`` driver
with an in-memory database, so no database server is needed.
"""

import logging
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from database_helper.infra.db import Database, SqliteDriver


@pytest.fixture
def db() -> Database:
    """Connected in-memory SQLite handle."""
    handle = Database.from_config({"database": ":memory:"}, driver=SqliteDriver())
    yield handle
    if handle.is_connected:
        handle.close()


@pytest.fixture
def table_a(db: Database) -> Database:
    """Handle with table ``a`` holding ids 0-9 named ``test<id>``."""
    db.run_direct("CREATE TABLE a (id INT, name VARCHAR(50))")
    for i in range(10):
        db.run_direct(f"INSERT INTO a VALUES ({i}, 'test{i}')")
    return db


@pytest.fixture
def mock_logger() -> MagicMock:
    return MagicMock(spec=logging.Logger)


class FakeDriverError(Exception):
    pass


class FakeProgrammingError(FakeDriverError):
    pass


class FakeInterfaceError(FakeDriverError):
    pass


@pytest.fixture
def fake_module() -> SimpleNamespace:
    """Stand-in for a DB-API module, for drivers that are not installed."""
    return SimpleNamespace(
        Error=FakeDriverError,
        ProgrammingError=FakeProgrammingError,
        InterfaceError=FakeInterfaceError,
        connect=MagicMock(name="connect"),
    )
