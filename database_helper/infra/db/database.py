"""
The database handle.

``Database`` owns one driver connection and the most recently prepared
``Statement``.  Every substantive operation is delegated to the driver;
the handle adds ``?`` placeholder translation, positional binding of
parameters as text and translation of driver errors into
``DatabaseError`` subclasses.

Errors raised by ``run_direct``, ``prepare``, ``execute`` and ``query``
are reported to an optional error logger before they propagate.

Example usage::

    from database_helper.infra.db import Database

    db = Database.from_config({'host': 'db.local', 'user': 'app', 'database': 'app'})
    row = db.query("SELECT * FROM users WHERE id = ?", [3]).fetchone()
    db.close()

Handles are not safe to share between threads.  Use one handle per
thread or serialise access.
"""

from __future__ import annotations

import functools
import logging
import re
import traceback
from contextlib import contextmanager
from typing import Any, Iterator, List, Mapping, Optional, Sequence, Union

from ...config import settings
from ...config.env import ConnectionConfig
from ...errors import (
    BindError,
    ConnectionError,
    DatabaseError,
    NotConnectedError,
    NotPreparedError,
    QueryError,
    TransactionError,
)
from .drivers import Driver, TransactionFlag, driver_for_connection, get_driver

logger = logging.getLogger(__name__)

_SAVEPOINT_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _as_text(value: Any) -> Any:
    """Convert a parameter to the text form it is bound with."""
    if value is None or isinstance(value, (bytes, bytearray, str)):
        return value
    if isinstance(value, bool):
        return str(int(value))
    return str(value)


def _check_savepoint(name: str) -> None:
    if not _SAVEPOINT_NAME.match(name):
        raise ValueError(f"Invalid savepoint name: {name!r}")


def _logs_errors(method):
    """Report a ``DatabaseError`` to the handle's error logger, then re-raise."""

    @functools.wraps(method)
    def wrapper(self: "Database", *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except DatabaseError as e:
            self._log_error(e)
            raise

    return wrapper


class Statement:
    """A prepared statement and the cursor it runs on.

    Result retrieval is delegated to the driver cursor.
    """

    def __init__(self, sql: str, translated: str, cursor: Any) -> None:
        self.sql = sql
        self.translated = translated
        self.cursor = cursor
        self.closed = False

    def run(self, params: Sequence[Any]) -> None:
        if params:
            self.cursor.execute(self.translated, tuple(params))
        else:
            self.cursor.execute(self.sql)

    @property
    def rowcount(self) -> int:
        return self.cursor.rowcount

    @property
    def description(self) -> Any:
        return self.cursor.description

    @property
    def columns(self) -> List[str]:
        return [col[0] for col in self.cursor.description] if self.cursor.description else []

    def fetchone(self) -> Any:
        return self.cursor.fetchone()

    def fetchmany(self, size: Optional[int] = None) -> List[Any]:
        if size is None:
            return self.cursor.fetchmany()
        return self.cursor.fetchmany(size)

    def fetchall(self) -> List[Any]:
        return self.cursor.fetchall() or []

    def fetch_dicts(self) -> List[dict]:
        """Fetch the remaining rows as column-name mappings."""
        columns = self.columns
        return [dict(zip(columns, row)) for row in self.fetchall()] if columns else []

    def __iter__(self) -> Iterator[Any]:
        return iter(self.cursor)

    def close(self) -> bool:
        if not self.closed:
            self.cursor.close()
            self.closed = True
        return True

    def __repr__(self) -> str:
        return f"<Statement {self.sql!r}{' closed' if self.closed else ''}>"


class Database:
    """Handle around one driver connection.

    Args:
        driver: Driver adapter or driver name.  Defaults to the configured
            ``DB_DRIVER`` (or is guessed from an adopted connection).
        logger: Optional logger receiving error reports.  Nothing is
            reported when unset.
    """

    def __init__(self, driver: Union[Driver, str, None] = None,
                 logger: Optional[logging.Logger] = None) -> None:
        if isinstance(driver, str):
            driver = get_driver(driver)
        self._driver: Optional[Driver] = driver
        self._logger = logger
        self._connection: Any = None
        self._statement: Optional[Statement] = None
        self._in_transaction = False
        self._owns_connection = False

    @classmethod
    def from_config(cls, config: Union[ConnectionConfig, Mapping[str, Any]],
                    driver: Union[Driver, str, None] = None,
                    logger: Optional[logging.Logger] = None) -> "Database":
        """Create a handle and connect it using ``config``.

        ``config`` may use the keys ``host``, ``user``, ``password``,
        ``database`` and ``port``.  All of them are optional.
        """
        db = cls(driver, logger)
        db.connect(config)
        return db

    @classmethod
    def from_connection(cls, connection: Any, driver: Union[Driver, str, None] = None,
                        logger: Optional[logging.Logger] = None) -> "Database":
        """Create a handle around an already open connection."""
        db = cls(driver, logger)
        db.adopt(connection)
        return db

    # ------------------------------------------------------------------
    # state
    # ------------------------------------------------------------------

    @property
    def driver(self) -> Driver:
        if self._driver is None:
            self._driver = get_driver(settings.DB_DRIVER)
        return self._driver

    @property
    def connection(self) -> Any:
        """The driver connection."""
        if self._connection is None:
            raise NotConnectedError()
        return self._connection

    @property
    def statement(self) -> Statement:
        """The latest prepared statement."""
        if self._statement is None:
            raise NotPreparedError()
        return self._statement

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    def set_logger(self, logger: Optional[logging.Logger]) -> None:
        """Set the logger for error reports.  ``None`` disables reporting."""
        self._logger = logger

    def _log_error(self, e: DatabaseError) -> None:
        if self._logger is not None:
            self._logger.error(str(e))
            self._logger.error("Trace:")
            self._logger.error("".join(traceback.format_exception(type(e), e, e.__traceback__)).rstrip())

    # ------------------------------------------------------------------
    # connection
    # ------------------------------------------------------------------

    def connect(self, config: Union[ConnectionConfig, Mapping[str, Any], None] = None) -> "Database":
        """Open a driver connection.

        Raises:
            ConnectionError: If the driver cannot connect.
        """
        if config is None:
            config = ConnectionConfig()
        elif not isinstance(config, ConnectionConfig):
            config = ConnectionConfig.from_mapping(config)
        if self._connection is not None:
            if self._owns_connection:
                self.close()
            else:
                self._detach()
        driver = self.driver
        try:
            self._connection = driver.connect(config)
        except driver.errors as exc:
            raise ConnectionError(str(exc), driver.error_code(exc)) from exc
        self._owns_connection = True
        logger.info("[db] connected", extra={"driver": driver.name, "host": config.host, "database": config.database})
        return self

    def adopt(self, connection: Any) -> "Database":
        """Use an already open connection.

        The handle does not take ownership: a later ``connect`` or
        ``adopt`` leaves it open.  ``close`` still closes it.
        """
        if self._connection is not None:
            if self._owns_connection and self._connection is not connection:
                self.close()
            else:
                self._detach()
        if self._driver is None:
            self._driver = driver_for_connection(connection)
        self._connection = connection
        self._owns_connection = False
        return self

    set_connection = adopt

    def _detach(self) -> None:
        """Forget the current connection without closing it."""
        try:
            self.close_statement()
        finally:
            self._connection = None
            self._statement = None
            self._in_transaction = False
            self._owns_connection = False

    def close(self) -> bool:
        """Close the current statement and the connection.

        Returns:
            ``True`` on success, ``False`` if the driver failed to close
            either of them.
        """
        conn = self.connection
        driver = self.driver
        ok = True
        try:
            self.close_statement()
        except DatabaseError as e:
            self._log_error(e)
            ok = False
        try:
            conn.close()
        except driver.errors as exc:
            self._log_error(DatabaseError(f"Error closing connection: {exc}", driver.error_code(exc)))
            ok = False
        finally:
            self._connection = None
            self._statement = None
            self._in_transaction = False
            self._owns_connection = False
        if ok:
            logger.info("[db] closed", extra={"driver": driver.name})
        return ok

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._connection is not None:
            self.close()

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    @_logs_errors
    def run_direct(self, sql: str) -> Any:
        """Run a query and return the driver cursor.

        DON'T use this method if the query includes user input.  Nothing
        is escaped.  Use ``query`` instead.

        Raises:
            NotConnectedError: If no connection is set.
            QueryError: If the driver reports a failure.
        """
        conn = self.connection
        driver = self.driver
        try:
            cursor = conn.cursor()
            cursor.execute(sql)
        except driver.errors as exc:
            raise QueryError(
                f"Error running query: '{sql}'. Driver error: {exc}",
                driver.error_code(exc),
                sql,
            ) from exc
        return cursor

    @_logs_errors
    def prepare(self, sql: str) -> Statement:
        """Prepare ``sql`` (with ``?`` placeholders) as the current statement.

        Raises:
            NotConnectedError: If no connection is set.
            QueryError: If the driver rejects the statement.
        """
        return self._prepare(sql)

    def _prepare(self, sql: str) -> Statement:
        conn = self.connection
        driver = self.driver
        self.close_statement()
        try:
            cursor = conn.cursor()
        except driver.errors as exc:
            raise QueryError(
                f"Error preparing query: '{sql}'. Driver error: {exc}",
                driver.error_code(exc),
                sql,
            ) from exc
        self._statement = Statement(sql, driver.translate(sql), cursor)
        return self._statement

    @_logs_errors
    def execute(self, params: Sequence[Any] = ()) -> Statement:
        """Execute the current statement with positional ``params``.

        Every parameter except ``None`` is bound as text.

        Raises:
            NotPreparedError: If nothing has been prepared.
            BindError: If the parameters do not fit the statement.
            QueryError: If the driver reports any other failure.
        """
        return self._execute(params)

    def _execute(self, params: Sequence[Any] = ()) -> Statement:
        if self._statement is None or self._statement.closed:
            raise NotPreparedError()
        statement = self._statement
        driver = self.driver
        values = [_as_text(p) for p in params]
        try:
            statement.run(values)
        except driver.errors as exc:
            if driver.is_bind_error(exc):
                raise BindError(
                    f"Failed to bind parameters: {values!r}. Driver error: {exc}",
                    driver.error_code(exc),
                    statement.sql,
                ) from exc
            raise QueryError(
                f"Failed execution of query '{statement.sql}' with params: {values!r}. Driver error: {exc}",
                driver.error_code(exc),
                statement.sql,
            ) from exc
        return statement

    @_logs_errors
    def query(self, sql: str, params: Sequence[Any] = ()) -> Statement:
        """Prepare ``sql`` and execute it with ``params``.

        Returns the statement so results can be fetched from it.
        """
        self._prepare(sql)
        return self._execute(params)

    def close_statement(self) -> bool:
        """Close the current statement.  Succeeds when nothing is prepared.

        Raises:
            QueryError: If the driver fails to close the cursor.
        """
        if self._statement is None:
            return True
        statement, self._statement = self._statement, None
        driver = self.driver
        try:
            return statement.close()
        except driver.errors as exc:
            raise QueryError(
                f"Error closing statement: '{statement.sql}'. Driver error: {exc}",
                driver.error_code(exc),
                statement.sql,
            ) from exc

    # ------------------------------------------------------------------
    # transactions
    # ------------------------------------------------------------------

    def begin_transaction(self, flags: TransactionFlag = TransactionFlag.NONE,
                          name: Optional[str] = None) -> bool:
        """Start a transaction, or set savepoint ``name`` inside the open one."""
        if name is not None:
            _check_savepoint(name)
        conn = self.connection
        driver = self.driver
        try:
            if name is None or not self._in_transaction:
                driver.begin(conn, flags)
                self._in_transaction = True
            if name is not None:
                driver.savepoint(conn, name)
        except driver.errors as exc:
            raise TransactionError(f"Failed to begin transaction: {exc}", driver.error_code(exc)) from exc
        return True

    def commit(self, flags: TransactionFlag = TransactionFlag.NONE, name: Optional[str] = None) -> bool:
        """Commit the open transaction, or release savepoint ``name``."""
        if name is not None:
            _check_savepoint(name)
        conn = self.connection
        driver = self.driver
        try:
            if name is not None:
                driver.release(conn, name)
            else:
                driver.commit(conn, flags)
                self._in_transaction = bool(flags & TransactionFlag.AND_CHAIN)
        except driver.errors as exc:
            raise TransactionError(f"Failed to commit transaction: {exc}", driver.error_code(exc)) from exc
        return True

    def rollback(self, flags: TransactionFlag = TransactionFlag.NONE, name: Optional[str] = None) -> bool:
        """Roll back the open transaction, or back to savepoint ``name``."""
        if name is not None:
            _check_savepoint(name)
        conn = self.connection
        driver = self.driver
        try:
            if name is not None:
                driver.rollback_to(conn, name)
            else:
                driver.rollback(conn, flags)
                self._in_transaction = bool(flags & TransactionFlag.AND_CHAIN)
        except driver.errors as exc:
            raise TransactionError(f"Failed to roll back transaction: {exc}", driver.error_code(exc)) from exc
        return True

    @contextmanager
    def transaction(self, flags: TransactionFlag = TransactionFlag.NONE) -> Iterator["Database"]:
        """Commit on success, roll back and re-raise on exception.

        ```python
        with db.transaction():
            db.query("INSERT INTO t VALUES (?)", [1])
        ```
        """
        self.begin_transaction(flags)
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        self.commit()

    def __repr__(self) -> str:
        state = "connected" if self.is_connected else "unconnected"
        return f"<Database {self.driver.name if self._driver else '?'} {state}>"
