"""
Driver adapters.

The handle never talks to a database library directly.  It goes
through a ``Driver``, which knows how to open a connection for one
DB-API 2.0 module, how that module spells placeholders, how it reports
error codes and how it controls transactions.

Three adapters are provided:

* ``PyodbcDriver`` – SQL Server (or any ODBC source) through ``pyodbc``.
* ``PymssqlDriver`` – SQL Server through ``pymssql``.
* ``SqliteDriver`` – SQLite through the standard library ``sqlite3``.

Driver modules are imported lazily, so only the driver actually used
needs to be installed.  SQL handed to the handle always uses ``?``
placeholders; ``translate`` rewrites them for drivers with another
paramstyle.
"""

from __future__ import annotations

import abc
import enum
import importlib
import logging
from typing import Any, Callable, Dict, Optional, Tuple, Type

from ...config import settings
from ...config.env import ConnectionConfig, DEFAULT_ODBC_DRIVER

logger = logging.getLogger(__name__)

_BIND_ERROR_HINTS = ("binding", "parameter", "placeholder", "not all arguments", "not enough arguments")


class TransactionFlag(enum.IntFlag):
    """Flags accepted by the transaction methods of the handle.

    ``WITH_CONSISTENT_SNAPSHOT``, ``READ_WRITE`` and ``READ_ONLY`` apply
    when beginning.  ``AND_CHAIN`` applies to commit and rollback and
    opens a new transaction right after the current one ends.  Drivers
    ignore flags they cannot express.
    """

    NONE = 0
    WITH_CONSISTENT_SNAPSHOT = 1
    READ_WRITE = 2
    READ_ONLY = 4
    AND_CHAIN = 8


def translate_placeholders(sql: str, placeholder: str) -> str:
    """Replace ``?`` markers outside quoted literals with ``placeholder``.

    Literal ``%`` characters are doubled when the target paramstyle is
    ``%s`` based, since the driver interpolates the whole string.
    """
    pyformat = placeholder.startswith("%")
    out = []
    quote: Optional[str] = None
    for ch in sql:
        if quote is not None:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == "?":
            out.append(placeholder)
            continue
        if pyformat and ch == "%":
            out.append("%%")
            continue
        out.append(ch)
    return "".join(out)


class Driver(abc.ABC):
    """Base adapter over a DB-API 2.0 module."""

    name = "generic"
    module_name = ""
    package = ""
    placeholder = "?"

    def __init__(self, module: Any = None) -> None:
        self._module = module

    @property
    def module(self) -> Any:
        if self._module is None:
            try:
                self._module = importlib.import_module(self.module_name)
            except ImportError:
                raise ImportError(
                    f"{self.package} is not installed. Install it to use the {self.name} driver."
                ) from None
        return self._module

    @property
    def errors(self) -> Tuple[Type[BaseException], ...]:
        """Exception classes raised by the driver that the handle translates."""
        return (self.module.Error,)

    @abc.abstractmethod
    def connect(self, config: ConnectionConfig) -> Any:
        """Open a DB-API connection for ``config``."""

    def translate(self, sql: str) -> str:
        if self.placeholder == "?":
            return sql
        return translate_placeholders(sql, self.placeholder)

    def error_code(self, exc: BaseException) -> Any:
        args = getattr(exc, "args", ())
        if args and isinstance(args[0], int):
            return args[0]
        return None

    def is_bind_error(self, exc: BaseException) -> bool:
        """Whether ``exc`` reports a parameter binding problem."""
        kinds = tuple(
            getattr(self.module, name)
            for name in ("ProgrammingError", "InterfaceError")
            if hasattr(self.module, name)
        )
        if not kinds or not isinstance(exc, kinds):
            return False
        text = str(exc).lower()
        return any(hint in text for hint in _BIND_ERROR_HINTS)

    def run(self, conn: Any, sql: str) -> None:
        """Execute a statement whose result is not needed."""
        cursor = conn.cursor()
        try:
            cursor.execute(sql)
        finally:
            cursor.close()

    @abc.abstractmethod
    def begin(self, conn: Any, flags: TransactionFlag = TransactionFlag.NONE) -> None:
        """Start a transaction."""

    @abc.abstractmethod
    def commit(self, conn: Any, flags: TransactionFlag = TransactionFlag.NONE) -> None:
        """Commit, starting a new transaction when ``AND_CHAIN`` is set."""

    @abc.abstractmethod
    def rollback(self, conn: Any, flags: TransactionFlag = TransactionFlag.NONE) -> None:
        """Roll back, starting a new transaction when ``AND_CHAIN`` is set."""

    def savepoint(self, conn: Any, name: str) -> None:
        self.run(conn, f"SAVEPOINT {name}")

    def release(self, conn: Any, name: str) -> None:
        self.run(conn, f"RELEASE SAVEPOINT {name}")

    def rollback_to(self, conn: Any, name: str) -> None:
        self.run(conn, f"ROLLBACK TO SAVEPOINT {name}")

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class SqliteDriver(Driver):
    """SQLite through the standard library ``sqlite3`` module.

    Connections are opened in autocommit mode (``isolation_level=None``)
    so that transactions only start when ``begin`` is called.
    """

    name = "sqlite"
    module_name = "sqlite3"
    package = "sqlite3"

    def connect(self, config: ConnectionConfig) -> Any:
        database = config.database or ":memory:"
        logger.info("[db] sqlite connect", extra={"database": database})
        return self.module.connect(database, isolation_level=None)

    def error_code(self, exc: BaseException) -> Any:
        return getattr(exc, "sqlite_errorcode", None)

    def begin(self, conn: Any, flags: TransactionFlag = TransactionFlag.NONE) -> None:
        if flags & TransactionFlag.READ_WRITE:
            self.run(conn, "BEGIN IMMEDIATE")
        else:
            self.run(conn, "BEGIN DEFERRED")

    def commit(self, conn: Any, flags: TransactionFlag = TransactionFlag.NONE) -> None:
        self.run(conn, "COMMIT")
        if flags & TransactionFlag.AND_CHAIN:
            self.begin(conn)

    def rollback(self, conn: Any, flags: TransactionFlag = TransactionFlag.NONE) -> None:
        self.run(conn, "ROLLBACK")
        if flags & TransactionFlag.AND_CHAIN:
            self.begin(conn)


class _SqlServerDriver(Driver):
    """Transaction control shared by the SQL Server drivers.

    Connections run with autocommit on.  ``begin`` turns it off and
    finishing the transaction turns it back on, unless ``AND_CHAIN``
    asks for a new transaction straight away.
    """

    @abc.abstractmethod
    def _set_autocommit(self, conn: Any, value: bool) -> None:
        """Switch the connection's autocommit mode."""

    def begin(self, conn: Any, flags: TransactionFlag = TransactionFlag.NONE) -> None:
        self._set_autocommit(conn, False)

    def commit(self, conn: Any, flags: TransactionFlag = TransactionFlag.NONE) -> None:
        conn.commit()
        if not flags & TransactionFlag.AND_CHAIN:
            self._set_autocommit(conn, True)

    def rollback(self, conn: Any, flags: TransactionFlag = TransactionFlag.NONE) -> None:
        conn.rollback()
        if not flags & TransactionFlag.AND_CHAIN:
            self._set_autocommit(conn, True)

    def savepoint(self, conn: Any, name: str) -> None:
        self.run(conn, f"SAVE TRANSACTION {name}")

    def release(self, conn: Any, name: str) -> None:
        # SQL Server has no RELEASE; the savepoint ends with the transaction.
        return None

    def rollback_to(self, conn: Any, name: str) -> None:
        self.run(conn, f"ROLLBACK TRANSACTION {name}")


class PyodbcDriver(_SqlServerDriver):
    """SQL Server (or another ODBC source) through ``pyodbc``."""

    name = "pyodbc"
    module_name = "pyodbc"
    package = "pyodbc"

    def __init__(self, module: Any = None, odbc_driver: Optional[str] = None,
                 encrypt: bool = True, trust_server_certificate: bool = True) -> None:
        super().__init__(module)
        self.odbc_driver = odbc_driver or settings.DB_ODBC_DRIVER or DEFAULT_ODBC_DRIVER
        self.encrypt = encrypt
        self.trust_server_certificate = trust_server_certificate

    def connection_string(self, config: ConnectionConfig) -> str:
        parts = [f"DRIVER={{{self.odbc_driver}}};"]
        if config.host:
            server_expr = f"{config.host},{config.port}" if config.port else config.host
            parts.append(f"SERVER={server_expr};")
        if config.database:
            parts.append(f"DATABASE={config.database};")
        if config.user:
            parts.append(f"UID={config.user};")
        if config.password:
            parts.append(f"PWD={config.password};")
        parts.append(f"Encrypt={'yes' if self.encrypt else 'no'};")
        parts.append(f"TrustServerCertificate={'yes' if self.trust_server_certificate else 'no'};")
        return "".join(parts)

    def connect(self, config: ConnectionConfig) -> Any:
        logger.info("[db] pyodbc connect", extra={"host": config.host, "database": config.database})
        return self.module.connect(self.connection_string(config), autocommit=True)

    def error_code(self, exc: BaseException) -> Any:
        # pyodbc errors carry (sqlstate, message)
        args = getattr(exc, "args", ())
        if len(args) >= 2 and isinstance(args[0], str):
            return args[0]
        return super().error_code(exc)

    def _set_autocommit(self, conn: Any, value: bool) -> None:
        conn.autocommit = value


class PymssqlDriver(_SqlServerDriver):
    """SQL Server through ``pymssql`` (``%s`` placeholders)."""

    name = "pymssql"
    module_name = "pymssql"
    package = "pymssql"
    placeholder = "%s"

    def connect(self, config: ConnectionConfig) -> Any:
        logger.info("[db] pymssql connect", extra={"host": config.host, "database": config.database})
        return self.module.connect(
            server=config.host,
            user=config.user,
            password=config.password,
            database=config.database,
            port=str(config.port or 1433),
            autocommit=True,
        )

    def _set_autocommit(self, conn: Any, value: bool) -> None:
        conn.autocommit(value)


# Registry mapping driver names to callables that return a ``Driver``.
_registry: Dict[str, Callable[[], Driver]] = {
    'pyodbc': PyodbcDriver,
    'pymssql': PymssqlDriver,
    'sqlite': SqliteDriver,
    'sqlite3': SqliteDriver,
}


def get_driver(name: str) -> Driver:
    """Obtain a driver adapter by name.

    Args:
        name: ``'pyodbc'``, ``'pymssql'`` or ``'sqlite'``.

    Raises:
        KeyError: If the name is not registered.
    """
    try:
        factory = _registry[name.lower()]
    except KeyError:
        raise KeyError(f"No driver registered under name: {name}") from None
    return factory()


def driver_for_connection(connection: Any) -> Driver:
    """Guess the driver adapter for an already open connection.

    Falls back to the configured ``DB_DRIVER`` when the connection's
    module is not recognised.
    """
    module = type(connection).__module__ or ""
    root = module.split(".")[0].lstrip("_")
    if root == "sqlite3":
        return SqliteDriver()
    if root == "pyodbc":
        return PyodbcDriver()
    if root in ("pymssql", "mssql"):
        return PymssqlDriver()
    return get_driver(settings.DB_DRIVER)
