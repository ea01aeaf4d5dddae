"""
Database handle and driver adapters.

``Database`` wraps a single DB-API connection opened through one of the
``Driver`` adapters (``pyodbc``, ``pymssql`` or ``sqlite3``).  It exposes
``run_direct``, ``prepare``/``execute``/``query`` and transaction
control, and raises ``database_helper.errors.DatabaseError`` subclasses
for driver failures.
"""

from .database import Database, Statement  # noqa: F401
from .drivers import (  # noqa: F401
    Driver,
    PymssqlDriver,
    PyodbcDriver,
    SqliteDriver,
    TransactionFlag,
    get_driver,
)
from .connection_factory import open_database  # noqa: F401
