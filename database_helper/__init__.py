"""
A thin convenience wrapper around DB-API SQL drivers.

``Database`` holds one driver connection and the current prepared
statement, binds ``?`` parameters positionally as text, and reports
driver failures as ``DatabaseError`` subclasses, optionally logging
them first.  See ``database_helper.infra.db`` for details.
"""

from .errors import (  # noqa: F401
    BindError,
    ConnectionError,
    DatabaseError,
    NotConnectedError,
    NotPreparedError,
    QueryError,
    TransactionError,
)
from .infra.db import Database, Statement, TransactionFlag, open_database  # noqa: F401
