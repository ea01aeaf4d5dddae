"""
Exception hierarchy for the database handle.

Every failure reported by the underlying driver is re-raised as a
``DatabaseError`` (or one of its subclasses) carrying the driver's
message and error code.  The original driver exception is kept as
``__cause__``.
"""

from __future__ import annotations

from typing import Optional, Union

ErrorCode = Union[int, str, None]


class DatabaseError(Exception):
    """Base class for all database-related exceptions."""

    def __init__(self, message: str, code: ErrorCode = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    def __str__(self) -> str:
        if self.code is None:
            return self.message
        return f"{self.message} (code: {self.code})"


class ConnectionError(DatabaseError):
    """Raised when the driver cannot open a connection."""


class NotConnectedError(DatabaseError):
    """Raised when an operation needs a connection and none is set."""

    def __init__(self, message: str = "Database connection not set.", code: ErrorCode = None) -> None:
        super().__init__(message, code)


class QueryError(DatabaseError):
    """Raised when running or preparing a query fails."""

    def __init__(self, message: str, code: ErrorCode = None, sql: Optional[str] = None) -> None:
        super().__init__(message, code)
        self.sql = sql


class BindError(QueryError):
    """Raised when parameters cannot be bound to a prepared statement."""


class NotPreparedError(DatabaseError):
    """Raised when ``execute`` is called before ``prepare``."""

    def __init__(self, message: str = "You must prepare a query first!", code: ErrorCode = None) -> None:
        super().__init__(message, code)


class TransactionError(DatabaseError):
    """Raised when beginning, committing or rolling back fails."""
