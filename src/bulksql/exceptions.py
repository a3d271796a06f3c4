"""
Exception classes for statement composition and bulk dispatch.
"""
import sqlite3

import psycopg
import sqlalchemy.exc


class BulkSqlError(Exception):
    """Base class for all bulksql errors.
    """


class PlaceholderMismatch(BulkSqlError):
    """Statement placeholders do not match the parameters bound to them.
    """

    def __init__(self, message: str, expected: int | None = None,
                 actual: int | None = None) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class AmbiguousBulkShape(BulkSqlError):
    """Template values cannot be classified into a single statement shape.
    """


class ChunkSizeError(BulkSqlError):
    """Variable limit of the database is too small to fit a single chunk.
    """


DispatchFailure = (
    sqlite3.DatabaseError,
    psycopg.Error,
    sqlalchemy.exc.DBAPIError,
    )
