"""
SQL statement composition and bulk dispatch for PostgreSQL and SQLite.

Statements are built with `sql()`; the shape it returns decides how they run:
- Statement: one round trip, `db.execute_sql_command(*statement)`
- BulkExecuteStatement: split to fit the variable limit, `execute_statement()`
  or `query_statement()`
- BulkInsertStatement: multi-row INSERT in chunks, `execute_statement(db, stmt, rows)`

The async variants live in `bulksql.aio`.
"""
__version__ = '0.1.0'

from bulksql.bulk import bulk_execute_command, bulk_get_count, bulk_get_rows
from bulksql.bulk import bulk_insert_entities, execute_statement
from bulksql.bulk import query_statement
from bulksql.connection import SqlAlchemyDatabase, connect, dispose_all_engines
from bulksql.database import COUNT_PROPERTY_NAME, Database, get_count
from bulksql.exceptions import AmbiguousBulkShape, BulkSqlError, ChunkSizeError
from bulksql.exceptions import DispatchFailure, PlaceholderMismatch
from bulksql.migrate import Migration, apply_migrations, migrate
from bulksql.options import DatabaseOptions
from bulksql.placeholders import count_placeholders, ensure_placeholder_count
from bulksql.placeholders import locate_nth_placeholder, make_placeholders
from bulksql.sql import BulkExecuteStatement, BulkInsertStatement, SqlLiteral
from bulksql.sql import Statement, StatementKind, sql, sql_literal

__all__ = [
    # Composition
    'sql',
    'sql_literal',
    'SqlLiteral',
    'Statement',
    'BulkExecuteStatement',
    'BulkInsertStatement',
    'StatementKind',
    # Placeholders
    'count_placeholders',
    'locate_nth_placeholder',
    'ensure_placeholder_count',
    'make_placeholders',
    # Bulk engines
    'bulk_execute_command',
    'bulk_get_rows',
    'bulk_get_count',
    'bulk_insert_entities',
    'execute_statement',
    'query_statement',
    # Database
    'Database',
    'COUNT_PROPERTY_NAME',
    'get_count',
    'DatabaseOptions',
    'SqlAlchemyDatabase',
    'connect',
    'dispose_all_engines',
    # Migrations
    'Migration',
    'migrate',
    'apply_migrations',
    # Exceptions
    'BulkSqlError',
    'PlaceholderMismatch',
    'AmbiguousBulkShape',
    'ChunkSizeError',
    'DispatchFailure',
    ]
