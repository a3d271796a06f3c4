"""
Bulk operations that split work to fit a database's variable limit.

Every entry point plans all chunks first (see `bulksql.chunking`), then
dispatches them concurrently on a thread pool and joins the results in chunk
order. The first failing chunk fails the call; chunks that already ran keep
their effects, there is no compensating rollback.
"""
import logging
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any, TypeVar

from bulksql.chunking import ChunkPlan, plan_bulk_execute, plan_bulk_insert
from bulksql.database import Database, get_count
from bulksql.sql import BulkExecuteStatement, BulkInsertStatement, Statement

__all__ = [
    'DEFAULT_MAX_WORKERS',
    'bulk_execute_command',
    'bulk_get_rows',
    'bulk_get_count',
    'bulk_insert_entities',
    'dispatch_chunks',
    'execute_statement',
    'query_statement',
    ]

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_MAX_WORKERS = 8


def _max_workers(database: Database, max_workers: int | None) -> int:
    if max_workers is not None:
        return max_workers
    return getattr(database, 'max_workers', None) or DEFAULT_MAX_WORKERS


def dispatch_chunks(op: Callable[[str, list[Any]], T], plan: ChunkPlan,
                    max_workers: int = DEFAULT_MAX_WORKERS) -> list[T]:
    """Run `op` for every planned chunk and collect results in chunk order.

    A single chunk runs on the calling thread. Otherwise chunks are submitted
    to a thread pool; on the first failure, chunks that have not started are
    cancelled and the error is re-raised unchanged.
    """
    if not plan:
        return []

    if len(plan) == 1:
        text, parameters = plan[0]
        return [op(text, parameters)]

    executor = ThreadPoolExecutor(max_workers=min(max_workers, len(plan)),
                                  thread_name_prefix='bulksql')
    try:
        futures = [executor.submit(op, text, parameters) for text, parameters in plan]
        done, _ = wait(futures, return_when=FIRST_EXCEPTION)
        for index, future in enumerate(futures):
            if future in done and future.exception() is not None:
                logger.debug(f'Chunk {index + 1}/{len(plan)} failed: {future.exception()}')
                raise future.exception()
        return [future.result() for future in futures]
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def bulk_execute_command(database: Database, statement: BulkExecuteStatement,
                         max_workers: int | None = None) -> None:
    """Execute a statement in as few round trips as the variable limit allows.

    Args:
        database: database capability
        statement: bulk statement, typically from `sql()` with a list value
        max_workers: concurrent dispatch limit, defaults to the database's
            `max_workers` or DEFAULT_MAX_WORKERS
    """
    plan = plan_bulk_execute(statement, database.max_variable_number)
    dispatch_chunks(database.execute_sql_command, plan, _max_workers(database, max_workers))


def bulk_get_rows(database: Database, statement: BulkExecuteStatement,
                  max_workers: int | None = None) -> list[Any]:
    """Query in chunks and return all rows, concatenated in chunk order.
    """
    plan = plan_bulk_execute(statement, database.max_variable_number)
    results = dispatch_chunks(database.get_rows, plan, _max_workers(database, max_workers))
    return [row for rows in results for row in rows]


def bulk_get_count(database: Database, statement: BulkExecuteStatement,
                   max_workers: int | None = None) -> int:
    """Sum the `COUNT(*)` of every chunk of a count query.

    Each chunk must return at most one row; a chunk without rows counts as 0.
    """
    plan = plan_bulk_execute(statement, database.max_variable_number)
    results = dispatch_chunks(database.get_rows, plan, _max_workers(database, max_workers))
    return sum(get_count(rows[0]) if rows else 0 for rows in results)


def bulk_insert_entities(database: Database, entities: Sequence[Any],
                         statement: BulkInsertStatement,
                         max_workers: int | None = None) -> None:
    """Insert `entities` with as few multi-row INSERT statements as possible.

    Args:
        database: database capability
        entities: rows to insert; left unchanged
        statement: insert statement whose single placeholder stands for one
            row tuple, e.g. `sql('INSERT INTO t (a, b) VALUES ({})', row_fn)`
        max_workers: concurrent dispatch limit
    """
    plan = plan_bulk_insert(statement, entities, database.max_variable_number)
    dispatch_chunks(database.execute_sql_command, plan, _max_workers(database, max_workers))


def execute_statement(database: Database,
                      statement: Statement | BulkExecuteStatement | BulkInsertStatement,
                      entities: Sequence[Any] | None = None,
                      max_workers: int | None = None) -> None:
    """Execute any statement shape returned by `sql()`.

    `entities` is required for a BulkInsertStatement and rejected otherwise.
    """
    match statement:
        case BulkInsertStatement():
            if entities is None:
                raise TypeError('A bulk insert statement needs entities')
            bulk_insert_entities(database, entities, statement, max_workers)
        case _ if entities is not None:
            raise TypeError(f'Entities are only accepted with a bulk insert statement, got {type(statement).__name__}')
        case BulkExecuteStatement():
            bulk_execute_command(database, statement, max_workers)
        case Statement():
            database.execute_sql_command(*statement)
        case _:
            raise TypeError(f'Unsupported statement type: {type(statement)}')


def query_statement(database: Database, statement: Statement | BulkExecuteStatement,
                    max_workers: int | None = None) -> list[Any]:
    """Return the rows of a plain or bulk query.
    """
    match statement:
        case BulkExecuteStatement():
            return bulk_get_rows(database, statement, max_workers)
        case Statement():
            return database.get_rows(*statement)
        case _:
            raise TypeError(f'Cannot query a {type(statement).__name__}')
