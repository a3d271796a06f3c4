"""
Async bulk operations and migrations.

Same planning and result merging as `bulksql.bulk`, for databases whose
`execute_sql_command` and `get_rows` are coroutines. All chunks of a call are
awaited together with `asyncio.gather`: results keep chunk order, the first
failure propagates, and sibling chunks already in flight are not cancelled.

`AsyncDatabaseAdapter` runs a synchronous database in worker threads so the
async API can be used with `SqlAlchemyDatabase` as well.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol, TypeVar, runtime_checkable

from bulksql.chunking import ChunkPlan, plan_bulk_execute, plan_bulk_insert
from bulksql.database import Database, get_count
from bulksql.exceptions import DispatchFailure
from bulksql.migrate import CREATE_MIGRATION_TABLE, SELECT_MIGRATION_IDS, Migration
from bulksql.migrate import _log_executed, insert_migration_statement
from bulksql.sql import BulkExecuteStatement, BulkInsertStatement, Statement

__all__ = [
    'AsyncDatabase',
    'AsyncDatabaseAdapter',
    'dispatch_chunks',
    'bulk_execute_command',
    'bulk_get_rows',
    'bulk_get_count',
    'bulk_insert_entities',
    'execute_statement',
    'query_statement',
    'migrate',
    'apply_migrations',
    ]

logger = logging.getLogger(__name__)

T = TypeVar('T')
D = TypeVar('D', bound='AsyncDatabase')


@runtime_checkable
class AsyncDatabase(Protocol):
    """Asynchronous database capability.

    Attributes
        max_variable_number: most bound parameters one statement may carry
    """
    max_variable_number: int

    async def execute_sql_command(self, statement: str, parameters: Sequence[Any]) -> None:
        """Execute a statement for its side effects."""

    async def get_rows(self, statement: str, parameters: Sequence[Any]) -> list[Any]:
        """Execute a query and return its rows in order."""


class AsyncDatabaseAdapter:
    """Expose a synchronous database through the async capability.

    Each dispatch runs in a worker thread via `asyncio.to_thread`.
    """

    def __init__(self, database: Database) -> None:
        self.database = database

    @property
    def max_variable_number(self) -> int:
        return self.database.max_variable_number

    async def execute_sql_command(self, statement: str, parameters: Sequence[Any] = ()) -> None:
        await asyncio.to_thread(self.database.execute_sql_command, statement, parameters)

    async def get_rows(self, statement: str, parameters: Sequence[Any] = ()) -> list[Any]:
        return await asyncio.to_thread(self.database.get_rows, statement, parameters)


async def dispatch_chunks(op: Callable[[str, list[Any]], Awaitable[T]], plan: ChunkPlan) -> list[T]:
    """Await `op` for every planned chunk concurrently; results in chunk order.
    """
    if not plan:
        return []
    return list(await asyncio.gather(*(op(text, parameters) for text, parameters in plan)))


async def bulk_execute_command(database: AsyncDatabase, statement: BulkExecuteStatement) -> None:
    """Execute a statement in as few round trips as the variable limit allows.
    """
    plan = plan_bulk_execute(statement, database.max_variable_number)
    await dispatch_chunks(database.execute_sql_command, plan)


async def bulk_get_rows(database: AsyncDatabase, statement: BulkExecuteStatement) -> list[Any]:
    """Query in chunks and return all rows, concatenated in chunk order.
    """
    plan = plan_bulk_execute(statement, database.max_variable_number)
    results = await dispatch_chunks(database.get_rows, plan)
    return [row for rows in results for row in rows]


async def bulk_get_count(database: AsyncDatabase, statement: BulkExecuteStatement) -> int:
    """Sum the `COUNT(*)` of every chunk of a count query.
    """
    plan = plan_bulk_execute(statement, database.max_variable_number)
    results = await dispatch_chunks(database.get_rows, plan)
    return sum(get_count(rows[0]) if rows else 0 for rows in results)


async def bulk_insert_entities(database: AsyncDatabase, entities: Sequence[Any],
                               statement: BulkInsertStatement) -> None:
    """Insert `entities` with as few multi-row INSERT statements as possible.
    """
    plan = plan_bulk_insert(statement, entities, database.max_variable_number)
    await dispatch_chunks(database.execute_sql_command, plan)


async def execute_statement(database: AsyncDatabase,
                            statement: Statement | BulkExecuteStatement | BulkInsertStatement,
                            entities: Sequence[Any] | None = None) -> None:
    """Execute any statement shape returned by `sql()`.
    """
    match statement:
        case BulkInsertStatement():
            if entities is None:
                raise TypeError('A bulk insert statement needs entities')
            await bulk_insert_entities(database, entities, statement)
        case _ if entities is not None:
            raise TypeError(f'Entities are only accepted with a bulk insert statement, got {type(statement).__name__}')
        case BulkExecuteStatement():
            await bulk_execute_command(database, statement)
        case Statement():
            await database.execute_sql_command(*statement)
        case _:
            raise TypeError(f'Unsupported statement type: {type(statement)}')


async def query_statement(database: AsyncDatabase,
                          statement: Statement | BulkExecuteStatement) -> list[Any]:
    """Return the rows of a plain or bulk query.
    """
    match statement:
        case BulkExecuteStatement():
            return await bulk_get_rows(database, statement)
        case Statement():
            return await database.get_rows(*statement)
        case _:
            raise TypeError(f'Cannot query a {type(statement).__name__}')


async def migrate(database: D, target_version: int,
                  get_current_version: Callable[[D], Awaitable[int]],
                  update_version: Callable[[D], Awaitable[Any]],
                  migration_map: Sequence[tuple[int, Callable[[D], Awaitable[Any]]]]) -> None:
    """Bring a database from its current version up to `target_version`.

    Steps run one after another; see `bulksql.migrate.migrate`.
    """
    current_version = await get_current_version(database)

    if current_version == target_version:
        logger.debug(f'Database already at version {target_version}')
        return

    for version, apply in migration_map:
        if version > target_version:
            break
        if current_version < version:
            await apply(database)
            logger.info(f'Applied migration to version {version}')

    await update_version(database)


async def default_get_executed_migration_ids(database: AsyncDatabase) -> list[str]:
    """Read executed migration ids, creating the tracking table on first use.
    """
    try:
        rows = await database.get_rows(*SELECT_MIGRATION_IDS)
    except DispatchFailure as err:
        logger.debug(f'Migration table not readable, creating it: {err}')
        await database.execute_sql_command(*CREATE_MIGRATION_TABLE)
        return []
    return [row['id'] for row in rows]


async def default_insert_migration_id(database: AsyncDatabase, id: str) -> None:
    """Record a migration id as executed.
    """
    await database.execute_sql_command(*insert_migration_statement(id))


async def apply_migrations(database: D, migrations: Sequence[Migration[D]],
                           target_id: str | None = None,
                           get_executed_migration_ids: Callable[[D], Awaitable[list[str]]] | None = None,
                           insert_migration_id: Callable[[D, str], Awaitable[Any]] | None = None) -> None:
    """Apply every migration that has not been executed yet, in list order.

    Migration `apply` callables are awaited; see
    `bulksql.migrate.apply_migrations` for the ordering rules.
    """
    get_ids = get_executed_migration_ids or default_get_executed_migration_ids
    insert_id = insert_migration_id or default_insert_migration_id

    executed_ids = await get_ids(database)
    _log_executed(executed_ids)

    for migration in migrations:
        if migration.id not in executed_ids:
            await migration.apply(database)
            await insert_id(database, migration.id)
            logger.info(f'Applied migration "{migration.id}".')

        if migration.id == target_id:
            break
