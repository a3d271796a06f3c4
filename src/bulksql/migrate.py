"""
Schema migration sequencing on top of the database capability.

Two styles are supported:
- `migrate()` compares a stored version number with a target and applies the
  numbered steps in between, then records the new version once.
- `apply_migrations()` applies named migrations that have not run yet and
  records each id as it goes, by default in a `_db_migration` table.
"""
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from bulksql.database import Database
from bulksql.exceptions import DispatchFailure
from bulksql.sql import Statement, sql

__all__ = [
    'MIGRATION_TABLE',
    'Migration',
    'migrate',
    'apply_migrations',
    'default_get_executed_migration_ids',
    'default_insert_migration_id',
    'create_migration_table',
    'insert_migration_statement',
    ]

logger = logging.getLogger(__name__)

D = TypeVar('D', bound=Database)

MIGRATION_TABLE = '_db_migration'

CREATE_MIGRATION_TABLE = sql(f"""
CREATE TABLE IF NOT EXISTS {MIGRATION_TABLE} (
    id VARCHAR NOT NULL,
    PRIMARY KEY (
        id
    )
)
""")

SELECT_MIGRATION_IDS = sql(f'SELECT id FROM {MIGRATION_TABLE}')


@dataclass(frozen=True)
class Migration(Generic[D]):
    """Named migration step."""
    id: str
    apply: Callable[[D], Any]


def migrate(database: D, target_version: int,
            get_current_version: Callable[[D], int],
            update_version: Callable[[D], Any],
            migration_map: Sequence[tuple[int, Callable[[D], Any]]]) -> None:
    """Bring a database from its current version up to `target_version`.

    Args:
        database: database capability
        target_version: version to reach
        get_current_version: reads the stored version
        update_version: stores the new version; called once after the steps
        migration_map: `(version, apply)` pairs in ascending version order
    """
    current_version = get_current_version(database)

    if current_version == target_version:
        logger.debug(f'Database already at version {target_version}')
        return

    for version, apply in migration_map:
        if version > target_version:
            break
        if current_version < version:
            apply(database)
            logger.info(f'Applied migration to version {version}')

    update_version(database)


def insert_migration_statement(id: str) -> Statement:
    """Statement recording one executed migration id."""
    return sql(f'INSERT INTO {MIGRATION_TABLE} (id) VALUES ({{}})', id)


def create_migration_table(database: Database) -> None:
    """Create the migration tracking table if it is missing.
    """
    database.execute_sql_command(*CREATE_MIGRATION_TABLE)


def default_get_executed_migration_ids(database: Database) -> list[str]:
    """Read executed migration ids, creating the tracking table on first use.
    """
    try:
        rows = database.get_rows(*SELECT_MIGRATION_IDS)
    except DispatchFailure as err:
        logger.debug(f'Migration table not readable, creating it: {err}')
        create_migration_table(database)
        return []
    return [row['id'] for row in rows]


def default_insert_migration_id(database: Database, id: str) -> None:
    """Record a migration id as executed.
    """
    database.execute_sql_command(*insert_migration_statement(id))


def _log_executed(executed_ids: list[str]) -> None:
    if not executed_ids:
        logger.info('No previously applied migrations.')
    else:
        logger.info(f'Previously applied {len(executed_ids)} migrations, last id="{executed_ids[-1]}".')


def apply_migrations(database: D, migrations: Sequence[Migration[D]],
                     target_id: str | None = None,
                     get_executed_migration_ids: Callable[[D], list[str]] | None = None,
                     insert_migration_id: Callable[[D, str], Any] | None = None) -> None:
    """Apply every migration that has not been executed yet, in list order.

    Args:
        database: database capability
        migrations: migrations in the order they must run
        target_id: stop after this migration, whether it ran now or before
        get_executed_migration_ids: reads executed ids, defaults to the
            `_db_migration` table
        insert_migration_id: records one executed id, defaults to the
            `_db_migration` table
    """
    get_ids = get_executed_migration_ids or default_get_executed_migration_ids
    insert_id = insert_migration_id or default_insert_migration_id

    executed_ids = get_ids(database)
    _log_executed(executed_ids)

    for migration in migrations:
        if migration.id not in executed_ids:
            migration.apply(database)
            insert_id(database, migration.id)
            logger.info(f'Applied migration "{migration.id}".')

        if migration.id == target_id:
            break
