"""
SQLite-specific strategy implementation.

SQLite binds `?` parameters natively. Its default SQLITE_MAX_VARIABLE_NUMBER
is 999 for builds before 3.32.0 and 32766 afterwards; the lower value is used
unless options raise it.
"""
import logging
from typing import TYPE_CHECKING, Any

from bulksql.strategy.base import DatabaseStrategy, register_strategy
from sqlalchemy.pool import StaticPool

if TYPE_CHECKING:
    from bulksql.options import DatabaseOptions

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ':memory:'


@register_strategy('sqlite')
class SQLiteStrategy(DatabaseStrategy):
    """SQLite-specific behavior.
    """

    max_variable_number = 999

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for SQLite."""
        return 'sqlite'

    def build_connection_url(self, options: 'DatabaseOptions') -> str:
        """Build the SQLAlchemy connection URL for SQLite."""
        return f'sqlite:///{options.database}'

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for SQLite.

        An in-memory database lives inside one connection, so every dispatch
        has to reuse it.
        """
        if options.database == MEMORY_DATABASE:
            logger.debug('Using a single shared connection for in-memory SQLite')
            return {
                'poolclass': StaticPool,
                'connect_args': {'check_same_thread': False},
                }
        return {}

    def uses_single_connection(self, options: 'DatabaseOptions') -> bool:
        """In-memory databases share one connection across threads."""
        return options.database == MEMORY_DATABASE

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for SQLite connections."""
        return ['database']
