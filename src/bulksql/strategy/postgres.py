"""
PostgreSQL-specific strategy implementation.

psycopg binds `%s` parameters, so statements are translated before dispatch
and literal percent signs are doubled. The wire protocol caps a statement at
65535 bound parameters.
"""
from typing import TYPE_CHECKING

from bulksql.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from bulksql.options import DatabaseOptions


@register_strategy('postgresql')
class PostgresStrategy(DatabaseStrategy):
    """PostgreSQL-specific behavior.
    """

    max_variable_number = 65535

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for PostgreSQL."""
        return 'postgresql'

    def build_connection_url(self, options: 'DatabaseOptions') -> str:
        """Build the SQLAlchemy connection URL for PostgreSQL."""
        query_parts = []
        if options.timeout:
            query_parts.append(f'connect_timeout={options.timeout}')
        if options.appname:
            query_parts.append(f'application_name={options.appname}')

        url = (f'postgresql+psycopg://{options.username}:{options.password}'
               f'@{options.hostname}:{options.port}/{options.database}')

        if query_parts:
            url += '?' + '&'.join(query_parts)

        return url

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for PostgreSQL connections."""
        return ['hostname', 'username', 'password', 'database', 'port']
