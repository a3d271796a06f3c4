"""
Base strategy interface for dialect-specific behavior.

Each strategy captures what the bulk engines and the SQLAlchemy adapter need
to know about one backend: how to reach it, how its driver spells a bound
parameter, and how many parameters one statement may carry.
"""
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from bulksql.placeholders import standardize_placeholders

if TYPE_CHECKING:
    from bulksql.options import DatabaseOptions

# Registry of dialect name -> strategy class
# Defined here to avoid circular imports (concrete strategies import from base)
_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}


def register_strategy(dialect: str):
    """Decorator to register a strategy class for a dialect.

    Usage:
        @register_strategy('postgresql')
        class PostgresStrategy(DatabaseStrategy):
            ...
    """
    def decorator(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return decorator


class DatabaseStrategy(ABC):
    """Base class for dialect-specific behavior.
    """

    #: Bound-parameter ceiling used when options do not set one
    max_variable_number: int = 999

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the dialect identifier."""

    @abstractmethod
    def build_connection_url(self, options: 'DatabaseOptions') -> str:
        """Build the SQLAlchemy connection URL.

        Args:
            options: connection options

        Returns
            URL string accepted by `sqlalchemy.create_engine`
        """

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return extra SQLAlchemy create_engine kwargs for this dialect."""
        return {}

    def uses_single_connection(self, options: 'DatabaseOptions') -> bool:
        """Whether all dispatches go through one private connection in turn."""
        return False

    @classmethod
    @abstractmethod
    def get_required_options(cls) -> list[str]:
        """Return list of required option field names for this dialect.

        Returns
            List of field names that must have non-None/non-zero values
        """

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Validate options for this dialect.

        Args:
            options: DatabaseOptions to validate

        Raises
            ValueError: If any required field is None or 0
        """
        for field in cls.get_required_options():
            if not getattr(options, field):
                raise ValueError(f'field {field} cannot be None or 0')

    def standardize_sql(self, sql: str) -> str:
        """Translate `?` placeholders into the driver paramstyle."""
        return standardize_placeholders(sql, self.dialect_name)
