"""
Database capability consumed by the bulk engines and the migration sequencer.

Anything exposing these members works: the SQLAlchemy adapter in
`bulksql.connection`, a test double, or an application's own wrapper.
"""
from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

COUNT_PROPERTY_NAME = 'COUNT(*)'


@runtime_checkable
class Database(Protocol):
    """Synchronous database capability.

    Attributes
        max_variable_number: most bound parameters one statement may carry
    """
    max_variable_number: int

    def execute_sql_command(self, statement: str, parameters: Sequence[Any]) -> None:
        """Execute a statement for its side effects."""

    def get_rows(self, statement: str, parameters: Sequence[Any]) -> list[Any]:
        """Execute a query and return its rows in order."""


def get_count(row: Any) -> int:
    """Read the `COUNT(*)` column of a count row.
    """
    return int(row[COUNT_PROPERTY_NAME])
