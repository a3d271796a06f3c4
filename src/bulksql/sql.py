"""
Statement composition.

`sql()` turns literal segments interleaved with values into one of three
statement shapes:

    template + values → classify each value → splice text, flatten parameters
                                                          ↓
                Statement | BulkExecuteStatement | BulkInsertStatement

Which shape comes back depends only on the values supplied:
- a list or tuple value becomes the bulk group of a `BulkExecuteStatement`
- a callable in the last slot makes a `BulkInsertStatement`
- anything else yields a plain `Statement`

Templates are written either as one string with `{}` markers or as an explicit
sequence of literal segments:

    sql('SELECT * FROM item WHERE owner = {} AND id IN ({})', owner, ids)
    sql(['SELECT * FROM item WHERE owner = ', ''], owner)

In a string template `{{}}` stands for a literal `{}`, e.g. an empty array:

    sql("UPDATE item SET tags = '{{}}'::text[] WHERE id = {}", id)

Segment lists are taken verbatim and need no escaping.

On Python 3.14 a template string literal works as well: sql(t'... {owner}').
"""
import re
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, ClassVar

from bulksql.exceptions import AmbiguousBulkShape
from bulksql.placeholders import PLACEHOLDER

from libb import issequence

__all__ = [
    'StatementKind',
    'SqlLiteral',
    'Statement',
    'BulkExecuteStatement',
    'BulkInsertStatement',
    'sql',
    'sql_literal',
    'split_template',
    ]

TEMPLATE_MARKER = '{}'
ESCAPED_MARKER = '{{}}'
_MARKER_RE = re.compile(r'(?<!\{)\{\}(?!\})')


class StatementKind(Enum):
    """Shape of a compiled statement."""
    STATEMENT = auto()
    BULK_EXECUTE = auto()
    BULK_INSERT = auto()


@dataclass(frozen=True, slots=True)
class SqlLiteral:
    """Text spliced into a statement as SQL syntax, never bound.

    Bypasses parameterization; the caller is responsible for its safety.
    """
    value: str


def sql_literal(value: str) -> SqlLiteral:
    """Mark `value` for verbatim insertion into a statement.
    """
    return SqlLiteral(value)


@dataclass(frozen=True, slots=True)
class Statement:
    """Statement text with one bound parameter per placeholder.

    Unpacks as `(text, parameters)` so it can be passed straight to a
    database: `database.execute_sql_command(*statement)`.
    """
    text: str
    parameters: tuple = ()
    kind: ClassVar[StatementKind] = StatementKind.STATEMENT

    def __post_init__(self) -> None:
        object.__setattr__(self, 'parameters', tuple(self.parameters))

    def __iter__(self) -> Iterator[Any]:
        yield self.text
        yield list(self.parameters)


@dataclass(frozen=True, slots=True)
class BulkExecuteStatement:
    """Statement whose bulk slot is filled by a variable-length group.

    The text holds `len(parameters) + 1` placeholders. The one at
    `bulk_parameter_index` (0-based, left to right) stands for all of
    `bulk_parameters`; `parameters` fill the remaining placeholders in order.
    When no index is given the bulk slot is the last placeholder.
    """
    text: str
    parameters: tuple = ()
    bulk_parameters: tuple = ()
    bulk_parameter_index: int | None = None
    kind: ClassVar[StatementKind] = StatementKind.BULK_EXECUTE

    def __post_init__(self) -> None:
        object.__setattr__(self, 'parameters', tuple(self.parameters))
        object.__setattr__(self, 'bulk_parameters', tuple(self.bulk_parameters))
        if self.bulk_parameter_index is None:
            object.__setattr__(self, 'bulk_parameter_index', len(self.parameters))
        if not 0 <= self.bulk_parameter_index <= len(self.parameters):
            raise ValueError(
                f'bulk_parameter_index {self.bulk_parameter_index} outside 0..{len(self.parameters)}')

    @property
    def leading_parameters(self) -> tuple:
        """Fixed parameters bound before the bulk slot."""
        return self.parameters[:self.bulk_parameter_index]

    @property
    def trailing_parameters(self) -> tuple:
        """Fixed parameters bound after the bulk slot."""
        return self.parameters[self.bulk_parameter_index:]

    def flatten(self) -> list[Any]:
        """Parameters in placeholder order with the bulk group as one item."""
        return [*self.leading_parameters, list(self.bulk_parameters),
                *self.trailing_parameters]


@dataclass(frozen=True, slots=True)
class BulkInsertStatement:
    """Multi-row insert whose single placeholder stands for one row tuple.

    `get_parameters(row)` returns the values of one row; every row must yield
    the same number of values.
    """
    text: str
    get_parameters: Callable[[Any], Sequence[Any]] = field(repr=False)
    kind: ClassVar[StatementKind] = StatementKind.BULK_INSERT

    def __iter__(self) -> Iterator[Any]:
        yield self.text
        yield self.get_parameters


def split_template(template: Any) -> tuple[list[str], list[Any] | None]:
    """Split a template into literal segments.

    Returns the segments and, for Python 3.14 template strings, the
    interpolated values (otherwise None).
    """
    if isinstance(template, str):
        segments = _MARKER_RE.split(template)
        return [s.replace(ESCAPED_MARKER, TEMPLATE_MARKER) for s in segments], None

    if hasattr(template, 'strings') and hasattr(template, 'interpolations'):
        values = [interpolation.value for interpolation in template.interpolations]
        return list(template.strings), values

    if issequence(template) and all(isinstance(s, str) for s in template):
        return list(template), None

    raise TypeError(f'Unsupported template type: {type(template)}')


def _is_bulk_group(value: Any) -> bool:
    return issequence(value) and not isinstance(value, str | bytes | bytearray)


def _is_row_function(value: Any) -> bool:
    return callable(value) and not isinstance(value, type)


def sql(template: Any, *values: Any) -> Statement | BulkExecuteStatement | BulkInsertStatement:
    """Compile a template and its values into a statement.

    Parameters
        template: string with `{}` markers, sequence of literal segments, or a
            template string literal
        values: one value per gap between literal segments

    Returns
        Statement, BulkExecuteStatement or BulkInsertStatement

    Raises
        ValueError: segment count does not match the value count
        AmbiguousBulkShape: values mix more than one bulk group or row function
        TypeError: a BulkInsertStatement or a bare `(text, parameters)` pair is
            nested into another template
    """
    segments, template_values = split_template(template)
    if template_values is not None:
        if values:
            raise ValueError('Template strings carry their own values')
        values = tuple(template_values)

    if len(segments) != len(values) + 1:
        raise ValueError(
            f'Template has {len(segments) - 1} slots but {len(values)} values were given')

    parts: list[str] = []
    parameters: list[Any] = []

    for segment, value in zip(segments, values):
        parts.append(segment)
        match value:
            case SqlLiteral():
                parts.append(value.value)
            case Statement():
                parts.append(value.text.strip())
                parameters.extend(value.parameters)
            case BulkExecuteStatement():
                parts.append(value.text.strip())
                parameters.extend(value.flatten())
            case BulkInsertStatement():
                raise TypeError('A bulk insert statement cannot be nested into another statement')
            case [str(), list() | tuple()]:
                raise TypeError('A (text, parameters) pair is not a value, pass the Statement itself')
            case _:
                parts.append(PLACEHOLDER)
                parameters.append(value)

    parts.append(segments[-1])
    text = ''.join(parts)

    return _classify(text, parameters, values)


def _classify(text: str, parameters: list[Any],
              values: Sequence[Any]) -> Statement | BulkExecuteStatement | BulkInsertStatement:
    """Pick the statement shape from the flattened parameters."""
    bulk_positions = [i for i, p in enumerate(parameters) if _is_bulk_group(p)]
    function_positions = [i for i, p in enumerate(parameters) if _is_row_function(p)]

    if len(bulk_positions) > 1:
        raise AmbiguousBulkShape(
            f'Only one bulk parameter group is allowed per statement, found {len(bulk_positions)}')

    if function_positions:
        if bulk_positions:
            raise AmbiguousBulkShape('A row parameter function cannot be combined with a bulk group')
        if len(parameters) != 1 or not values or not _is_row_function(values[-1]):
            raise AmbiguousBulkShape(
                'A row parameter function must be the last value and the only bound parameter')
        return BulkInsertStatement(text, parameters[0])

    if bulk_positions:
        index = bulk_positions[0]
        fixed = parameters[:index] + parameters[index + 1:]
        return BulkExecuteStatement(text, tuple(fixed), tuple(parameters[index]), index)

    return Statement(text, tuple(parameters))
