"""
Chunk planning for bulk statements.

Pure computation shared by the threaded engines in `bulksql.bulk` and the
async engines in `bulksql.aio`. A plan is the full list of `(text, parameters)`
pairs to dispatch; it is built before anything is sent, so a malformed
statement fails without touching the database.
"""
import logging
import math
from collections.abc import Sequence
from typing import Any

from bulksql.exceptions import ChunkSizeError, PlaceholderMismatch
from bulksql.placeholders import PLACEHOLDER, ensure_placeholder_count
from bulksql.placeholders import locate_nth_placeholder
from bulksql.placeholders import make_placeholders, make_row_placeholders
from bulksql.sql import BulkExecuteStatement, BulkInsertStatement

__all__ = [
    'ChunkPlan',
    'chunk_count',
    'partition',
    'plan_bulk_execute',
    'plan_bulk_insert',
    ]

logger = logging.getLogger(__name__)

ChunkPlan = list[tuple[str, list[Any]]]


def partition(items: Sequence[Any], size: int) -> list[list[Any]]:
    """Split `items` into consecutive lists of at most `size` elements.

    The input is only read; every chunk is a new list.
    """
    if size < 1:
        raise ValueError(f'Chunk size must be positive, got {size}')
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def chunk_count(total: int, size: int) -> int:
    """Number of chunks needed for `total` items."""
    return math.ceil(total / size) if total else 0


def plan_bulk_execute(statement: BulkExecuteStatement, max_variable_number: int) -> ChunkPlan:
    """Build the per-chunk statements of a bulk execute or query.

    Parameters
        statement: bulk statement with its fixed and bulk parameters
        max_variable_number: bound-parameter ceiling of the database

    Returns
        One `(text, parameters)` pair per chunk, in bulk-parameter order

    Raises
        PlaceholderMismatch: text does not hold `len(parameters) + 1` markers
        ChunkSizeError: fixed parameters leave no room for bulk values
    """
    if not statement.bulk_parameters:
        return []

    text = statement.text
    ensure_placeholder_count(text, len(statement.parameters) + 1)

    chunk_size = max_variable_number - len(statement.parameters)
    if chunk_size < 1:
        raise ChunkSizeError(
            f'Variable limit {max_variable_number} leaves no room for bulk parameters '
            f'after {len(statement.parameters)} fixed parameters')

    position = locate_nth_placeholder(text, statement.bulk_parameter_index)
    prefix, suffix = text[:position], text[position + 1:]
    leading = list(statement.leading_parameters)
    trailing = list(statement.trailing_parameters)

    chunks = partition(statement.bulk_parameters, chunk_size)
    logger.debug(f'Planned {len(chunks)} chunk(s) of up to {chunk_size} bulk parameters '
                 f'for {len(statement.bulk_parameters)} values')

    return [(f'{prefix}{make_placeholders(len(chunk))}{suffix}', [*leading, *chunk, *trailing])
            for chunk in chunks]


def plan_bulk_insert(statement: BulkInsertStatement, entities: Sequence[Any],
                     max_variable_number: int) -> ChunkPlan:
    """Build the per-chunk statements of a multi-row insert.

    Parameters
        statement: insert statement with one placeholder for the row tuple
        entities: rows to insert
        max_variable_number: bound-parameter ceiling of the database

    Returns
        One `(text, parameters)` pair per chunk, in row order

    Raises
        PlaceholderMismatch: text does not hold exactly one marker, or a row
            yields a different number of values than the first row
        ChunkSizeError: a single row does not fit within the variable limit
    """
    if not entities:
        return []

    ensure_placeholder_count(statement.text, 1)

    row_parameters = [list(statement.get_parameters(entity)) for entity in entities]
    arity = len(row_parameters[0])
    if arity == 0:
        raise ChunkSizeError('Row parameter function returned no values')

    for index, values in enumerate(row_parameters):
        if len(values) != arity:
            raise PlaceholderMismatch(
                f'Row {index} has {len(values)} values, expected {arity}',
                expected=arity, actual=len(values))

    chunk_size = max_variable_number // arity
    if chunk_size < 1:
        raise ChunkSizeError(
            f'Variable limit {max_variable_number} cannot fit one row of {arity} values')

    chunks = partition(row_parameters, chunk_size)
    logger.debug(f'Planned {len(chunks)} insert chunk(s) of up to {chunk_size} rows '
                 f'for {len(entities)} rows')

    return [(statement.text.replace(PLACEHOLDER, make_row_placeholders(len(chunk), arity), 1),
             [value for values in chunk for value in values])
            for chunk in chunks]
