"""
Placeholder utilities.

All functions operate on the statement text only. The scan is textual, not
lexical: every `?` is a placeholder, including one inside a quoted string.
Literal question marks belong in bound parameters or in a `SqlLiteral`.
"""
from bulksql.exceptions import PlaceholderMismatch

PLACEHOLDER = '?'


def count_placeholders(text: str) -> int:
    """Count placeholder markers in a statement.
    """
    return text.count(PLACEHOLDER)


def locate_nth_placeholder(text: str, n: int) -> int:
    """Return the offset of the placeholder with 0-based index `n`.

    Parameters
        text: statement text
        n: placeholder index, counting from the left

    Returns
        Character offset of the marker, or -1 when the statement has fewer
        than `n + 1` placeholders
    """
    if n < 0:
        return -1
    position = -1
    for _ in range(n + 1):
        position = text.find(PLACEHOLDER, position + 1)
        if position == -1:
            return -1
    return position


def ensure_placeholder_count(text: str, expected: int) -> None:
    """Raise PlaceholderMismatch unless `text` holds exactly `expected` markers.
    """
    actual = count_placeholders(text)
    if actual != expected:
        raise PlaceholderMismatch(
            f'The number of placeholders ({actual}) does not match the parameters ({expected})',
            expected=expected, actual=actual)


def make_placeholders(count: int) -> str:
    """Comma-joined run of `count` placeholders, e.g. `?,?,?`.
    """
    return ','.join([PLACEHOLDER] * count)


def make_row_placeholders(rows: int, arity: int) -> str:
    """Tuple groups for a multi-row VALUES list.

    The outer parentheses come from the statement itself, so the first and last
    groups are left open:

    >>> make_row_placeholders(2, 3)
    '?,?,?),(?,?,?'
    """
    return '),('.join([make_placeholders(arity)] * rows)


def standardize_placeholders(text: str, dialect: str = 'sqlite') -> str:
    """Convert `?` markers into the driver paramstyle of a dialect.

    Parameters
        text: statement text with `?` markers
        dialect: database dialect

    Returns
        Statement text ready for the DBAPI driver
    """
    if not text:
        return text

    if dialect == 'postgresql':
        if PLACEHOLDER not in text:
            return text
        # psycopg treats every % as format syntax once parameters are bound
        return text.replace('%', '%%').replace(PLACEHOLDER, '%s')

    return text
