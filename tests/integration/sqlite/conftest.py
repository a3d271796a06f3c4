"""
Fixtures for SQLite-specific integration tests.
"""
import bulksql
import pytest


@pytest.fixture
def small_limit_conn():
    """In-memory SQLite database with a tiny variable limit to force chunking."""
    database = bulksql.connect({
        'drivername': 'sqlite',
        'database': ':memory:',
        'max_variable_number': 6,
        'max_workers': 4,
    })

    create_table = """
    CREATE TABLE item (
        id INTEGER PRIMARY KEY,
        owner TEXT NOT NULL,
        name TEXT NOT NULL
    )
    """
    database.execute_sql_command(create_table)

    yield database
    database.close()


def _file_conn(db_file, max_workers):
    return bulksql.connect({
        'drivername': 'sqlite',
        'database': str(db_file),
        'max_variable_number': 5,
        'max_workers': max_workers,
    })


@pytest.fixture
def sqlite_file_conn(tmp_path):
    """File-based SQLite database dispatching one chunk at a time."""
    database = _file_conn(tmp_path / 'bulksql_test.db', max_workers=1)

    yield database
    database.close()


@pytest.fixture
def threaded_file_conn(tmp_path):
    """File-based SQLite database whose chunks run on several threads, each
    with its own connection."""
    database = _file_conn(tmp_path / 'bulksql_threaded.db', max_workers=4)

    yield database
    database.close()
