"""
Database connection handling with SQLAlchemy.

This module provides:
1. The `connect()` function for creating a database capability from options
2. The `SqlAlchemyDatabase` class implementing the capability the bulk engines
   and the migration sequencer consume
3. Engine creation and management through a thread-safe registry

Every dispatch checks a connection out of the engine for its own duration, so
concurrent chunks never share a connection. An in-memory SQLite database is
the exception: it exists only inside one connection, which dispatches then use
one at a time.
"""
import atexit
import contextlib
import logging
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import fields
from typing import Any, Self

import sqlalchemy as sa
from bulksql.options import DatabaseOptions
from bulksql.strategy import DatabaseStrategy, get_strategy
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

from libb import attrdict, load_options

__all__ = [
    'SqlAlchemyDatabase',
    'connect',
    'create_url_from_options',
    'get_engine_for_options',
    'dispose_all_engines',
    ]

logger = logging.getLogger(__name__)

_engine_registry: dict[str, Engine] = {}
_engine_registry_lock = threading.RLock()


def create_url_from_options(options: DatabaseOptions) -> str:
    """Convert DatabaseOptions to a SQLAlchemy URL.
    """
    return get_strategy(options.drivername).build_connection_url(options)


def _create_engine(options: DatabaseOptions,
                   engine_factory: Callable[..., Engine], **kwargs: Any) -> Engine:
    strategy = get_strategy(options.drivername)
    engine_kwargs: dict[str, Any] = {'echo': False}

    dialect_kwargs = strategy.get_engine_kwargs(options)
    if 'poolclass' not in dialect_kwargs:
        if not options.use_pool:
            engine_kwargs['poolclass'] = NullPool
        else:
            engine_kwargs['pool_size'] = options.pool_max_connections
            engine_kwargs['pool_recycle'] = options.pool_max_idle_time
            engine_kwargs['pool_timeout'] = options.pool_wait_timeout
            engine_kwargs['max_overflow'] = 10
            engine_kwargs['pool_pre_ping'] = True
            engine_kwargs['pool_reset_on_return'] = 'rollback'

    engine_kwargs.update(dialect_kwargs)
    engine_kwargs.update(kwargs)

    return engine_factory(create_url_from_options(options), **engine_kwargs)


def get_engine_for_options(options: DatabaseOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Get or create a SQLAlchemy engine for the given options.

    Engines are shared between connects with equal options, except for
    single-connection databases, which always get a private engine.
    """
    if get_strategy(options.drivername).uses_single_connection(options):
        logger.debug(f'Created private engine for {options.drivername}')
        return _create_engine(options, engine_factory, **kwargs)

    key = str(options)

    with _engine_registry_lock:
        if key in _engine_registry:
            logger.debug(f'Using existing engine for {options.drivername}')
            return _engine_registry[key]

        engine = _create_engine(options, engine_factory, **kwargs)
        _engine_registry[key] = engine
        logger.debug(f'Created new engine for {options.drivername}')

        return engine


def dispose_all_engines() -> None:
    """Dispose all engines in the registry.
    """
    with _engine_registry_lock:
        for engine in _engine_registry.values():
            engine.dispose()
        _engine_registry.clear()
        logger.debug('All database engines disposed')


atexit.register(dispose_all_engines)


class SqlAlchemyDatabase:
    """Database capability backed by a SQLAlchemy engine.

    Statements use `?` placeholders; the dialect strategy translates them to
    the driver paramstyle. Each `execute_sql_command` and `get_rows` call runs
    in its own transaction, committed on success and rolled back on error.
    Rows come back as `attrdict` objects keyed by column name.
    """

    def __init__(self, engine: Engine, options: DatabaseOptions) -> None:
        self.engine = engine
        self.options = options
        self.strategy: DatabaseStrategy = get_strategy(options.drivername)
        self._private = self.strategy.uses_single_connection(options)
        self._dispatch_lock = threading.Lock() if self._private else contextlib.nullcontext()
        self._stats_lock = threading.Lock()
        self.calls = 0
        self.time = 0.0

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    @property
    def dialect(self) -> str:
        """Return the dialect name ('postgresql' or 'sqlite')."""
        return self.strategy.dialect_name

    @property
    def max_variable_number(self) -> int:
        """Bound-parameter ceiling, from options or the dialect default."""
        return self.options.max_variable_number or self.strategy.max_variable_number

    @property
    def max_workers(self) -> int:
        """Maximum chunks the bulk engines dispatch at once."""
        return self.options.max_workers

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        with self._stats_lock:
            self.time += elapsed
            self.calls += 1

    def _prepare(self, statement: str, parameters: Sequence[Any]) -> tuple[str, tuple | None]:
        return self.strategy.standardize_sql(statement), tuple(parameters) if parameters else None

    def execute_sql_command(self, statement: str, parameters: Sequence[Any] = ()) -> None:
        """Execute a statement in its own transaction.
        """
        sql, params = self._prepare(statement, parameters)
        start = time.time()
        with self._dispatch_lock, self.engine.begin() as conn:
            conn.exec_driver_sql(sql, params)
        self.addcall(time.time() - start)
        logger.debug(f'Executed statement with {len(params) if params else 0} parameters')

    def get_rows(self, statement: str, parameters: Sequence[Any] = ()) -> list[attrdict]:
        """Execute a query in its own transaction and return its rows.

        The transaction commits once the rows are fetched, so data-modifying
        statements with a RETURNING clause keep their effects.
        """
        sql, params = self._prepare(statement, parameters)
        start = time.time()
        with self._dispatch_lock, self.engine.begin() as conn:
            result = conn.exec_driver_sql(sql, params)
            rows = [attrdict(row._mapping) for row in result]
        self.addcall(time.time() - start)
        logger.debug(f'Query returned {len(rows)} rows')
        return rows

    def close(self) -> None:
        """Release the engine if it belongs to this database only.
        """
        if self._private:
            self.engine.dispose()
        logger.debug(f'Database closed: {self.calls} statements in {self.time:.2f}s '
                     f'(avg: {self.time/max(1, self.calls):.3f}s per statement)')


@load_options(cls=DatabaseOptions)
def connect(options: DatabaseOptions | dict[str, Any] | str,
            config: Any | None = None, **kw: Any) -> SqlAlchemyDatabase:
    """Create a database capability using SQLAlchemy for connection management

    Args:
        options: Can be:
                - DatabaseOptions object
                - String path to configuration
                - Dictionary of options
                - Options specified as keyword arguments
        config: Configuration object (for loading from config files)
        **kw: Additional keyword arguments to override options

    Returns
        SqlAlchemyDatabase for the configured backend
    """
    if isinstance(options, DatabaseOptions):
        for field in fields(options):
            kw.pop(field.name, None)
    else:
        options_func = load_options(cls=DatabaseOptions)(lambda o, c: o)
        options = options_func(options, config, **kw)

    engine = get_engine_for_options(options)
    return SqlAlchemyDatabase(engine, options)
