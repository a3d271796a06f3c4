from dataclasses import dataclass

from bulksql.strategy import get_available_dialects, get_strategy_class
from bulksql.strategy import is_supported_dialect

from libb import ConfigOptions, scriptname

__all__ = [
    'DatabaseOptions',
    ]


@dataclass
class DatabaseOptions(ConfigOptions):
    """Options

    supported driver names: `postgresql`, `sqlite`

    Connection pooling options:
    - use_pool: Whether to use connection pooling (default: False)
    - pool_max_connections: Maximum connections in pool (default: 5)
    - pool_max_idle_time: Maximum seconds a connection can be idle (default: 300)
    - pool_wait_timeout: Maximum seconds to wait for a connection (default: 30)

    Bulk dispatch options:
    - max_variable_number: Bound-parameter ceiling per statement (default: dialect limit)
    - max_workers: Maximum chunks dispatched at once (default: 8)
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 0
    timeout: int = 0
    appname: str = None
    # Connection pooling parameters
    use_pool: bool = False
    pool_max_connections: int = 5
    pool_max_idle_time: int = 300
    pool_wait_timeout: int = 30
    # Bulk dispatch parameters
    max_variable_number: int | None = None
    max_workers: int = 8

    def __post_init__(self):
        if not is_supported_dialect(self.drivername):
            available = get_available_dialects()
            raise ValueError(f'drivername must be one of: {available}')
        self.appname = self.appname or scriptname() or 'python_console'
        strategy_cls = get_strategy_class(self.drivername)
        strategy_cls.validate_options(self)
        if self.max_variable_number is not None and self.max_variable_number < 1:
            raise ValueError('max_variable_number must be at least 1')
        if self.max_workers < 1:
            raise ValueError('max_workers must be at least 1')
