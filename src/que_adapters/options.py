from dataclasses import dataclass

from que_adapters.adapters import get_available_adapters, is_supported_adapter
from que_adapters.adapters.base import DEFAULT_STATEMENT_PREFIX
from que_adapters.exceptions import ConfigurationError

from libb import ConfigOptions, scriptname

__all__ = ['AdapterOptions']

REQUIRED_OPTIONS = ['hostname', 'username', 'database', 'port']


@dataclass
class AdapterOptions(ConfigOptions):
    """Options

    supported adapter names: `pg`, `pool`, `sqlalchemy`

    Connection pooling options (`pool` and `sqlalchemy` adapters):
    - pool_min_connections: Connections kept open (default: 1)
    - pool_max_connections: Maximum connections in pool (default: 5)
    - pool_max_idle_time: Maximum seconds a connection can be idle (default: 300)
    - pool_wait_timeout: Maximum seconds to wait for a connection (default: 30)
    """
    adapter: str = 'pg'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 5432
    timeout: int = 0
    appname: str = None
    statement_prefix: str = DEFAULT_STATEMENT_PREFIX
    pool_min_connections: int = 1
    pool_max_connections: int = 5
    pool_max_idle_time: int = 300
    pool_wait_timeout: int = 30

    def __post_init__(self):
        if not is_supported_adapter(self.adapter):
            available = get_available_adapters()
            raise ValueError(f'adapter must be one of: {available}')
        self.appname = self.appname or scriptname() or 'python_console'
        for field in REQUIRED_OPTIONS:
            if getattr(self, field) in {None, ''}:
                raise ConfigurationError(f'Missing required option: {field}')
        if self.pool_min_connections > self.pool_max_connections:
            raise ConfigurationError('pool_min_connections cannot exceed pool_max_connections')
