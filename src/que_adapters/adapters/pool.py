"""
Adapter around a psycopg_pool connection pool.
"""
import logging
from typing import TYPE_CHECKING, Any

from psycopg_pool import ConnectionPool
from que_adapters.adapters.base import ThreadBoundAdapter, register_adapter
from que_adapters.utils import make_conninfo_from_options

if TYPE_CHECKING:
    from que_adapters.options import AdapterOptions

logger = logging.getLogger(__name__)


@register_adapter('pool')
class PoolAdapter(ThreadBoundAdapter):
    """Connections borrowed from a `psycopg_pool.ConnectionPool`.

    The pool may replace a broken connection behind our back, and a new
    connection object starts with an empty prepared statement cache.
    """

    def __init__(self, pool: ConnectionPool, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.pool = pool

    @classmethod
    def from_options(cls, options: 'AdapterOptions',
                     pool_factory: type[ConnectionPool] = ConnectionPool,
                     **kwargs: Any) -> 'PoolAdapter':
        pool = pool_factory(
            make_conninfo_from_options(options),
            min_size=options.pool_min_connections,
            max_size=options.pool_max_connections,
            max_idle=options.pool_max_idle_time,
            timeout=options.pool_wait_timeout,
            kwargs={'autocommit': True},
            open=True,
        )
        logger.debug(f'Opened pool for {options.hostname}/{options.database} '
                     f'({options.pool_min_connections}-{options.pool_max_connections})')
        return cls(pool, statement_prefix=options.statement_prefix, **kwargs)

    def _acquire(self):
        return self.pool.connection()

    def close(self) -> None:
        self.pool.close()
