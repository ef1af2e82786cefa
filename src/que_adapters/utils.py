"""
Connection targets built from AdapterOptions.

psycopg and psycopg_pool take a libpq connection string; SQLAlchemy takes
a URL and an engine.
"""
import logging
from collections.abc import Callable
from typing import Any

import sqlalchemy as sa
from psycopg.conninfo import make_conninfo
from sqlalchemy.engine import Engine

__all__ = [
    'make_conninfo_from_options',
    'create_url_from_options',
    'create_engine_for_options',
]

logger = logging.getLogger(__name__)


def _connect_params(options: Any) -> dict[str, Any]:
    """libpq parameters shared by the connection string and the URL query."""
    params = {'connect_timeout': options.timeout, 'application_name': options.appname}
    return {k: v for k, v in params.items() if v}


def make_conninfo_from_options(options: Any) -> str:
    """libpq connection string; unset values are left out.
    """
    return make_conninfo(
        host=options.hostname,
        port=options.port or None,
        dbname=options.database,
        user=options.username,
        password=options.password,
        **_connect_params(options),
    )


def create_url_from_options(options: Any,
                            url_creator: Callable[..., sa.URL] = sa.URL.create) -> sa.URL:
    """SQLAlchemy URL for the psycopg 3 dialect.
    """
    query = {k: str(v) for k, v in _connect_params(options).items()}
    return url_creator('postgresql+psycopg', username=options.username,
                       password=options.password, host=options.hostname,
                       port=options.port, database=options.database, query=query)


def _pool_settings(options: Any) -> dict[str, Any]:
    """QueuePool settings taken from the adapter's pool options.

    No overflow, so `pool_max_connections` is a hard bound as it is for the
    psycopg pool.
    """
    return {
        'pool_size': options.pool_max_connections,
        'max_overflow': 0,
        'pool_recycle': options.pool_max_idle_time,
        'pool_timeout': options.pool_wait_timeout,
        'pool_pre_ping': True,
        'pool_reset_on_return': 'rollback',
    }


def create_engine_for_options(options: Any,
                              engine_factory: Callable[..., Engine] = sa.create_engine,
                              **kwargs: Any) -> Engine:
    """New pooled engine for one adapter.

    Engines are never shared between adapters: prepared statements live on
    the pooled backend sessions while each adapter tracks them in its own
    cache. Extra keyword arguments are passed to `engine_factory`.
    """
    engine_kwargs = _pool_settings(options)
    engine_kwargs.update(kwargs)
    engine = engine_factory(create_url_from_options(options), **engine_kwargs)
    logger.debug(f'Created engine for {options.hostname}/{options.database}')
    return engine
