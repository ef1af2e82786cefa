"""
Adapter around a single psycopg connection.
"""
import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import psycopg
from que_adapters.adapters.base import Adapter, register_adapter
from que_adapters.utils import make_conninfo_from_options

if TYPE_CHECKING:
    from que_adapters.options import AdapterOptions

logger = logging.getLogger(__name__)


@register_adapter('pg')
class PGAdapter(Adapter):
    """One connection shared by every thread, guarded by a re-entrant lock.
    """

    def __init__(self, connection: psycopg.Connection, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.connection = connection
        self._lock = threading.RLock()

    @classmethod
    def from_options(cls, options: 'AdapterOptions',
                     connect_func: Callable[..., psycopg.Connection] = psycopg.connect,
                     **kwargs: Any) -> 'PGAdapter':
        conn = connect_func(make_conninfo_from_options(options), autocommit=True)
        logger.debug(f'Connected to {options.hostname}/{options.database}')
        return cls(conn, statement_prefix=options.statement_prefix, **kwargs)

    @contextmanager
    def checkout(self) -> Iterator[psycopg.Connection]:
        with self._lock:
            yield self.connection

    def close(self) -> None:
        with self._lock:
            self.connection.close()
            self.prepared_statements.invalidate(self.connection)
