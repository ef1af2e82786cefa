"""
Adapter over an SQLAlchemy engine.

Work runs on the psycopg connection underneath a SQLAlchemy `Connection`,
so the engine's pool, pre-ping and recycling settings apply. A recycled
connection is a new object and gets a fresh prepared statement cache.

Every adapter owns its engine, so no other adapter prepares statements on
the backend sessions this one tracks.
"""
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from que_adapters.adapters.base import ThreadBoundAdapter, register_adapter
from que_adapters.transaction import current_transaction
from que_adapters.utils import create_engine_for_options
from sqlalchemy.engine import Engine

if TYPE_CHECKING:
    from que_adapters.options import AdapterOptions

logger = logging.getLogger(__name__)


@register_adapter('sqlalchemy')
class SQLAlchemyAdapter(ThreadBoundAdapter):
    """Connections checked out from an SQLAlchemy `Engine`.

    Supports `wake_worker_after_commit()` when given a `wakeup` callable.
    """

    def __init__(self, engine: Engine, wakeup: Callable[[], Any] | None = None,
                 **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.engine = engine
        self.wakeup = wakeup

    @classmethod
    def from_options(cls, options: 'AdapterOptions',
                     engine_factory: Callable[..., Engine] = sa.create_engine,
                     **kwargs: Any) -> 'SQLAlchemyAdapter':
        # Driver connections stay in autocommit; transactions are issued explicitly.
        engine = create_engine_for_options(options, engine_factory=engine_factory,
                                           isolation_level='AUTOCOMMIT')
        return cls(engine, statement_prefix=options.statement_prefix, **kwargs)

    @contextmanager
    def _acquire(self) -> Iterator[Any]:
        with self.engine.connect() as sa_connection:
            yield sa_connection.connection.driver_connection

    def wake_worker_after_commit(self) -> bool:
        """Schedule `wakeup` to run after the open transaction commits.

        Returns False when there is no callable or no open transaction.
        """
        if self.wakeup is None:
            return False
        tx = current_transaction(self)
        if tx is None:
            return False
        tx.after_commit(self.wakeup)
        logger.debug('Worker wakeup scheduled after commit')
        return True

    def close(self) -> None:
        self.engine.dispose()
