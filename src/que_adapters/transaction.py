"""
Transaction handling on a checked-out connection.
"""
import logging
import threading
import weakref
from collections.abc import Callable
from typing import Any

from que_adapters import wire

logger = logging.getLogger(__name__)

__all__ = ['Transaction', 'current_transaction']

_local = threading.local()


def _active() -> 'weakref.WeakKeyDictionary[Any, Transaction]':
    if not hasattr(_local, 'active_transactions'):
        _local.active_transactions = weakref.WeakKeyDictionary()
    return _local.active_transactions


def current_transaction(adapter: Any) -> 'Transaction | None':
    """Transaction the calling thread has open on an adapter, if any."""
    return _active().get(adapter)


class Transaction:
    """Context manager for running multiple commands in a transaction.

    The connection stays checked out for the whole block, so every
    `adapter.execute()` inside it runs on the same connection and sees the
    transaction; named commands then fall back to raw text. Thread-local
    state makes it safe to use from several threads, but nested transactions
    on the same adapter within one thread are not supported.

    Examples
        with Transaction(adapter) as tx:
            adapter.execute(Statement('insert_job'), [...])
            tx.after_commit(notify)
    """

    def __init__(self, adapter: Any) -> None:
        self.adapter = adapter
        self.connection = None
        self._checkout = None
        self._callbacks: list[Callable[[], Any]] = []

        if current_transaction(adapter) is not None:
            raise RuntimeError('Nested transactions are not supported')

    def after_commit(self, callback: Callable[[], Any]) -> None:
        """Run `callback` once the transaction has committed."""
        self._callbacks.append(callback)

    def __enter__(self):
        self._checkout = self.adapter.checkout()
        self.connection = self._checkout.__enter__()
        try:
            wire.exec_sql(self.connection, 'BEGIN')
        except BaseException:
            self._checkout.__exit__(None, None, None)
            raise
        _active()[self.adapter] = self
        logger.debug(f'Started transaction for connection {id(self.connection)}')
        return self

    def __exit__(self, exc_type: type | None, value: Exception | None, traceback: Any | None) -> None:
        committed = False
        try:
            if exc_type is not None:
                wire.exec_sql(self.connection, 'ROLLBACK')
                logger.warning('Rolling back the current transaction')
            else:
                wire.exec_sql(self.connection, 'COMMIT')
                committed = True
                logger.debug(f'Committed transaction for connection {id(self.connection)}')
        finally:
            _active().pop(self.adapter, None)
            self._checkout.__exit__(exc_type, value, traceback)
            self._checkout = None

        if committed:
            for callback in self._callbacks:
                callback()
