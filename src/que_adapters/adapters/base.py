"""
Base adapter interface and the command executor.

Every adapter supplies exactly one capability, `checkout()`: exclusive,
re-entrant access to one live connection for the duration of a block.
On top of that the base class implements `execute()`, which dispatches a
command either as raw text or through the per-connection prepared
statement cache and returns typed, key-indifferent rows.

Concrete adapters register themselves by name so they can be selected from
configuration:

    @register_adapter('pg')
    class PGAdapter(Adapter):
        ...
"""
import logging
import threading
import time
from collections.abc import Iterable, Iterator, Mapping
from contextlib import AbstractContextManager, contextmanager
from functools import wraps
from typing import TYPE_CHECKING, Any

from que_adapters import wire
from que_adapters.cache import StatementCache
from que_adapters.exceptions import InvalidStatementName
from que_adapters.row import Row
from que_adapters.sql import SQL, Statement, resolve
from que_adapters.types import TypeConverter, cast_result

if TYPE_CHECKING:
    from que_adapters.options import AdapterOptions

logger = logging.getLogger(__name__)

__all__ = [
    'Adapter',
    'ThreadBoundAdapter',
    'register_adapter',
    'get_adapter_class',
    'DEFAULT_STATEMENT_PREFIX',
]

DEFAULT_STATEMENT_PREFIX = 'que_'

# Registry of adapter name -> adapter class
_ADAPTER_REGISTRY: dict[str, type['Adapter']] = {}


def register_adapter(name: str):
    """Decorator to register an adapter class under a configuration name.

    Usage:
        @register_adapter('pool')
        class PoolAdapter(Adapter):
            ...
    """
    def decorator(cls: type['Adapter']) -> type['Adapter']:
        _ADAPTER_REGISTRY[name] = cls
        return cls
    return decorator


def dumpsql(func):
    """Decorator for logging commands, parameters and timing."""
    @wraps(func)
    def wrapper(self, conn: Any, command: Any, params: list, *args: Any, **kwargs: Any):
        start = time.time()
        logger.debug(f'SQL:\n{command}\nargs: {params}')
        try:
            result = func(self, conn, command, params, *args, **kwargs)
            logger.debug(f'Command result: {result.status}')
            return result
        except Exception:
            logger.error(f'Error with command:\nSQL:\n{command}\nargs: {params}')
            raise
        finally:
            elapsed = time.time() - start
            self.addcall(elapsed)
            logger.debug(f'Command time: {elapsed:.4f}s')
    return wrapper


class Adapter:
    """Base class for connection-management backends.

    Subclasses must override `checkout()`; everything else is shared.
    """

    def __init__(self, templates: Mapping[str, str] | None = None,
                 statement_prefix: str = DEFAULT_STATEMENT_PREFIX) -> None:
        self.templates = SQL if templates is None else templates
        self.statement_prefix = statement_prefix
        self.prepared_statements = StatementCache()
        self.calls = 0
        self.time = 0.0

    @classmethod
    def from_options(cls, options: 'AdapterOptions', **kwargs: Any) -> 'Adapter':
        """Build the adapter from configuration."""
        raise NotImplementedError(f'{cls.__name__} cannot be built from options')

    def checkout(self) -> AbstractContextManager[Any]:
        """Lock a connection so no other thread uses it, and yield it.

        Must be re-entrant: a nested checkout from the same thread gets the
        connection that thread already holds.
        """
        raise NotImplementedError(f'{type(self).__name__} does not implement checkout()')

    def wake_worker_after_commit(self) -> bool:
        """Prompt a worker to start once the current transaction commits.

        Not all adapters implement this.
        """
        return False

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def in_transaction(self) -> bool:
        with self.checkout() as conn:
            return wire.in_transaction(conn)

    def execute(self, command: Statement | str, params: Iterable[Any] | None = None) -> list[Row]:
        """Execute a named or raw command and return typed rows.
        """
        params = TypeConverter.convert_params(params)

        if isinstance(command, Statement):
            result = self._execute_prepared(command.name, params)
        elif isinstance(command, str):
            result = self._execute_sql(command, params)
        else:
            raise TypeError(f'Command must be a Statement or str, got {type(command).__name__}')

        return cast_result(result)

    def statement_name(self, name: str) -> str:
        return f'{self.statement_prefix}{name}'

    def _execute_sql(self, sql: str, params: list) -> wire.Result:
        with self.checkout() as conn:
            return self._run_sql(conn, sql, params)

    @dumpsql
    def _run_sql(self, conn: Any, sql: str, params: list) -> wire.Result:
        return wire.exec_sql(conn, sql, params)

    def _execute_prepared(self, name: str, params: list) -> wire.Result:
        sql = resolve(name, self.templates)

        with self.checkout() as conn:
            # A failed prepare aborts the enclosing transaction, so inside
            # one only the raw text is sent.
            if wire.in_transaction(conn):
                return self._run_sql(conn, sql, params)

            statements = self.prepared_statements.for_connection(conn)
            # Checked once per call; the retry below does not look at the
            # transaction status again.
            for _ in range(2):
                prepared_just_now = False
                try:
                    if not statements.get(name):
                        wire.prepare(conn, self.statement_name(name), sql)
                        statements[name] = prepared_just_now = True
                    return self._run_prepared(conn, name, params)
                except InvalidStatementName:
                    # The connection object may now talk to a new backend
                    # session that never saw the statement.
                    if prepared_just_now:
                        raise
                    logger.warning(f'Re-preparing statement {name}',
                                   extra={'event': 'reprepare_statement', 'command': name})
                    self.prepared_statements.invalidate(conn, name)

    @dumpsql
    def _run_prepared(self, conn: Any, name: str, params: list) -> wire.Result:
        return wire.exec_prepared(conn, self.statement_name(name), params)


def get_adapter_class(name: str) -> type[Adapter]:
    """Get the adapter class registered under a name."""
    if name not in _ADAPTER_REGISTRY:
        available = list(_ADAPTER_REGISTRY.keys())
        raise ValueError(f'Unsupported adapter: {name}. Available: {available}')
    return _ADAPTER_REGISTRY[name]


class ThreadBoundAdapter(Adapter):
    """Adapter whose connections come from a shared source (a pool, an engine).

    The connection acquired by a thread is remembered until its outermost
    checkout ends, so nested checkouts on that thread reuse it instead of
    waiting on the source for a second connection.
    """

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._local = threading.local()

    def _acquire(self) -> AbstractContextManager[Any]:
        """Borrow one connection from the underlying source."""
        raise NotImplementedError(f'{type(self).__name__} does not implement _acquire()')

    @property
    def held_connection(self) -> Any:
        """Connection currently checked out by the calling thread, or None."""
        return getattr(self._local, 'connection', None)

    @contextmanager
    def checkout(self) -> Iterator[Any]:
        conn = self.held_connection
        if conn is not None:
            yield conn
            return

        with self._acquire() as conn:
            self._local.connection = conn
            logger.debug(f'Checked out connection {id(conn)}')
            try:
                yield conn
            finally:
                self._local.connection = None
