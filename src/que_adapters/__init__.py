"""
Command execution adapters for PostgreSQL-backed job queues.

An adapter wraps one connection-management backend (a single psycopg
connection, a psycopg_pool pool or an SQLAlchemy engine) and executes
commands on it, either as raw text or as cached prepared statements,
returning typed, key-indifferent rows.

All operations can be called either as:
- Module functions: qa.execute(adapter, command, params)
- Adapter methods: adapter.execute(command, params)
"""
__version__ = '0.1.0'

from collections.abc import Iterable
from typing import Any

from que_adapters.adapters import Adapter, PGAdapter, PoolAdapter
from que_adapters.adapters import SQLAlchemyAdapter, register_adapter
from que_adapters.cache import StatementCache
from que_adapters.connection import connect
from que_adapters.exceptions import ConfigurationError, InvalidStatementName
from que_adapters.exceptions import QueError, QueryError
from que_adapters.exceptions import UnknownStatementError
from que_adapters.options import AdapterOptions
from que_adapters.row import Row
from que_adapters.sql import SQL, Statement
from que_adapters.transaction import Transaction as transaction
from que_adapters.types import register_cast


def execute(adapter: Adapter, command: Statement | str,
            params: Iterable[Any] | None = None) -> list[Row]:
    """Execute a named or raw command and return typed rows.
    """
    return adapter.execute(command, params)


def in_transaction(adapter: Adapter) -> bool:
    """Whether the adapter's connection is inside a transaction.
    """
    return adapter.in_transaction()


def wake_worker_after_commit(adapter: Adapter) -> bool:
    """Ask the adapter to wake a worker once the current transaction commits.
    """
    return adapter.wake_worker_after_commit()


__all__ = [
    'connect',
    'transaction',
    'execute',
    'in_transaction',
    'wake_worker_after_commit',
    'register_adapter',
    'register_cast',
    'Adapter',
    'PGAdapter',
    'PoolAdapter',
    'SQLAlchemyAdapter',
    'AdapterOptions',
    'StatementCache',
    'Statement',
    'SQL',
    'Row',
    'QueError',
    'QueryError',
    'UnknownStatementError',
    'ConfigurationError',
    'InvalidStatementName',
]
