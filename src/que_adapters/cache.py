"""
Per-connection registry of prepared statements.

Keyed first by connection handle, then by command name. Entries for a
connection live only as long as the connection object itself is reachable.
"""
import logging
import weakref
from typing import Any

logger = logging.getLogger(__name__)

__all__ = ['StatementCache']


class StatementCache:
    """Which named commands are currently prepared on which connection.

    Owned by a single adapter instance. It is never mutated concurrently for
    the same connection because checkout grants exclusive access to it.
    """

    def __init__(self) -> None:
        self._statements: weakref.WeakKeyDictionary[Any, dict[str, bool]] = weakref.WeakKeyDictionary()

    def for_connection(self, conn: Any) -> dict[str, bool]:
        """Get the name -> prepared mapping for a connection, creating it lazily.
        """
        statements = self._statements.get(conn)
        if statements is None:
            statements = self._statements[conn] = {}
        return statements

    def is_prepared(self, conn: Any, name: str) -> bool:
        statements = self._statements.get(conn)
        return bool(statements and statements.get(name))

    def mark_prepared(self, conn: Any, name: str) -> None:
        self.for_connection(conn)[name] = True

    def invalidate(self, conn: Any, name: str | None = None) -> None:
        """Forget one prepared command on a connection, or all of them.
        """
        statements = self._statements.get(conn)
        if not statements:
            return
        if name is None:
            statements.clear()
            logger.debug(f'Cleared prepared statements for connection {id(conn)}')
        else:
            statements.pop(name, None)

    def connections(self) -> list[Any]:
        """Connections that currently have an entry."""
        return list(self._statements.keys())

    def clear(self) -> None:
        self._statements.clear()

    def __len__(self) -> int:
        return len(self._statements)

    def __contains__(self, conn: Any) -> bool:
        return conn in self._statements
