"""
Wire-level command execution on a psycopg connection.

Commands run through the libpq connection (`conn.pgconn`) rather than a
cursor so results come back as text together with each column's type OID,
and so prepared statements are created and invoked under names we control.

Parameters are always sent in text format:
- None  -> SQL NULL
- bool  -> 't' / 'f'
- bytes -> sent as is
- other -> str(value)
"""
import logging
from collections.abc import Iterator, Sequence
from typing import Any

import psycopg
import psycopg.errors
from psycopg import pq

logger = logging.getLogger(__name__)

__all__ = [
    'Result',
    'exec_sql',
    'prepare',
    'exec_prepared',
    'transaction_status',
    'in_transaction',
]

_ERROR_STATUSES = frozenset((pq.ExecStatus.FATAL_ERROR, pq.ExecStatus.BAD_RESPONSE))


class Result:
    """Materialised tabular result: column names, type OIDs and text rows.
    """

    def __init__(self, fields: Sequence[str], types: Sequence[int],
                 rows: Sequence[Sequence[str | None]], status: str | None = None) -> None:
        self.fields = list(fields)
        self.types = list(types)
        self.rows = [tuple(r) for r in rows]
        self.status = status

    @classmethod
    def from_pgresult(cls, res: Any, encoding: str = 'utf-8') -> 'Result':
        fields = [res.fname(i).decode(encoding) for i in range(res.nfields)]
        types = [res.ftype(i) for i in range(res.nfields)]
        rows = []
        for r in range(res.ntuples):
            row = []
            for c in range(res.nfields):
                value = res.get_value(r, c)
                row.append(value.decode(encoding) if value is not None else None)
            rows.append(row)
        status = res.command_status.decode(encoding) if res.command_status else None
        return cls(fields, types, rows, status)

    def fname(self, index: int) -> str:
        return self.fields[index]

    def ftype(self, index: int) -> int:
        return self.types[index]

    def __iter__(self) -> Iterator[dict[str, str | None]]:
        for row in self.rows:
            yield dict(zip(self.fields, row))

    def __len__(self) -> int:
        return len(self.rows)

    def __repr__(self) -> str:
        return f'Result(status={self.status!r}, fields={self.fields!r}, rows={len(self.rows)})'


def _encoding(conn: Any) -> str:
    return getattr(getattr(conn, 'info', None), 'encoding', None) or 'utf-8'


def _to_wire(value: Any, encoding: str) -> bytes | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return b't' if value else b'f'
    if isinstance(value, bytes | bytearray | memoryview):
        return bytes(value)
    return str(value).encode(encoding)


def _raise_for_result(res: Any, encoding: str) -> None:
    """Raise the psycopg exception matching the result's SQLSTATE.
    """
    if res.status not in _ERROR_STATUSES:
        return
    message = (res.error_message or b'').decode(encoding, 'replace').strip()
    sqlstate = res.error_field(pq.DiagnosticField.SQLSTATE)
    error_cls = psycopg.DatabaseError
    if sqlstate:
        try:
            error_cls = psycopg.errors.lookup(sqlstate.decode('ascii'))
        except KeyError:
            logger.debug(f'No error class for SQLSTATE {sqlstate!r}')
    raise error_cls(message or 'command failed')


def _finish(res: Any, encoding: str) -> Result:
    try:
        _raise_for_result(res, encoding)
        return Result.from_pgresult(res, encoding)
    finally:
        res.clear()


def exec_sql(conn: Any, sql: str, params: Sequence[Any] = ()) -> Result:
    """Execute raw text with `$n` placeholders bound positionally.

    Without parameters the simple query protocol is used, so the text may
    contain several statements.
    """
    encoding = _encoding(conn)
    if not params:
        res = conn.pgconn.exec_(sql.encode(encoding))
    else:
        values = [_to_wire(p, encoding) for p in params]
        res = conn.pgconn.exec_params(sql.encode(encoding), values)
    return _finish(res, encoding)


def prepare(conn: Any, name: str, sql: str) -> None:
    """Create a named prepared statement on the connection's session.
    """
    encoding = _encoding(conn)
    res = conn.pgconn.prepare(name.encode(encoding), sql.encode(encoding))
    _finish(res, encoding)
    logger.debug(f'Prepared statement {name}')


def exec_prepared(conn: Any, name: str, params: Sequence[Any] = ()) -> Result:
    """Invoke a prepared statement by name.
    """
    encoding = _encoding(conn)
    values = [_to_wire(p, encoding) for p in params]
    res = conn.pgconn.exec_prepared(name.encode(encoding), values)
    return _finish(res, encoding)


def transaction_status(conn: Any) -> pq.TransactionStatus:
    return pq.TransactionStatus(conn.pgconn.transaction_status)


def in_transaction(conn: Any) -> bool:
    """Anything other than idle counts as being inside a transaction.
    """
    return transaction_status(conn) != pq.TransactionStatus.IDLE
