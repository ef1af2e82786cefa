"""
Consolidated type handling for command execution.

This module provides:
- TypeConverter: Pre-encode Python parameters before they are sent
- CAST_RULES: Wire type OID (or field name) -> conversion function
- cast_value / cast_result: Convert textual wire results into typed rows
"""
import datetime
import json
import logging
from collections.abc import Callable, Iterable, Sequence
from typing import Any

import dateutil.parser
from psycopg.postgres import types as pg_types
from que_adapters.row import Row

logger = logging.getLogger(__name__)

__all__ = [
    'TIMESTAMP_FORMAT',
    'TypeConverter',
    'CAST_RULES',
    'register_cast',
    'get_cast_rule',
    'cast_value',
    'cast_result',
]

# The server keeps microseconds, so timestamps are sent as text carrying
# all six fractional digits and the zone offset.
TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S.%f %z'

# Field whose text is always a JSON document, regardless of its declared type.
JSON_FIELD = 'args'


# Type Converter - Handles Python -> wire parameter pre-encoding

def _encode_timestamp(value: datetime.datetime) -> str:
    """Render a datetime with microseconds and zone offset.

    Naive datetimes are taken to be in the local zone.

    >>> import datetime
    >>> _encode_timestamp(datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc))
    '1970-01-01 00:00:00.000000 +0000'
    """
    if value.tzinfo is None:
        value = value.astimezone()
    return value.strftime(TIMESTAMP_FORMAT)


def _encode_json(value: Any) -> str:
    """Serialize a composite value to compact JSON text.

    >>> _encode_json([1, 2, 3])
    '[1,2,3]'
    >>> _encode_json({'a': [1, {'b': None}]})
    '{"a":[1,{"b":null}]}'
    """
    return json.dumps(value, separators=(',', ':'), default=str)


class TypeConverter:
    """Parameter pre-encoding applied before every command is sent.
    """

    @staticmethod
    def convert_value(value: Any) -> Any:
        """Convert a single parameter.

        Timestamps become fixed-format strings, lists/tuples/dicts become
        JSON text, everything else passes through unchanged.
        """
        if isinstance(value, datetime.datetime):
            return _encode_timestamp(value)
        if isinstance(value, list | tuple | dict):
            return _encode_json(value)
        return value

    @staticmethod
    def convert_params(params: Iterable[Any] | None) -> list[Any]:
        """Convert an ordered parameter sequence.

        >>> TypeConverter.convert_params(None)
        []
        >>> TypeConverter.convert_params([1, 'a', None, (1, 2)])
        [1, 'a', None, '[1,2]']
        """
        if params is None:
            return []
        return [TypeConverter.convert_value(p) for p in params]


# Cast Rules - wire text -> Python value

_oid = lambda x: pg_types.get(x).oid


def _cast_bool(value: str) -> bool:
    """Wire booleans are the literals 't' and 'f'.

    >>> _cast_bool('t'), _cast_bool('f')
    (True, False)
    """
    return value == 't'


def _cast_timestamp(value: str) -> datetime.datetime:
    """Parse a timestamptz rendered by the server.

    >>> _cast_timestamp('1970-01-01 00:00:00+00').isoformat()
    '1970-01-01T00:00:00+00:00'
    """
    return dateutil.parser.parse(value)


CAST_RULES: dict[int | str, Callable[[str], Any]] = {}

for v in [_oid('int2'), _oid('int4'), _oid('int8')]:
    CAST_RULES[v] = int

CAST_RULES[_oid('timestamptz')] = _cast_timestamp

for v in [_oid('json'), _oid('jsonb')]:
    CAST_RULES[v] = json.loads
CAST_RULES[JSON_FIELD] = json.loads

CAST_RULES[_oid('bool')] = _cast_bool


def register_cast(key: int | str, func: Callable[[str], Any]) -> None:
    """Add or replace a cast rule.

    Integer keys are wire type OIDs, string keys are field names and take
    priority over the type of the column.
    """
    CAST_RULES[key] = func
    logger.debug(f'Registered cast rule for {key!r}')


def get_cast_rule(field: str, type_oid: int | None,
                  rules: dict[int | str, Callable[[str], Any]] | None = None) -> Callable[[str], Any] | None:
    """Select the conversion for a column: field name first, then wire type.
    """
    rules = CAST_RULES if rules is None else rules
    if field in rules:
        return rules[field]
    return rules.get(type_oid)


def cast_value(value: str | None, field: str, type_oid: int | None) -> Any:
    """Cast one raw value. NULL is returned as is for every type.

    >>> cast_value('42', 'id', 23)
    42
    >>> cast_value(None, 'id', 23) is None
    True
    >>> cast_value('hello', 'name', 25)
    'hello'
    """
    if value is None:
        return None
    rule = get_cast_rule(field, type_oid)
    return rule(value) if rule is not None else value


def cast_result(result: Any) -> list[Row]:
    """Convert a tabular wire result into rows with typed values.

    `result` must expose `fields` (column names), `ftype(index)` and
    iterate as field -> raw text mappings.
    """
    fields: Sequence[str] = result.fields
    rules = [(field, get_cast_rule(field, result.ftype(index)))
             for index, field in enumerate(fields)]
    converters = [(field, rule) for field, rule in rules if rule is not None]

    output = []
    for raw in result:
        row = dict(raw)
        for field, rule in converters:
            value = row.get(field)
            if value is not None:
                row[field] = rule(value)
        output.append(Row(row))

    logger.debug(f'Cast {len(output)} rows over {len(fields)} fields')
    return output


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
