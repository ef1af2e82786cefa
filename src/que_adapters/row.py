"""Key-indifferent row mappings for typed command results."""
from collections.abc import Mapping
from enum import Enum
from typing import Any

from libb import attrdict

__all__ = ['Row', 'indifferent', 'normalize_key']


def normalize_key(key: Any) -> Any:
    """Reduce the representations of a field label to one plain string.

    >>> import enum
    >>> class Field(enum.Enum):
    ...     JOB_ID = 'job_id'
    >>> normalize_key(Field.JOB_ID), normalize_key(b'job_id'), normalize_key('job_id')
    ('job_id', 'job_id', 'job_id')
    >>> normalize_key(1)
    1
    """
    if isinstance(key, Enum):
        key = key.value if isinstance(key.value, str | bytes) else key.name
    if isinstance(key, bytes):
        return key.decode()
    return key


def indifferent(value: Any) -> Any:
    """Recursively wrap nested mappings as `Row` and rebuild lists.
    """
    if isinstance(value, Row):
        return value
    if isinstance(value, Mapping):
        return Row(value)
    if isinstance(value, list):
        return [indifferent(v) for v in value]
    return value


class Row(attrdict):
    """Mapping from field name to typed value with indifferent key lookup.

    Keys are stored as plain strings at construction time; lookups accept a
    string, bytes, an Enum member or attribute access and resolve to the
    same entry. Nested mappings and lists are wrapped the same way.

    >>> row = Row({'job_id': 1, 'args': [{'a': 1}]})
    >>> row['job_id'], row.job_id, row[b'job_id']
    (1, 1, 1)
    >>> row.args[0].a
    1
    >>> row == {'job_id': 1, 'args': [{'a': 1}]}
    True
    """

    def __init__(self, data: Mapping | None = None, **kwargs: Any) -> None:
        super().__init__()
        self.update(data or {}, **kwargs)

    def __getitem__(self, key: Any) -> Any:
        return super().__getitem__(normalize_key(key))

    def __setitem__(self, key: Any, value: Any) -> None:
        super().__setitem__(normalize_key(key), indifferent(value))

    def __delitem__(self, key: Any) -> None:
        super().__delitem__(normalize_key(key))

    def __contains__(self, key: Any) -> bool:
        return super().__contains__(normalize_key(key))

    def get(self, key: Any, default: Any = None) -> Any:
        return super().get(normalize_key(key), default)

    def pop(self, key: Any, *default: Any) -> Any:
        return super().pop(normalize_key(key), *default)

    def setdefault(self, key: Any, default: Any = None) -> Any:
        if key not in self:
            self[key] = default
        return self[key]

    def update(self, *args: Any, **kwargs: Any) -> None:
        for key, value in dict(*args, **kwargs).items():
            self[key] = value

    def copy(self) -> 'Row':
        return Row(self)

    def __repr__(self) -> str:
        return f'Row({dict(self)!r})'

    def to_dict(self) -> dict[str, Any]:
        """Plain nested dict copy of the row."""
        def plain(value):
            if isinstance(value, Row):
                return {k: plain(v) for k, v in value.items()}
            if isinstance(value, list):
                return [plain(v) for v in value]
            return value
        return plain(self)
