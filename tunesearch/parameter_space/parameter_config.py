import json
from collections.abc import Mapping
from functools import lru_cache
from hashlib import sha256
from typing import Any, Iterable, Iterator

import numpy as np


@lru_cache(maxsize=4096)
def _sha256(key: str) -> str:
    return sha256(key.encode("utf-8")).hexdigest()


def to_python_scalar(value: Any) -> Any:
    """Normalize NumPy scalars so configurations compare equal by value."""
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return float(value)
    return value


class ParameterConfig(Mapping):
    """
    Immutable assignment of one native value per parameter.

    Usable as a dictionary key: equality and hashing are by value and
    independent of insertion order. Insertion order is kept for display and
    for building result table columns.
    """

    __slots__ = ('_values', '_hash')

    def __init__(self, values: Mapping = None, **kwargs):
        merged = dict(values or {})
        merged.update(kwargs)
        items = tuple((str(k), to_python_scalar(v)) for k, v in merged.items())
        object.__setattr__(self, '_values', items)
        object.__setattr__(self, '_hash', hash(frozenset(items)))

    def __setattr__(self, name, value):
        raise AttributeError("ParameterConfig is immutable")

    def __delattr__(self, name):
        raise AttributeError("ParameterConfig is immutable")

    def __reduce__(self):
        return (ParameterConfig, (dict(self._values),))

    def __getitem__(self, key: str) -> Any:
        for name, value in self._values:
            if name == key:
                return value
        raise KeyError(key)

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __hash__(self) -> int:
        return self._hash

    def __eq__(self, other) -> bool:
        if isinstance(other, ParameterConfig):
            return self._hash == other._hash and dict(self._values) == dict(other._values)
        if isinstance(other, Mapping):
            return dict(self._values) == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        body = ", ".join(f"{k}={v!r}" for k, v in self._values)
        return f"ParameterConfig({body})"

    def restrict(self, names: Iterable[str]) -> "ParameterConfig":
        """Sub-configuration holding only ``names`` (unknown names are ignored)."""
        keep = set(names)
        return ParameterConfig({k: v for k, v in self._values if k in keep})

    def exclude(self, names: Iterable[str]) -> "ParameterConfig":
        drop = set(names)
        return ParameterConfig({k: v for k, v in self._values if k not in drop})

    def to_dict(self) -> dict:
        return dict(self._values)

    @property
    def fingerprint(self) -> str:
        """Stable SHA-256 identifier, independent of key order."""
        key = json.dumps(dict(self._values), sort_keys=True, default=str)
        return _sha256(key)
