"""Deep freeze/thaw helpers for build snapshots.

A frozen snapshot is a ``MappingProxyType`` whose nested dicts are
read-only proxies and whose lists are tuples, so no reader can change
committed state in place. Any other value stored in a snapshot must be
immutable itself (frozen models with tuple fields).
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any


def freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Return a mutable deep copy of a frozen value.

    Containers become dicts, lists and sets; every other value is
    deep-copied so a caller never holds a reference into the snapshot.
    """
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(v) for v in value]
    if isinstance(value, frozenset):
        return set(thaw(v) for v in value)
    return copy.deepcopy(value)
