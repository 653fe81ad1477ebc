"""
TreeState Diff - Structural Diffing Between Nested Mappings
===========================================================

``diff_between(a, b)`` describes how to get from ``a`` to ``b`` as three flat
mappings keyed by dot-path:

- ``added``: paths that only exist in ``b``
- ``modified``: paths in both with unequal values, as ``{"old": ..., "new": ...}``
- ``removed``: paths that only exist in ``a``

Only dicts are walked. Lists, tuples, arrays and scalars are compared as a
whole. Added and removed entries stop at the point of divergence: a brand new
sub-dict is reported once under its own path, not flattened further.

Example:
    >>> diff_between({"a": 1, "b": {"c": 2}}, {"a": 2, "b": {"c": 3, "d": 4}, "e": 5})
    DiffResult(added={'b.d': 4, 'e': 5}, modified={'a': {'old': 1, 'new': 2}, 'b.c': {'old': 2, 'new': 3}}, removed={})
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

import numpy as np

from .paths import join_path


def values_equal(a: Any, b: Any) -> bool:
    """
    Deep equality that tolerates numpy arrays.

    Arrays are equal only to arrays of the same type with equal contents.
    Containers are compared element-wise so arrays nested in dicts or lists
    do not raise on truth testing. Any comparison error counts as unequal.
    """
    if a is b:
        return True
    try:
        if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
            if type(a) != type(b):
                return False
            return bool(np.array_equal(a, b))
        if isinstance(a, dict) and isinstance(b, dict):
            if a.keys() != b.keys():
                return False
            return all(values_equal(a[key], b[key]) for key in a)
        if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
            if type(a) != type(b) or len(a) != len(b):
                return False
            return all(values_equal(x, y) for x, y in zip(a, b))
        return bool(a == b)
    except (ValueError, TypeError):
        return False


@dataclass
class DiffResult:
    """Flattened added / modified / removed description of a change."""

    added: Dict[str, Any] = field(default_factory=dict)
    modified: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    removed: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.removed)

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {
            "added": dict(self.added),
            "modified": dict(self.modified),
            "removed": dict(self.removed),
        }


def _walk(
    source: Mapping[str, Any], target: Mapping[str, Any], prefix: str, result: DiffResult
) -> None:
    for key, old in source.items():
        path = join_path(prefix, str(key))
        if key not in target:
            result.removed[path] = copy.deepcopy(old)
            continue

        new = target[key]
        if isinstance(old, dict) and isinstance(new, dict):
            _walk(old, new, path, result)
        elif not values_equal(old, new):
            result.modified[path] = {
                "old": copy.deepcopy(old),
                "new": copy.deepcopy(new),
            }

    for key, new in target.items():
        if key not in source:
            result.added[join_path(prefix, str(key))] = copy.deepcopy(new)


def diff_between(a: Mapping[str, Any], b: Mapping[str, Any]) -> DiffResult:
    """
    Compute the structural diff from ``a`` to ``b``.

    Neither input is mutated; every value in the result is a deep copy.
    ``None`` is treated as an empty mapping.
    """
    result = DiffResult()
    _walk(a or {}, b or {}, "", result)
    return result
