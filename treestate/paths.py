"""
Dot-path addressing over nested dicts.

A path such as ``"characters.alice.name"`` addresses exactly one node of the
state tree. Reads stop at the first missing key or non-mapping node; writes
create the intermediate dicts they need.
"""

from typing import Any, Dict, List

from .exceptions import InvalidPathError

SEPARATOR = "."

# Sentinel for "no value at this path"
MISSING = object()


def split_path(path: Any) -> List[str]:
    """
    Split a path into its segments.

    Raises:
        InvalidPathError: if ``path`` is not a string, is empty, or has an
            empty segment (``"a..b"``, ``".a"``, ``"a."``).
    """
    if not isinstance(path, str) or not path:
        raise InvalidPathError(path)
    segments = path.split(SEPARATOR)
    if any(segment == "" for segment in segments):
        raise InvalidPathError(path, f"Path '{path}' contains an empty segment")
    return segments


def join_path(*segments: str) -> str:
    return SEPARATOR.join(segment for segment in segments if segment)


def get_path(tree: Dict[str, Any], path: Any, default: Any = None) -> Any:
    """Return the value at ``path``, or ``default`` if it cannot be reached."""
    current: Any = tree
    for segment in split_path(path):
        if not isinstance(current, dict) or segment not in current:
            return default
        current = current[segment]
    return current


def has_path(tree: Dict[str, Any], path: Any) -> bool:
    return get_path(tree, path, MISSING) is not MISSING


def set_path(tree: Dict[str, Any], path: Any, value: Any) -> None:
    """
    Assign ``value`` at ``path``.

    Missing intermediate nodes are created as empty dicts. An intermediate
    node that holds a non-mapping value is replaced by an empty dict.
    """
    segments = split_path(path)
    current = tree
    for segment in segments[:-1]:
        child = current.get(segment)
        if not isinstance(child, dict):
            child = {}
            current[segment] = child
        current = child
    current[segments[-1]] = value


def delete_path(tree: Dict[str, Any], path: Any) -> bool:
    """Remove the key at ``path``. Returns False if nothing was there."""
    segments = split_path(path)
    current: Any = tree
    for segment in segments[:-1]:
        if not isinstance(current, dict) or segment not in current:
            return False
        current = current[segment]
    if not isinstance(current, dict) or segments[-1] not in current:
        return False
    del current[segments[-1]]
    return True
