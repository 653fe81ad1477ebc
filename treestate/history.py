"""
Bounded change history.

Individual writes are recorded as ``Change`` entries; a batch transaction is
recorded as a single ``BatchChange`` holding every write it performed. The
log keeps the most recent ``max_size`` entries, dropping the oldest first.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Tuple, Union

DEFAULT_MAX_HISTORY = 50


@dataclass(frozen=True, slots=True)
class Change:
    """A single accepted write."""

    path: str
    old_value: Any
    new_value: Any
    timestamp: float

    @property
    def type(self) -> str:
        return "change"

    @property
    def is_creation(self) -> bool:
        return self.old_value is None and self.new_value is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "old_value": self.old_value,
            "new_value": self.new_value,
        }

    def __repr__(self) -> str:
        if self.is_creation:
            return f"Change({self.path}: created = {self.new_value!r})"
        return f"Change({self.path}: {self.old_value!r} → {self.new_value!r})"


@dataclass(frozen=True, slots=True)
class BatchChange:
    """All writes performed inside one batch transaction, in write order."""

    updates: Tuple[Change, ...] = field(default_factory=tuple)
    timestamp: float = 0.0

    @property
    def type(self) -> str:
        return "batch"

    @property
    def paths(self) -> List[str]:
        return [update.path for update in self.updates]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "updates": [update.to_dict() for update in self.updates],
            "timestamp": self.timestamp,
        }

    def __len__(self) -> int:
        return len(self.updates)


HistoryEntry = Union[Change, BatchChange]


class HistoryLog:
    """Ordered, bounded log of history entries (oldest first)."""

    def __init__(self, max_size: int = DEFAULT_MAX_HISTORY):
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self._entries: Deque[HistoryEntry] = deque(maxlen=max_size)

    @property
    def max_size(self) -> int:
        return self._entries.maxlen

    @max_size.setter
    def max_size(self, value: int) -> None:
        if value <= 0:
            raise ValueError(f"max_size must be positive, got {value}")
        # deque keeps the rightmost (newest) items when built with a smaller maxlen
        self._entries = deque(self._entries, maxlen=value)

    def append(self, entry: HistoryEntry) -> None:
        self._entries.append(entry)

    def entries(self) -> List[HistoryEntry]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))
