"""
Checkpoint stack for snapshot / rollback.

A checkpoint is a labelled, timestamped deep copy of the whole state tree.
Checkpoints are kept oldest first; when the stack grows past ``max_size`` the
oldest checkpoint is evicted.
"""

import copy
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHECKPOINTS = 20

CheckpointTarget = Union[int, str]


def generate_checkpoint_id() -> str:
    """Return an id like ``checkpoint_1760880000000_3fa85f641``."""
    return f"checkpoint_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass(frozen=True)
class Checkpoint:
    """Immutable snapshot of the state tree at a point in time."""

    id: str
    label: Optional[str]
    timestamp: float
    state: Dict[str, Any]

    @classmethod
    def create(cls, state: Dict[str, Any], label: Optional[str] = None) -> "Checkpoint":
        """Create a checkpoint with a generated id, holding a deep copy of ``state``."""
        return cls(
            id=generate_checkpoint_id(),
            label=label,
            timestamp=time.time(),
            state=copy.deepcopy(state),
        )

    def restore(self) -> Dict[str, Any]:
        """Return a fresh deep copy of the snapshot, safe to use as a live tree."""
        return copy.deepcopy(self.state)

    def __repr__(self) -> str:
        return f"Checkpoint(id={self.id!r}, label={self.label!r})"


class CheckpointStack:
    """
    Bounded, ordered list of checkpoints.

    Targets accepted by ``resolve``:
    - ``int``: depth from the top, 1 is the most recent checkpoint
    - ``str``: a checkpoint id, or failing that a label (most recent match wins)
    """

    def __init__(self, max_size: int = DEFAULT_MAX_CHECKPOINTS):
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self._max_size = max_size
        self._checkpoints: List[Checkpoint] = []

    @property
    def max_size(self) -> int:
        return self._max_size

    @max_size.setter
    def max_size(self, value: int) -> None:
        if value <= 0:
            raise ValueError(f"max_size must be positive, got {value}")
        self._max_size = value
        self._evict()

    def push(self, state: Dict[str, Any], label: Optional[str] = None) -> Checkpoint:
        checkpoint = Checkpoint.create(state, label)
        self._checkpoints.append(checkpoint)
        self._evict()
        return checkpoint

    def _evict(self) -> None:
        while len(self._checkpoints) > self._max_size:
            evicted = self._checkpoints.pop(0)
            logger.debug(f"Evicted checkpoint {evicted.id} ({evicted.label!r})")

    def resolve(self, target: Any) -> Optional[int]:
        """Map a rollback target to a stack index, or None if it does not resolve."""
        # bool is an int subclass; True must not mean "depth 1"
        if isinstance(target, int) and not isinstance(target, bool):
            if target <= 0 or target > len(self._checkpoints):
                return None
            return len(self._checkpoints) - target

        if isinstance(target, str):
            for index, checkpoint in enumerate(self._checkpoints):
                if checkpoint.id == target:
                    return index
            for index in range(len(self._checkpoints) - 1, -1, -1):
                if self._checkpoints[index].label == target:
                    return index

        return None

    def get(self, target: Any) -> Optional[Checkpoint]:
        index = self.resolve(target)
        return None if index is None else self._checkpoints[index]

    def truncate(self, index: int) -> List[Checkpoint]:
        """Remove the checkpoint at ``index`` and every later one; return them."""
        removed = self._checkpoints[index:]
        del self._checkpoints[index:]
        return removed

    def discard(self, checkpoint_id: str) -> bool:
        for index, checkpoint in enumerate(self._checkpoints):
            if checkpoint.id == checkpoint_id:
                del self._checkpoints[index]
                return True
        return False

    def clear(self) -> None:
        self._checkpoints.clear()

    def as_tuple(self) -> Tuple[Checkpoint, ...]:
        return tuple(self._checkpoints)

    def __len__(self) -> int:
        return len(self._checkpoints)

    def __iter__(self):
        return iter(list(self._checkpoints))
