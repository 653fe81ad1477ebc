"""
TreeState StateManager - Reactive, Path-Addressed State Container
=================================================================

``StateManager`` owns a single nested dict (the state tree) and layers
validation, subscriptions, batched writes, checkpoints and diffing on top of
it. Nothing is global: create one manager per application and pass it to the
collaborators that need it.

Write pipeline
--------------

Every ``set_state`` call goes through the same steps, in order:

1. the path is checked (``InvalidPathError``)
2. matching validation rules run (``ValidationError``), unless ``validate=False``
3. the tree is mutated (a deep copy of the value is stored)
4. the change is recorded in history (or in the open batch)
5. exact-path subscribers are called with ``(new_value, old_value, path)``
6. a ``state:changed`` event is published on the event bus, if there is one

A failed step 1 or 2 leaves the tree, history and subscribers untouched.
``silent=True`` skips steps 5 and 6 but still records the change.

Basic Usage
-----------

```python
from treestate import EventBus, StateManager

bus = EventBus()
state = StateManager(bus)

state.add_validation_rule(
    "characters.*.name",
    lambda value: isinstance(value, str) and value != "",
    "Character name must be a non-empty string",
)

unsubscribe = state.subscribe("ui.theme", lambda new, old, path: print(old, "->", new))
state.set_state("ui.theme", "dark")          # prints: default -> dark

checkpoint_id = state.create_checkpoint("before-import")
with state.batch():
    state.set_state("characters.alice.name", "Alice")
    state.set_state("active_character", "alice")

print(state.get_diff(checkpoint_id).added)   # {'characters.alice': {'name': 'Alice'}}
state.rollback("before-import")
unsubscribe()
```

Batches
-------

Inside ``batch()`` / ``batch_update()`` each write is still validated,
applied and delivered to its subscribers immediately. What changes is the
outside view: one ``state:batch`` event and one history entry are produced
when the batch closes, instead of one per write. Batches do not nest.

A batch that raises keeps the writes it already made unless it was opened
with ``atomic=True``, in which case the tree is restored to its state at the
start of the batch.
"""

import copy
import inspect
import json
import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from cachetools import LRUCache

from .checkpoints import DEFAULT_MAX_CHECKPOINTS, Checkpoint, CheckpointStack
from .defaults import default_state
from .diff import DiffResult, diff_between, values_equal
from .events import STATE_BATCH, STATE_CHANGED, EventPublisher
from .exceptions import AlreadyInBatchError
from .history import DEFAULT_MAX_HISTORY, BatchChange, Change, HistoryEntry, HistoryLog
from .paths import MISSING, delete_path, get_path, set_path, split_path
from .subscriptions import Callback, FilterFn, Subscription, SubscriptionRegistry
from .validation import Predicate, ValidationRegistry

logger = logging.getLogger(__name__)

DEFAULT_DIFF_CACHE_SIZE = 32


def _changed(new_value: Any, old_value: Any) -> bool:
    return not values_equal(new_value, old_value)


class _OpenBatch:
    """Writes collected while a batch is open."""

    def __init__(self):
        self.updates: List[Change] = []
        self.published: List[Change] = []

    def record(self, change: Change, silent: bool) -> None:
        self.updates.append(change)
        if not silent:
            self.published.append(change)


class BatchContext:
    """
    Context manager for one batch transaction.

    Entering while another batch is open raises ``AlreadyInBatchError``
    before anything else happens. The in-batch flag is always cleared on
    exit, whether or not the body raised.
    """

    def __init__(self, manager: "StateManager", atomic: bool = False):
        self._manager = manager
        self._atomic = atomic
        self._snapshot: Optional[Dict[str, Any]] = None

    def __enter__(self):
        if self._manager._batch is not None:
            raise AlreadyInBatchError()
        if self._atomic:
            self._snapshot = copy.deepcopy(self._manager._state)
        self._manager._batch = _OpenBatch()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        batch = self._manager._batch
        self._manager._batch = None

        if exc_type is not None and self._atomic:
            logger.info(
                f"Batch failed with {exc_type.__name__}; "
                f"discarding {len(batch.updates)} update(s)"
            )
            self._manager._replace_state(self._snapshot)
            return False

        if exc_type is not None:
            logger.warning(
                f"Batch failed with {exc_type.__name__}; "
                f"keeping {len(batch.updates)} applied update(s)"
            )
        self._manager._close_batch(batch)
        return False


class StateManager:
    """
    Reactive container for a nested, path-addressed state tree.

    Args:
        event_bus: Optional transport with ``publish(event_name, payload)``.
            Without one, publishing is skipped.
        initial_state: Tree to start from (deep-copied). Defaults to the
            application's default shape, see ``treestate.defaults``.
        max_history_size: Number of history entries to keep.
        max_rollback_stack: Number of checkpoints to keep.
        diff_cache_size: Number of checkpoint diffs to cache between writes.
        debug: Log writes and subscriptions at INFO instead of DEBUG.
    """

    def __init__(
        self,
        event_bus: Optional[EventPublisher] = None,
        initial_state: Optional[Dict[str, Any]] = None,
        *,
        max_history_size: int = DEFAULT_MAX_HISTORY,
        max_rollback_stack: int = DEFAULT_MAX_CHECKPOINTS,
        diff_cache_size: int = DEFAULT_DIFF_CACHE_SIZE,
        debug: bool = False,
    ):
        if diff_cache_size <= 0:
            raise ValueError(f"diff_cache_size must be positive, got {diff_cache_size}")

        self.event_bus = event_bus
        self._state: Dict[str, Any] = (
            copy.deepcopy(initial_state) if initial_state is not None else default_state()
        )

        self._validation = ValidationRegistry()
        self._subscriptions = SubscriptionRegistry()
        self._history = HistoryLog(max_history_size)
        self._checkpoints = CheckpointStack(max_rollback_stack)

        # checkpoint id -> DiffResult, valid until the next mutation
        self._diff_cache: LRUCache = LRUCache(maxsize=diff_cache_size)

        self._batch: Optional[_OpenBatch] = None
        self._debug = debug

    # ========================================================================
    # CONFIGURATION
    # ========================================================================

    @property
    def max_history_size(self) -> int:
        return self._history.max_size

    @max_history_size.setter
    def max_history_size(self, value: int) -> None:
        self._history.max_size = value

    @property
    def max_rollback_stack(self) -> int:
        return self._checkpoints.max_size

    @max_rollback_stack.setter
    def max_rollback_stack(self, value: int) -> None:
        self._checkpoints.max_size = value

    @property
    def debug_mode(self) -> bool:
        return self._debug

    def set_debug_mode(self, enabled: bool) -> None:
        self._debug = bool(enabled)
        logger.info(f"Debug mode {'enabled' if self._debug else 'disabled'}")

    def _trace(self, message: str, *args: Any) -> None:
        logger.log(logging.INFO if self._debug else logging.DEBUG, message, *args)

    # ========================================================================
    # READS
    # ========================================================================

    def get_state(self, path: str, default: Any = None) -> Any:
        """
        Return a copy of the value at ``path``, or ``default`` if unreachable.

        Raises:
            InvalidPathError: if ``path`` is not a non-empty string.
        """
        value = get_path(self._state, path, MISSING)
        if value is MISSING:
            return default
        return copy.deepcopy(value)

    def has_state(self, path: str) -> bool:
        return get_path(self._state, path, MISSING) is not MISSING

    def get_full_state(self) -> Dict[str, Any]:
        """Deep copy of the whole tree, for persistence layers."""
        return copy.deepcopy(self._state)

    # ========================================================================
    # WRITES
    # ========================================================================

    def set_state(
        self, path: str, value: Any, *, validate: bool = True, silent: bool = False
    ) -> None:
        """
        Set the value at ``path``, creating intermediate dicts as needed.

        Raises:
            InvalidPathError: if ``path`` is not addressable.
            ValidationError: if a matching rule rejects ``value``.
        """
        segments = split_path(path)
        if validate:
            self._validation.validate(path, value, segments)

        old_value = get_path(self._state, path)
        set_path(self._state, path, copy.deepcopy(value))
        self._trace("Set '%s' = %r", path, value)

        self._commit(Change(path, old_value, copy.deepcopy(value), time.time()), silent)

    def delete_state(self, path: str, *, silent: bool = False) -> bool:
        """
        Remove the key at ``path``. Returns False if there was nothing to remove.

        Recorded and notified like a write whose new value is None.
        Validation rules are not consulted.
        """
        old_value = get_path(self._state, path, MISSING)
        if old_value is MISSING:
            return False
        delete_path(self._state, path)
        self._trace(f"Deleted '{path}'")

        self._commit(Change(path, old_value, None, time.time()), silent)
        return True

    def _commit(self, change: Change, silent: bool) -> None:
        self._diff_cache.clear()

        if self._batch is not None:
            self._batch.record(change, silent)
        else:
            self._history.append(change)

        if silent:
            return

        self._subscriptions.notify(change.path, change.new_value, change.old_value)

        if self._batch is None:
            self._publish(
                STATE_CHANGED,
                {
                    "path": change.path,
                    "old_value": copy.deepcopy(change.old_value),
                    "new_value": copy.deepcopy(change.new_value),
                    "timestamp": change.timestamp,
                },
            )

    def _publish(self, event_name: str, payload: Dict[str, Any]) -> None:
        if self.event_bus is None:
            return
        self.event_bus.publish(event_name, payload)

    def _replace_state(self, tree: Dict[str, Any]) -> None:
        self._state = tree
        self._diff_cache.clear()

    # ========================================================================
    # VALIDATION
    # ========================================================================

    def add_validation_rule(
        self, pattern: str, predicate: Predicate, message: Optional[str] = None
    ) -> None:
        """
        Register ``predicate`` for every path matching ``pattern``.

        ``*`` in a pattern matches any single segment. Registering the same
        pattern again replaces the previous rule.

        Raises:
            InvalidValidatorError: if ``predicate`` is not callable.
            InvalidPathError: if ``pattern`` is not a valid path.
        """
        self._validation.add_rule(pattern, predicate, message)

    def remove_validation_rule(self, pattern: str) -> bool:
        return self._validation.remove_rule(pattern)

    # ========================================================================
    # SUBSCRIPTIONS
    # ========================================================================

    def subscribe(
        self, path: str, callback: Callback, *, immediate: bool = False
    ) -> Subscription:
        """
        Call ``callback(new_value, old_value, path)`` after every write to ``path``.

        With ``immediate=True`` the callback also runs once right away with
        the current value as both old and new value.

        Returns:
            The subscription. Calling it (or its ``unsubscribe()``) detaches it.
        """
        subscription = self._subscriptions.add((path,), callback)
        self._trace(f"Subscribed to '{path}'")

        if immediate:
            current = self.get_state(path)
            subscription.notify(path, current, copy.deepcopy(current))
        return subscription

    def subscribe_with_filter(
        self,
        paths: Union[str, Iterable[str]],
        callback: Callback,
        *,
        filter_fn: Optional[FilterFn] = None,
    ) -> Subscription:
        """
        Subscribe one callback to several paths, gated by ``filter_fn``.

        ``filter_fn(new_value, old_value)`` defaults to "the value changed".
        The returned subscription detaches from every path at once.
        """
        if isinstance(paths, str):
            paths = (paths,)
        subscription = self._subscriptions.add(paths, callback, filter_fn or _changed)
        self._trace(f"Subscribed to {list(subscription.paths)} with filter")
        return subscription

    def unsubscribe(self, path: str, callback: Callable) -> bool:
        """Remove one registration of ``callback`` on ``path``."""
        removed = self._subscriptions.remove(path, callback)
        if removed:
            self._trace(f"Unsubscribed from '{path}'")
        return removed

    # ========================================================================
    # BATCHING
    # ========================================================================

    @property
    def batch_mode(self) -> bool:
        return self._batch is not None

    def batch(self, *, atomic: bool = False) -> BatchContext:
        """
        Open a batch transaction.

        Usage:
            with state.batch():
                state.set_state("ui.theme", "dark")
                state.set_state("ui.loading", True)
                # one state:batch event is published here
        """
        return BatchContext(self, atomic=atomic)

    def batch_update(self, work: Callable[[], Any], *, atomic: bool = False) -> Any:
        """
        Run ``work()`` inside a batch and return its result.

        Use ``batch_update_async`` for coroutine functions.

        Raises:
            AlreadyInBatchError: if a batch is already open.
        """
        if inspect.iscoroutinefunction(work):
            raise TypeError("Use batch_update_async() for coroutine functions")

        with self.batch(atomic=atomic):
            result = work()
            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                raise TypeError("Use batch_update_async() for work that returns an awaitable")
        return result

    async def batch_update_async(self, work: Callable[[], Any], *, atomic: bool = False) -> Any:
        """
        Run ``work()`` inside a batch, awaiting it if it returns an awaitable.

        The batch stays open for the whole awaited work, so any nested batch
        attempt made while it runs fails with ``AlreadyInBatchError``.
        """
        with self.batch(atomic=atomic):
            result = work()
            if inspect.isawaitable(result):
                result = await result
        return result

    def _close_batch(self, batch: _OpenBatch) -> None:
        timestamp = time.time()
        self._history.append(BatchChange(tuple(batch.updates), timestamp))
        self._publish(
            STATE_BATCH,
            {
                "updates": [copy.deepcopy(change.to_dict()) for change in batch.published],
                "timestamp": timestamp,
            },
        )
        self._trace(f"Batch closed with {len(batch.updates)} update(s)")

    # ========================================================================
    # CHECKPOINTS & ROLLBACK
    # ========================================================================

    @property
    def rollback_stack(self) -> tuple:
        """Checkpoints currently held, oldest first."""
        return self._checkpoints.as_tuple()

    def create_checkpoint(self, label: Optional[str] = None) -> str:
        """Snapshot the whole tree and return the checkpoint id."""
        checkpoint = self._checkpoints.push(self._state, label)
        self._trace("Created checkpoint %s (%r)", checkpoint.id, label)
        return checkpoint.id

    def get_checkpoint(self, target: Union[int, str]) -> Optional[Checkpoint]:
        return self._checkpoints.get(target)

    def rollback(self, target: Union[int, str]) -> bool:
        """
        Restore the tree to a checkpoint.

        ``target`` is a depth from the top of the stack (1 = most recent), a
        checkpoint id, or a label. The resolved checkpoint and every later
        one are removed from the stack.

        This is a bulk replace: no validation, no subscriber notifications,
        no history entry and no event.

        Returns:
            True on success, False if ``target`` does not resolve.
        """
        index = self._checkpoints.resolve(target)
        if index is None:
            logger.debug(f"Rollback target {target!r} not found")
            return False

        checkpoint = self._checkpoints.as_tuple()[index]
        self._replace_state(checkpoint.restore())
        discarded = self._checkpoints.truncate(index)
        logger.info(
            f"Rolled back to checkpoint {checkpoint.id} ({checkpoint.label!r}), "
            f"discarding {len(discarded)} checkpoint(s)"
        )
        return True

    # ========================================================================
    # DIFFING
    # ========================================================================

    def get_diff(self, target: Union[int, str]) -> Optional[DiffResult]:
        """Diff from a checkpoint to the current tree, or None if unresolved."""
        checkpoint = self._checkpoints.get(target)
        if checkpoint is None:
            return None

        result = self._diff_cache.get(checkpoint.id)
        if result is None:
            result = diff_between(checkpoint.state, self._state)
            self._diff_cache[checkpoint.id] = result
        return copy.deepcopy(result)

    def get_diff_between(self, a: Dict[str, Any], b: Dict[str, Any]) -> DiffResult:
        return diff_between(a, b)

    # ========================================================================
    # HISTORY
    # ========================================================================

    def get_history(self) -> List[HistoryEntry]:
        return self._history.entries()

    def clear_history(self) -> None:
        self._history.clear()

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    def reset(self, tree: Optional[Dict[str, Any]] = None) -> None:
        """
        Replace the whole tree and clear history.

        With no argument the default tree shape is restored. Checkpoints and
        subscriptions are kept; nobody is notified.
        """
        self._replace_state(copy.deepcopy(tree) if tree is not None else default_state())
        self._history.clear()
        logger.info("State reset" + (" to custom tree" if tree is not None else ""))

    def get_stats(self) -> Dict[str, Any]:
        return {
            "subscriber_count": self._subscriptions.count(),
            "validation_rule_count": len(self._validation),
            "history_size": len(self._history),
            "max_history_size": self._history.max_size,
            "debug_mode": self._debug,
            "state_size": len(json.dumps(self._state, default=str, skipkeys=True)),
            "batch_mode": self.batch_mode,
            "rollback_stack_size": len(self._checkpoints),
            "max_rollback_stack": self._checkpoints.max_size,
            "diff_cache_size": len(self._diff_cache),
        }

    def close(self) -> None:
        """Drop subscriptions, rules, checkpoints, history and cached diffs."""
        self._subscriptions.clear()
        self._validation.clear()
        self._checkpoints.clear()
        self._history.clear()
        self._diff_cache.clear()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __repr__(self) -> str:
        return (
            f"StateManager(keys={len(self._state)}, "
            f"subscribers={self._subscriptions.count()}, "
            f"checkpoints={len(self._checkpoints)})"
        )


def create_state_manager(
    event_bus: Optional[EventPublisher] = None,
    initial_state: Optional[Dict[str, Any]] = None,
    max_history_size: int = DEFAULT_MAX_HISTORY,
    max_rollback_stack: int = DEFAULT_MAX_CHECKPOINTS,
    diff_cache_size: int = DEFAULT_DIFF_CACHE_SIZE,
    debug: bool = False,
) -> StateManager:
    """
    Create a state manager with specified settings.

    Args:
        event_bus: Transport for state:changed / state:batch events
        initial_state: Starting tree (default: the default application shape)
        max_history_size: History entries to keep
        max_rollback_stack: Checkpoints to keep
        diff_cache_size: Size of the LRU cache for checkpoint diffs
        debug: Log writes and subscriptions at INFO level

    Returns:
        Configured StateManager instance
    """
    return StateManager(
        event_bus,
        initial_state,
        max_history_size=max_history_size,
        max_rollback_stack=max_rollback_stack,
        diff_cache_size=diff_cache_size,
        debug=debug,
    )
