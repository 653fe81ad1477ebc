"""
Subscription Registry
=====================

Path-keyed change subscriptions for the state container.

Each subscription watches one or more literal paths (no wildcards) and is
called with ``(new_value, old_value, path)`` after an accepted write to one of
them. An optional filter ``filter_fn(new_value, old_value)`` decides whether a
particular change is delivered.

Dispatch is synchronous and in registration order. A callback that raises is
logged and skipped; the remaining callbacks still run and the write that
triggered the notification is not affected.

Usage:
    registry = SubscriptionRegistry()
    sub = registry.add(["ui.theme"], lambda new, old, path: print(new))
    registry.notify("ui.theme", "dark", "default")
    sub.unsubscribe()
"""

import copy
import logging
import weakref
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .exceptions import InvalidCallbackError
from .paths import split_path

logger = logging.getLogger(__name__)

Callback = Callable[[Any, Any, str], None]
FilterFn = Callable[[Any, Any], bool]


class Subscription:
    """
    A registered callback on one or more paths.

    Call ``unsubscribe()`` (or the subscription itself) to detach it from
    every path it watches.
    """

    def __init__(
        self,
        subscription_id: int,
        paths: Tuple[str, ...],
        callback: Callback,
        registry: "SubscriptionRegistry",
        filter_fn: Optional[FilterFn] = None,
    ):
        self.id = subscription_id
        self.paths = paths
        self.callback = callback
        self.filter_fn = filter_fn
        self._registry_ref = weakref.ref(registry)

    @property
    def active(self) -> bool:
        registry = self._registry_ref()
        return registry is not None and registry.is_registered(self)

    def unsubscribe(self) -> None:
        registry = self._registry_ref()
        if registry is not None:
            registry.discard(self)

    def __call__(self) -> None:
        self.unsubscribe()

    def notify(self, path: str, new_value: Any, old_value: Any) -> bool:
        """Deliver one change. Returns True if the callback ran without error."""
        try:
            if self.filter_fn is not None and not self.filter_fn(new_value, old_value):
                return True
            self.callback(new_value, old_value, path)
            return True
        except Exception:
            logger.exception(f"Error in subscriber {self.id} for '{path}'")
            return False

    def __repr__(self) -> str:
        return f"Subscription(id={self.id}, paths={list(self.paths)})"


class SubscriptionRegistry:
    """Index of subscriptions by exact path."""

    def __init__(self):
        self._by_path: Dict[str, List[Subscription]] = defaultdict(list)
        self._next_id = 0
        self._error_count = 0

    def add(
        self,
        paths: Iterable[str],
        callback: Callback,
        filter_fn: Optional[FilterFn] = None,
    ) -> Subscription:
        if not callable(callback):
            raise InvalidCallbackError()
        if filter_fn is not None and not callable(filter_fn):
            raise InvalidCallbackError("Filter must be a function")

        path_tuple = tuple(dict.fromkeys(paths))
        if not path_tuple:
            raise ValueError("At least one path is required")
        for path in path_tuple:
            split_path(path)

        subscription = Subscription(self._next_id, path_tuple, callback, self, filter_fn)
        self._next_id += 1
        for path in path_tuple:
            self._by_path[path].append(subscription)
        return subscription

    def discard(self, subscription: Subscription) -> None:
        for path in subscription.paths:
            subs = self._by_path.get(path)
            if not subs:
                continue
            if subscription in subs:
                subs.remove(subscription)
            if not subs:
                del self._by_path[path]

    def remove(self, path: str, callback: Callable) -> bool:
        """
        Remove the oldest registration of ``callback`` on ``path``.

        Only that path is detached; a multi-path subscription keeps its
        other paths.
        """
        subs = self._by_path.get(path)
        if not subs:
            return False
        for subscription in subs:
            if subscription.callback == callback:
                subs.remove(subscription)
                subscription.paths = tuple(p for p in subscription.paths if p != path)
                if not subs:
                    del self._by_path[path]
                return True
        return False

    def is_registered(self, subscription: Subscription) -> bool:
        return any(subscription in self._by_path.get(path, ()) for path in subscription.paths)

    def subscribers(self, path: str) -> List[Subscription]:
        return list(self._by_path.get(path, ()))

    def notify(self, path: str, new_value: Any, old_value: Any) -> int:
        """
        Call every subscriber of ``path``. Returns the number that failed.

        Iterates over a copy so callbacks may subscribe or unsubscribe. Each
        subscriber gets its own deep copies of both values.
        """
        failures = 0
        for subscription in self.subscribers(path):
            delivered = subscription.notify(
                path, copy.deepcopy(new_value), copy.deepcopy(old_value)
            )
            if not delivered:
                failures += 1
        self._error_count += failures
        return failures

    @property
    def error_count(self) -> int:
        return self._error_count

    def count(self) -> int:
        return sum(len(subs) for subs in self._by_path.values())

    def clear(self) -> None:
        self._by_path.clear()

    def __len__(self) -> int:
        return self.count()
