"""
TreeState - Reactive Path-Addressed State Container

A nested key-value state tree with dot-path access, wildcard validation rules,
filtered change subscriptions, batched writes, checkpoint rollback and
structural diffing.
"""

from .checkpoints import Checkpoint, CheckpointStack
from .defaults import default_state
from .diff import DiffResult, diff_between, values_equal
from .events import STATE_BATCH, STATE_CHANGED, EventBus, EventPublisher
from .exceptions import (
    AlreadyInBatchError,
    InvalidCallbackError,
    InvalidPathError,
    InvalidValidatorError,
    StateManagerError,
    ValidationError,
)
from .history import BatchChange, Change, HistoryLog
from .manager import BatchContext, StateManager, create_state_manager
from .subscriptions import Subscription, SubscriptionRegistry
from .validation import ValidationRegistry, ValidationRule, pattern_matches

__all__ = [
    # Container
    "StateManager",
    "BatchContext",
    "create_state_manager",
    "default_state",
    # Components
    "Checkpoint",
    "CheckpointStack",
    "HistoryLog",
    "Change",
    "BatchChange",
    "Subscription",
    "SubscriptionRegistry",
    "ValidationRegistry",
    "ValidationRule",
    "pattern_matches",
    # Diffing
    "DiffResult",
    "diff_between",
    "values_equal",
    # Events
    "EventBus",
    "EventPublisher",
    "STATE_CHANGED",
    "STATE_BATCH",
    # Exceptions
    "StateManagerError",
    "InvalidPathError",
    "InvalidCallbackError",
    "InvalidValidatorError",
    "ValidationError",
    "AlreadyInBatchError",
]
