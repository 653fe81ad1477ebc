"""
TreeState Exceptions
====================

Every error raised by the state container derives from ``StateManagerError``.
The concrete classes also inherit from the closest builtin so callers that
already catch ``ValueError`` / ``TypeError`` / ``RuntimeError`` keep working.
"""

from typing import Any, Optional


class StateManagerError(Exception):
    """Base class for all state container errors."""

    pass


class InvalidPathError(StateManagerError, ValueError):
    """Raised when a path is not a non-empty dot-separated string."""

    def __init__(self, path: Any = None, message: str = "Path must be a non-empty string"):
        super().__init__(message)
        self.path = path


class InvalidCallbackError(StateManagerError, TypeError):
    """Raised when a subscriber callback is not callable."""

    def __init__(self, message: str = "Callback must be a function"):
        super().__init__(message)


class InvalidValidatorError(StateManagerError, TypeError):
    """Raised when a validation predicate is not callable."""

    def __init__(self, message: str = "Validator must be a function"):
        super().__init__(message)


class ValidationError(StateManagerError):
    """Raised when a matching validation rule rejects a value."""

    def __init__(
        self,
        message: str,
        path: str,
        value: Any = None,
        rule_pattern: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.path = path
        self.value = value
        self.rule_pattern = rule_pattern


class AlreadyInBatchError(StateManagerError, RuntimeError):
    """Raised when a batch is opened while another one is still open."""

    def __init__(self, message: str = "Already in batch mode"):
        super().__init__(message)
