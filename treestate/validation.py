"""
Validation rules keyed by path patterns.

A pattern is a path whose segments may be ``*``, which matches any single
segment at that depth: ``"characters.*.name"`` matches
``"characters.alice.name"`` but not ``"characters.name"`` or
``"characters.alice.bio.name"``. Patterns are split once, when the rule is
added, and matched positionally against the candidate path's segments.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .exceptions import InvalidValidatorError, ValidationError
from .paths import split_path

logger = logging.getLogger(__name__)

WILDCARD = "*"

Predicate = Callable[[Any], bool]


def pattern_matches(pattern: Sequence[str], segments: Sequence[str]) -> bool:
    """Segment-wise comparison where ``*`` matches any one segment."""
    if len(pattern) != len(segments):
        return False
    return all(p == WILDCARD or p == s for p, s in zip(pattern, segments))


@dataclass(frozen=True)
class ValidationRule:
    pattern: str
    predicate: Predicate
    message: Optional[str] = None
    segments: Tuple[str, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "segments", tuple(split_path(self.pattern)))

    def matches(self, segments: Sequence[str]) -> bool:
        return pattern_matches(self.segments, segments)

    def failure_message(self, path: str) -> str:
        return self.message or f"Validation failed for path '{path}'"


class ValidationRegistry:
    """
    Holds validation rules, one per pattern.

    Adding a rule for a pattern that already has one replaces it. Rules are
    evaluated in the order their patterns were first registered.
    """

    def __init__(self):
        self._rules: Dict[str, ValidationRule] = {}

    def add_rule(
        self, pattern: str, predicate: Predicate, message: Optional[str] = None
    ) -> ValidationRule:
        if not callable(predicate):
            raise InvalidValidatorError()
        rule = ValidationRule(pattern, predicate, message)
        self._rules[pattern] = rule
        logger.debug(f"Added validation rule for '{pattern}'")
        return rule

    def remove_rule(self, pattern: str) -> bool:
        removed = self._rules.pop(pattern, None) is not None
        if removed:
            logger.debug(f"Removed validation rule for '{pattern}'")
        return removed

    def matching_rules(self, segments: Sequence[str]) -> List[ValidationRule]:
        return [rule for rule in self._rules.values() if rule.matches(segments)]

    def validate(self, path: str, value: Any, segments: Optional[Sequence[str]] = None) -> None:
        """
        Check ``value`` against every rule whose pattern matches ``path``.

        Raises:
            ValidationError: for the first rule whose predicate returns a falsy
                value or raises. A raising predicate is chained as the cause.
        """
        if segments is None:
            segments = split_path(path)

        for rule in self.matching_rules(segments):
            try:
                accepted = rule.predicate(value)
            except Exception as e:
                raise ValidationError(
                    rule.failure_message(path), path, value, rule.pattern
                ) from e
            if not accepted:
                raise ValidationError(rule.failure_message(path), path, value, rule.pattern)

    def clear(self) -> None:
        self._rules.clear()

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, pattern: str) -> bool:
        return pattern in self._rules
