"""Classify migration errors as ignorable (already applied) or fatal.

Rules are data: a substring, a regex, or an engine error code.  A new
database engine adds its own rule list without touching the executor.
The default vocabulary is PostgreSQL's.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable


class RuleKind(str, Enum):
    SUBSTRING = "substring"
    REGEX = "regex"
    CODE = "code"


@dataclass(frozen=True)
class ClassificationRule:
    """One entry of the ignorable-error vocabulary."""

    kind: RuleKind
    pattern: str
    _compiled: re.Pattern[str] | None = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.kind is RuleKind.REGEX:
            object.__setattr__(self, "_compiled", re.compile(self.pattern, re.IGNORECASE))
        elif self.kind is RuleKind.CODE:
            # SQLSTATE codes appear bare or quoted in JSON error bodies.
            object.__setattr__(
                self, "_compiled", re.compile(rf"(?<![0-9A-Z]){re.escape(self.pattern)}(?![0-9A-Z])")
            )

    def matches(self, error_text: str) -> bool:
        if self.kind is RuleKind.SUBSTRING:
            return self.pattern.lower() in error_text.lower()
        assert self._compiled is not None
        return bool(self._compiled.search(error_text))


POSTGRES_IGNORABLE_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(RuleKind.SUBSTRING, "already exists"),
    ClassificationRule(RuleKind.SUBSTRING, "duplicate key"),
    ClassificationRule(RuleKind.REGEX, r"relation .* already exists"),
    ClassificationRule(RuleKind.REGEX, r"type .* already exists"),
    ClassificationRule(RuleKind.REGEX, r"function .* already exists"),
    ClassificationRule(RuleKind.REGEX, r"policy .* (?:already exists|for table .* already exists)"),
    ClassificationRule(RuleKind.REGEX, r"trigger .* already exists"),
    ClassificationRule(RuleKind.REGEX, r"index .* already exists"),
    ClassificationRule(RuleKind.REGEX, r"constraint .* already exists"),
    ClassificationRule(RuleKind.CODE, "42P07"),  # duplicate_table
    ClassificationRule(RuleKind.CODE, "42710"),  # duplicate_object
    ClassificationRule(RuleKind.CODE, "42P06"),  # duplicate_schema
    ClassificationRule(RuleKind.CODE, "42723"),  # duplicate_function
    ClassificationRule(RuleKind.CODE, "23505"),  # unique_violation
)


class IgnorableErrorClassifier:
    """Strategy object: ``is_ignorable(text)`` over an explicit rule list."""

    def __init__(self, rules: Iterable[ClassificationRule] = POSTGRES_IGNORABLE_RULES) -> None:
        self._rules = tuple(rules)

    @property
    def rules(self) -> tuple[ClassificationRule, ...]:
        return self._rules

    def is_ignorable(self, error_text: str) -> bool:
        return any(rule.matches(error_text) for rule in self._rules)

    def with_rules(self, *extra: ClassificationRule) -> IgnorableErrorClassifier:
        """Return a new classifier extended with *extra* rules."""
        return IgnorableErrorClassifier((*self._rules, *extra))
