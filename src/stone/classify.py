"""Keyword classification shared by feedback triage and check-run matching.

Classification is heuristic by nature, so callers depend only on the
:class:`Classifier` protocol and can substitute a stronger implementation.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol


class Classifier(Protocol):
    def classify(self, text: str) -> str: ...

    def categories(self, text: str) -> list[str]: ...


@dataclass(frozen=True)
class KeywordRule:
    category: str
    keywords: tuple[str, ...]

    def matches(self, lowered: str) -> bool:
        return any(keyword in lowered for keyword in self.keywords)


class KeywordClassifier:
    """Case-insensitive substring matcher over an ordered rule list.

    ``classify`` returns the category of the first matching rule, or
    *default* when none match. ``categories`` returns every matching
    category in rule order.
    """

    def __init__(self, rules: Sequence[KeywordRule], default: str) -> None:
        self.rules = tuple(rules)
        self.default = default

    def classify(self, text: str) -> str:
        lowered = text.lower()
        for rule in self.rules:
            if rule.matches(lowered):
                return rule.category
        return self.default

    def categories(self, text: str) -> list[str]:
        lowered = text.lower()
        return [rule.category for rule in self.rules if rule.matches(lowered)]


FEEDBACK_TYPE_RULES = (
    KeywordRule("bug", ("bug", "doesn't work", "broken", "fix", "error")),
    KeywordRule(
        "enhancement",
        ("feature request", "would be nice", "should add", "enhancement"),
    ),
    KeywordRule("question", ("question", "how do", "why does", "clarify")),
)

FEEDBACK_PRIORITY_RULES = (
    KeywordRule(
        "high", ("critical", "urgent", "blocker", "security", "crash", "broken")
    ),
    KeywordRule("medium", ("important", "should", "needed", "bug", "error")),
)

CHECK_RUN_RULES = (
    KeywordRule("lint", ("lint",)),
    KeywordRule("types", ("type", "tsc")),
    KeywordRule("tests", ("test",)),
)


def feedback_type_classifier() -> KeywordClassifier:
    return KeywordClassifier(FEEDBACK_TYPE_RULES, default="other")


def feedback_priority_classifier() -> KeywordClassifier:
    return KeywordClassifier(FEEDBACK_PRIORITY_RULES, default="low")


def check_run_classifier() -> KeywordClassifier:
    return KeywordClassifier(CHECK_RUN_RULES, default="other")
