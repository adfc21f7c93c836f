"""Acceptance-criteria extraction and Gherkin specification comments.

The specification is a plain issue comment. Later stages find it by its
heading and read requirements back from its ``Scenario:`` lines, so the
rendered layout and :func:`parse_scenarios` must stay in step.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from stone.models import IssueComment, SpecificationScenario

SPEC_MARKER = "## Gherkin Specification"

_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s+(.*?)\s*#*\s*$")
_BULLET_RE = re.compile(r"^\s*[-*]\s+(.*\S)\s*$")
_SCENARIO_RE = re.compile(r"Scenario:[ \t]+(.+?)[ \t]*$", re.MULTILINE)
_CRITERIA_TITLE = "acceptance criteria"


def extract_acceptance_criteria(body: str) -> list[str] | None:
    """Return the bullet items of the first Acceptance Criteria section.

    The section runs from its heading to the next heading of any level.
    Returns None when the body has no such section.
    """
    lines = body.splitlines()
    start: int | None = None
    for idx, line in enumerate(lines):
        match = _HEADING_RE.match(line)
        if match and match.group(1).strip().lower() == _CRITERIA_TITLE:
            start = idx + 1
            break
    if start is None:
        return None

    criteria: list[str] = []
    for line in lines[start:]:
        if _HEADING_RE.match(line):
            break
        bullet = _BULLET_RE.match(line)
        if bullet:
            criteria.append(bullet.group(1))
    return criteria


def criterion_to_scenario(criterion: str) -> SpecificationScenario:
    return SpecificationScenario(
        name=criterion,
        given="the feature is being used",
        when="the specific condition is met",
        then=criterion,
    )


def generic_scenario() -> SpecificationScenario:
    return SpecificationScenario(
        name="Successful implementation",
        given="the feature is implemented",
        when="the feature is used",
        then="it should work as expected",
    )


def derive_scenarios(body: str) -> list[SpecificationScenario]:
    """Build scenarios from an issue body, one per acceptance criterion.

    Falls back to a single generic scenario when there are no criteria.
    """
    criteria = extract_acceptance_criteria(body or "")
    if not criteria:
        return [generic_scenario()]
    return [criterion_to_scenario(c) for c in criteria]


def render_specification(title: str, body: str) -> str:
    scenarios = derive_scenarios(body)
    first_line = (body or "").split("\n")[0].strip() or "Description not provided"
    gherkin = f"Feature: {title}\n  {first_line}\n\n" + "\n\n".join(
        s.render() for s in scenarios
    )
    return (
        f"{SPEC_MARKER}\n\n{gherkin}\n\n"
        "Please review and adjust the specification as needed."
    )


def find_specification(comments: Iterable[IssueComment]) -> IssueComment | None:
    for comment in comments:
        if SPEC_MARKER in comment.body:
            return comment
    return None


def parse_scenarios(text: str) -> list[str]:
    """Extract requirement names from ``Scenario:`` lines, in order."""
    return [m.group(1).strip() for m in _SCENARIO_RE.finditer(text)]
