from __future__ import annotations

from stone.models import IssueComment
from stone.specification import (
    SPEC_MARKER,
    derive_scenarios,
    extract_acceptance_criteria,
    find_specification,
    parse_scenarios,
    render_specification,
)

LOGIN_BODY = "## Acceptance Criteria\n- User can log in\n- User can log out"


class TestExtractAcceptanceCriteria:
    def test_bullets(self):
        assert extract_acceptance_criteria(LOGIN_BODY) == [
            "User can log in",
            "User can log out",
        ]

    def test_missing_section(self):
        assert extract_acceptance_criteria("Some text\n- a bullet") is None

    def test_stops_at_next_heading(self):
        body = (
            "Intro\n\n### Acceptance criteria\n* first\n* second\n\n"
            "## Notes\n- not a criterion"
        )
        assert extract_acceptance_criteria(body) == ["first", "second"]

    def test_only_first_section_is_used(self):
        body = "## Acceptance Criteria\n- one\n## Acceptance Criteria\n- two"
        assert extract_acceptance_criteria(body) == ["one"]

    def test_ignores_prose_lines(self):
        body = "## Acceptance Criteria\nThe following:\n- one\nmore prose"
        assert extract_acceptance_criteria(body) == ["one"]

    def test_empty_section(self):
        assert extract_acceptance_criteria("## Acceptance Criteria\n\n## Other") == []


class TestDeriveScenarios:
    def test_one_scenario_per_criterion_with_verbatim_then(self):
        scenarios = derive_scenarios(LOGIN_BODY)
        assert len(scenarios) == 2
        assert [s.then for s in scenarios] == ["User can log in", "User can log out"]
        assert scenarios[0].name == "User can log in"

    def test_generic_scenario_without_section(self):
        scenarios = derive_scenarios("No criteria here")
        assert len(scenarios) == 1
        assert scenarios[0].name == "Successful implementation"

    def test_generic_scenario_for_empty_section(self):
        assert len(derive_scenarios("## Acceptance Criteria\n")) == 1

    def test_empty_body(self):
        assert derive_scenarios("")[0].name == "Successful implementation"


class TestRenderSpecification:
    def test_layout(self):
        text = render_specification("Login", "Users need sessions\n\n" + LOGIN_BODY)
        lines = text.splitlines()
        assert lines[0] == SPEC_MARKER
        assert "Feature: Login" in lines
        assert "  Users need sessions" in lines
        assert "  Scenario: User can log in" in lines
        assert "    Given the feature is being used" in lines
        assert text.endswith("Please review and adjust the specification as needed.")

    def test_missing_description(self):
        assert "Description not provided" in render_specification("X", "")

    def test_scenarios_read_back(self):
        text = render_specification("Login", LOGIN_BODY)
        assert parse_scenarios(text) == ["User can log in", "User can log out"]

    def test_empty_scenario_line_does_not_borrow_next_line(self):
        text = "Feature: X\n  Scenario:\n    Given a user\n  Scenario: Log out  \n"
        assert parse_scenarios(text) == ["Log out"]


class TestFindSpecification:
    def test_finds_first_marked_comment(self):
        comments = [
            IssueComment(id=1, body="hello"),
            IssueComment(id=2, body=f"{SPEC_MARKER}\n\nFeature: A"),
            IssueComment(id=3, body=f"{SPEC_MARKER}\n\nFeature: B"),
        ]
        assert find_specification(comments).id == 2

    def test_none_when_absent(self):
        assert find_specification([IssueComment(body="nothing")]) is None
