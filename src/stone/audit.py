"""Audit gate between implementation and test execution.

The evaluator derives a coarse criteria vector from a pull request's diff,
checks the extracted specification scenarios against it and reads the CI
check runs. :func:`judge` turns those three results into a verdict; it is a
pure function so the pass rule can be tested without a forge.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence

from stone.classify import Classifier, check_run_classifier
from stone.config import AuditConfig, StoneConfig
from stone.forge import ForgeClient
from stone.models import (
    AuditCriteria,
    AuditVerdict,
    CheckRun,
    CodeQuality,
    ImplementationVerification,
    PullRequest,
    PullRequestFile,
)
from stone.specification import find_specification, parse_scenarios

logger = logging.getLogger(__name__)

SPEC_NOT_FOUND = "Gherkin specifications not found"
_TEST_MARKERS = ("test", "spec")


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _is_test_path(path: str) -> bool:
    lowered = path.lower()
    return any(marker in lowered for marker in _TEST_MARKERS)


def partition_files(
    files: Sequence[PullRequestFile], source_extensions: Sequence[str]
) -> tuple[list[PullRequestFile], list[PullRequestFile]]:
    """Split changed files into (source, test).

    Test files are any path containing ``test`` or ``spec``. Source files are
    the remaining paths with an implementation-language extension.
    """
    tests = [f for f in files if _is_test_path(f.filename)]
    sources = [
        f
        for f in files
        if not _is_test_path(f.filename)
        and f.filename.lower().endswith(tuple(source_extensions))
    ]
    return sources, tests


def compute_criteria(
    pr: PullRequest,
    files: Sequence[PullRequestFile],
    source_extensions: Sequence[str],
) -> AuditCriteria:
    sources, tests = partition_files(files, source_extensions)

    coverage = 0
    source_lines = sum(f.changes for f in sources)
    if sources and source_lines > 0:
        test_lines = sum(f.changes for f in tests)
        coverage = min(100, _round_half_up(100 * test_lines / source_lines))

    total_lines = sum(f.changes for f in files)
    return AuditCriteria(
        code_coverage=coverage,
        reviewers_assigned=len(pr.requested_reviewers),
        complexity_score=min(100, _round_half_up(total_lines / 10)),
        has_unit_tests=bool(tests),
    )


def _run_time(run: CheckRun) -> float:
    stamp = run.completed_at or run.started_at
    return stamp.timestamp() if stamp is not None else float("-inf")


def quality_from_check_runs(
    runs: Sequence[CheckRun], classifier: Classifier | None = None
) -> CodeQuality:
    """A category passes iff its most recent matching run concluded success.

    A category with no matching run counts as failed.
    """
    classifier = classifier or check_run_classifier()
    latest: dict[str, CheckRun] = {}
    for run in runs:
        for category in classifier.categories(run.name):
            current = latest.get(category)
            if current is None or _run_time(run) > _run_time(current):
                latest[category] = run

    def _passed(category: str) -> bool:
        run = latest.get(category)
        return run is not None and run.conclusion == "success"

    return CodeQuality(
        lint_passed=_passed("lint"),
        types_passed=_passed("types"),
        tests_passed=_passed("tests"),
    )


def judge(
    criteria: AuditCriteria,
    verification: ImplementationVerification,
    quality: CodeQuality,
    thresholds: AuditConfig,
) -> AuditVerdict:
    """Combine the three audit results into a verdict with remediation lines.

    Remediation order is fixed: unit tests, coverage, reviewers, complexity,
    lint, types, failing tests, missing requirements.
    """
    recommendations: list[str] = []
    if not criteria.has_unit_tests:
        recommendations.append("- Add unit tests for the implementation")
    if criteria.code_coverage < thresholds.min_code_coverage:
        recommendations.append(
            f"- Increase test coverage from {criteria.code_coverage}% "
            f"to at least {thresholds.min_code_coverage}%"
        )
    if criteria.reviewers_assigned < thresholds.required_reviewers:
        plural = "s" if thresholds.required_reviewers > 1 else ""
        recommendations.append(
            f"- Request at least {thresholds.required_reviewers} "
            f"reviewer{plural} for the pull request"
        )
    if criteria.complexity_score > thresholds.max_complexity:
        recommendations.append("- Refactor the implementation to reduce complexity")
    if not quality.lint_passed:
        recommendations.append("- Fix linting issues")
    if not quality.types_passed:
        recommendations.append("- Fix type errors")
    if not quality.tests_passed:
        recommendations.append("- Fix failing tests")
    if verification.missing_requirements:
        recommendations.append(
            "- Implement missing requirements: "
            + ", ".join(verification.missing_requirements)
        )

    criteria_passed = (
        criteria.code_coverage >= thresholds.min_code_coverage
        and criteria.reviewers_assigned >= thresholds.required_reviewers
        and criteria.complexity_score <= thresholds.max_complexity
        and criteria.has_unit_tests
    )
    return AuditVerdict(
        criteria=criteria,
        verification=verification,
        quality=quality,
        passed=quality.all_passed and criteria_passed and verification.success,
        recommendations=recommendations,
    )


def _mark(ok: bool) -> str:
    return "✅" if ok else "❌"


def render_audit_comment(verdict: AuditVerdict, thresholds: AuditConfig) -> str:
    c, q, v = verdict.criteria, verdict.quality, verdict.verification
    lines = [
        f"## Audit {'Passed' if verdict.passed else 'Failed'}",
        "",
        "### Code Quality",
        f"- Lint: {_mark(q.lint_passed)}",
        f"- Types: {_mark(q.types_passed)}",
        f"- Tests: {_mark(q.tests_passed)}",
        "",
        "### Criteria",
        f"- Code Coverage: {c.code_coverage}% "
        f"{_mark(c.code_coverage >= thresholds.min_code_coverage)}",
        f"- Reviewers Assigned: {c.reviewers_assigned} "
        f"{_mark(c.reviewers_assigned >= thresholds.required_reviewers)}",
        f"- Complexity Score: {c.complexity_score} "
        f"{_mark(c.complexity_score <= thresholds.max_complexity)}",
        f"- Has Unit Tests: {_mark(c.has_unit_tests)}",
        "",
        "### Verification",
        f"- Requirements Met: {_mark(v.success)}",
    ]
    if v.missing_requirements:
        lines.append("- Missing Requirements: " + ", ".join(v.missing_requirements))
    if verdict.recommendations:
        lines.extend(["", "### Recommendations", *verdict.recommendations])
    lines.append("")
    if verdict.passed:
        lines.append(
            "✅ The implementation meets all audit criteria and is ready for testing."
        )
    else:
        lines.append(
            "❌ The implementation does not meet all audit criteria. "
            "Please address the recommendations."
        )
    return "\n".join(lines)


class AuditEvaluator:
    def __init__(
        self,
        forge: ForgeClient,
        config: StoneConfig,
        check_classifier: Classifier | None = None,
    ) -> None:
        self.forge = forge
        self.config = config
        self.check_classifier = check_classifier or check_run_classifier()

    def find_pull_request(self, issue_number: int) -> PullRequest | None:
        """First open PR whose body references the issue, or None."""
        numbers = self.forge.search_open_pull_requests_referencing(issue_number)
        if not numbers:
            logger.warning("No open pull request references issue #%d", issue_number)
            return None
        return self.forge.get_pull_request(numbers[0])

    def evaluate_audit_criteria(self, issue_number: int) -> AuditCriteria:
        logger.info("Evaluating audit criteria for issue #%d", issue_number)
        return self._criteria_for(self.find_pull_request(issue_number))

    def verify_implementation(self, issue_number: int) -> ImplementationVerification:
        logger.info("Verifying implementation for issue #%d", issue_number)
        return self._verify(issue_number, lambda: self.find_pull_request(issue_number))

    def validate_code_quality(self, pr: PullRequest) -> CodeQuality:
        logger.info("Validating code quality for PR #%d", pr.number)
        runs = self.forge.list_check_runs(pr.head_ref)
        return quality_from_check_runs(runs, self.check_classifier)

    def evaluate(self, issue_number: int) -> AuditVerdict:
        """Run all three sub-evaluations against a single PR lookup."""
        pr = self.find_pull_request(issue_number)
        criteria = self._criteria_for(pr)
        verification = self._verify(issue_number, lambda: pr)
        quality = self.validate_code_quality(pr) if pr is not None else CodeQuality()
        return judge(criteria, verification, quality, self.config.audit)

    def process_audit_results(self, issue_number: int, verdict: AuditVerdict) -> None:
        """Post the rendered verdict. Label changes belong to the engine."""
        logger.info(
            "Audit for issue #%d %s", issue_number, "passed" if verdict.passed else "failed"
        )
        self.forge.create_comment(
            issue_number, render_audit_comment(verdict, self.config.audit)
        )

    def _criteria_for(self, pr: PullRequest | None) -> AuditCriteria:
        if pr is None:
            return AuditCriteria()
        files = self.forge.list_pull_request_files(pr.number)
        return compute_criteria(pr, files, self.config.audit.source_extensions)

    def _verify(
        self, issue_number: int, lookup_pr: Callable[[], PullRequest | None]
    ) -> ImplementationVerification:
        comments = self.forge.list_comments(issue_number)
        spec = find_specification(comments)
        if spec is None:
            return ImplementationVerification(
                success=False, missing_requirements=[SPEC_NOT_FOUND]
            )

        requirements = parse_scenarios(spec.body)
        pr = lookup_pr()
        if pr is None:
            return ImplementationVerification(
                success=False, missing_requirements=requirements
            )

        # File count stands in for real requirement traceability.
        files = self.forge.list_pull_request_files(pr.number)
        missing = requirements if len(files) < len(requirements) else []
        return ImplementationVerification(
            success=not missing, missing_requirements=missing
        )
