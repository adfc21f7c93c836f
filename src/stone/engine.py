"""Label-driven stage engine.

One :meth:`IssueProcessor.process_issue` call reads the issue's labels,
runs the handler for the stage they imply and moves the issue to the next
stage label. The label state on the forge is the only state; nothing is
kept between calls.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from pathlib import Path

from stone.audit import AuditEvaluator
from stone.config import StoneConfig
from stone.conflicts import ConflictResolver
from stone.forge import ForgeClient
from stone.git import GitRunner
from stone.history import render_history_entry
from stone.models import IssueSnapshot
from stone.specification import find_specification, render_specification
from stone.stages import WorkflowStage, detect_stage, next_stage, stage_label

logger = logging.getLogger(__name__)

_PROGRESS: dict[WorkflowStage, tuple[str, str]] = {
    WorkflowStage.INTAKE: (
        "Processing Issue",
        "Starting intake. A Gherkin specification will be derived from the "
        "acceptance criteria.",
    ),
    WorkflowStage.PLANNING: (
        "Planning",
        "Reviewing the specification and planning the implementation.",
    ),
    WorkflowStage.QA_SPEC: (
        "QA Specification Review",
        "Reviewing the specification for testability.",
    ),
    WorkflowStage.IMPLEMENTATION: (
        "Implementation",
        "Implementation is in progress. The issue moves to audit next.",
    ),
    WorkflowStage.AUDIT: (
        "Audit",
        "Auditing the implementation against the specification and quality gates.",
    ),
    WorkflowStage.CONFLICT_RESOLUTION: (
        "Conflict Resolution",
        "Checking the feature branch for merge conflicts.",
    ),
    WorkflowStage.READY_FOR_TEST: (
        "Test Execution",
        "The implementation is ready for tests.",
    ),
    WorkflowStage.DOCS: (
        "Documentation",
        "Updating documentation for the change.",
    ),
    WorkflowStage.PULL_REQUEST: (
        "Pull Request",
        "Preparing the pull request for review.",
    ),
}


class IssueProcessor:
    def __init__(
        self,
        forge: ForgeClient,
        config: StoneConfig,
        auditor: AuditEvaluator | None = None,
        resolver: ConflictResolver | None = None,
    ) -> None:
        self.forge = forge
        self.config = config
        self.auditor = auditor or AuditEvaluator(forge, config)
        if resolver is None:
            git = GitRunner(config.repository.path or Path.cwd())
            resolver = ConflictResolver(forge, git, config)
        self.resolver = resolver
        self._handlers: dict[WorkflowStage, Callable[[IssueSnapshot], None]] = {
            WorkflowStage.INTAKE: self._handle_intake,
            WorkflowStage.PLANNING: self._handle_planning,
            WorkflowStage.QA_SPEC: self._advance,
            WorkflowStage.IMPLEMENTATION: self._advance,
            WorkflowStage.AUDIT: self._handle_audit,
            WorkflowStage.CONFLICT_RESOLUTION: self._handle_conflict_resolution,
            WorkflowStage.READY_FOR_TEST: self._advance,
            WorkflowStage.DOCS: self._advance,
            WorkflowStage.PULL_REQUEST: self._handle_pull_request,
            WorkflowStage.COMPLETE: self._handle_complete,
        }

    def process_issue(self, issue_number: int) -> str:
        """Run one stage step for an issue; return the stage it was in.

        Forge and git errors propagate unchanged. The labels then still
        point at the stage that failed, so a rerun retries it.
        """
        issue = self.forge.get_issue(issue_number)
        stage = detect_stage(issue.labels, self.config.labels)
        logger.info("Issue #%d is at stage %s", issue_number, stage.value)

        handler = self._handlers.get(stage)
        if handler is None:
            logger.warning("Issue #%d has no workflow stage label", issue_number)
            self._record(issue_number, stage.value)
            return stage.value

        handler(issue)
        return stage.value

    # ── shared steps ─────────────────────────────────────────────────

    def _progress(self, issue: IssueSnapshot, stage: WorkflowStage) -> None:
        heading, text = _PROGRESS[stage]
        self.forge.create_comment(issue.number, f"## {heading}\n\n{text}")

    def _record(self, issue_number: int, status: str) -> None:
        self.forge.create_comment(issue_number, render_history_entry(status))

    def _transition(
        self,
        issue: IssueSnapshot,
        current: WorkflowStage,
        extra_labels: Iterable[str] = (),
    ) -> WorkflowStage:
        """Add the next stage label, then remove the current one.

        Not atomic: a failure after the add leaves both labels, and stage
        detection then still resolves to the earlier stage.
        """
        target = next_stage(current)
        if target is None:
            msg = f"{current.value} has no next stage"
            raise ValueError(msg)
        labels = self.config.labels
        self.forge.add_labels(
            issue.number, [stage_label(target, labels), *extra_labels]
        )
        self.forge.remove_label(issue.number, stage_label(current, labels))
        logger.info(
            "Issue #%d moved %s -> %s", issue.number, current.value, target.value
        )
        self._record(issue.number, target.value)
        return target

    def _current(self, issue: IssueSnapshot) -> WorkflowStage:
        return detect_stage(issue.labels, self.config.labels)

    def _advance(self, issue: IssueSnapshot) -> None:
        stage = self._current(issue)
        self._progress(issue, stage)
        self._transition(issue, stage)

    # ── stage handlers ───────────────────────────────────────────────

    def _post_specification(self, issue: IssueSnapshot) -> None:
        logger.info("Deriving specification for issue #%d", issue.number)
        self.forge.create_comment(
            issue.number, render_specification(issue.title, issue.body)
        )

    def _handle_intake(self, issue: IssueSnapshot) -> None:
        self._progress(issue, WorkflowStage.INTAKE)
        self._post_specification(issue)
        self._transition(issue, WorkflowStage.INTAKE)

    def _handle_planning(self, issue: IssueSnapshot) -> None:
        self._progress(issue, WorkflowStage.PLANNING)
        if find_specification(self.forge.list_comments(issue.number)) is None:
            self._post_specification(issue)
        self._transition(issue, WorkflowStage.PLANNING)

    def _handle_audit(self, issue: IssueSnapshot) -> None:
        self._progress(issue, WorkflowStage.AUDIT)
        verdict = self.auditor.evaluate(issue.number)
        self.auditor.process_audit_results(issue.number, verdict)

        labels = self.config.labels
        if not verdict.passed:
            self.forge.add_labels(issue.number, [labels.audit_failed])
            self._record(issue.number, "audit-failed")
            return

        self._transition(issue, WorkflowStage.AUDIT, [labels.audit_passed])
        if labels.audit_failed in issue.labels:
            self.forge.remove_label(issue.number, labels.audit_failed)

    def _handle_conflict_resolution(self, issue: IssueSnapshot) -> None:
        self._progress(issue, WorkflowStage.CONFLICT_RESOLUTION)
        result = self.resolver.resolve_conflicts(issue.number)
        if not result.success:
            self._record(issue.number, "manual-resolution-needed")
            return
        self._transition(issue, WorkflowStage.CONFLICT_RESOLUTION)

    def _handle_pull_request(self, issue: IssueSnapshot) -> None:
        self._progress(issue, WorkflowStage.PULL_REQUEST)
        open_prs = self.forge.search_open_pull_requests_referencing(issue.number)
        if open_prs:
            logger.info("Issue #%d already has PR #%d", issue.number, open_prs[0])
        else:
            branches = self.config.branches
            number = self.forge.create_pull_request(
                title=issue.title,
                body=f"Closes #{issue.number}",
                head=branches.feature_branch(issue.number),
                base=branches.main,
            )
            logger.info("Opened PR #%d for issue #%d", number, issue.number)
        self._transition(issue, WorkflowStage.PULL_REQUEST)

    def _handle_complete(self, issue: IssueSnapshot) -> None:
        logger.info("Issue #%d is complete", issue.number)
        self._record(issue.number, WorkflowStage.COMPLETE.value)
