from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from stone.config import LabelConfig


class WorkflowStage(str, Enum):
    INTAKE = "intake"
    PLANNING = "planning"
    QA_SPEC = "qa-spec"
    IMPLEMENTATION = "implementation"
    AUDIT = "audit"
    CONFLICT_RESOLUTION = "conflict-resolution"
    READY_FOR_TEST = "ready-for-test"
    DOCS = "docs"
    PULL_REQUEST = "pull-request"
    COMPLETE = "complete"
    ERROR = "unknown"


# Match order is the tie-break policy when more than one stage label is
# present: the earliest entry wins.
STAGE_PRIORITY: tuple[tuple[WorkflowStage, str], ...] = (
    (WorkflowStage.INTAKE, "intake"),
    (WorkflowStage.PLANNING, "planning"),
    (WorkflowStage.QA_SPEC, "qa_spec"),
    (WorkflowStage.IMPLEMENTATION, "implementation"),
    (WorkflowStage.AUDIT, "audit"),
    (WorkflowStage.CONFLICT_RESOLUTION, "conflict_resolution"),
    (WorkflowStage.READY_FOR_TEST, "ready_for_test"),
    (WorkflowStage.DOCS, "docs"),
    (WorkflowStage.PULL_REQUEST, "pull_request"),
    (WorkflowStage.COMPLETE, "complete"),
)

NEXT_STAGE: dict[WorkflowStage, WorkflowStage] = {
    WorkflowStage.INTAKE: WorkflowStage.PLANNING,
    WorkflowStage.PLANNING: WorkflowStage.QA_SPEC,
    WorkflowStage.QA_SPEC: WorkflowStage.IMPLEMENTATION,
    WorkflowStage.IMPLEMENTATION: WorkflowStage.AUDIT,
    WorkflowStage.AUDIT: WorkflowStage.READY_FOR_TEST,
    WorkflowStage.CONFLICT_RESOLUTION: WorkflowStage.READY_FOR_TEST,
    WorkflowStage.READY_FOR_TEST: WorkflowStage.DOCS,
    WorkflowStage.DOCS: WorkflowStage.PULL_REQUEST,
    WorkflowStage.PULL_REQUEST: WorkflowStage.COMPLETE,
}


def stage_label(stage: WorkflowStage, labels: LabelConfig) -> str | None:
    """Return the configured label name for a stage, None for ERROR."""
    for candidate, attr in STAGE_PRIORITY:
        if candidate is stage:
            return getattr(labels, attr)
    return None


def detect_stage(issue_labels: Iterable[str], labels: LabelConfig) -> WorkflowStage:
    """Infer the current stage from an issue's labels.

    Pure and total: a label set with no recognized stage label yields ERROR.
    """
    present = set(issue_labels)
    for stage, attr in STAGE_PRIORITY:
        if getattr(labels, attr) in present:
            return stage
    return WorkflowStage.ERROR


def next_stage(current: WorkflowStage) -> WorkflowStage | None:
    """Return the stage after current, or None if terminal."""
    return NEXT_STAGE.get(current)
