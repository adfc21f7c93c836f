from __future__ import annotations

import pytest

from stone.config import StoneConfig
from stone.stages import (
    NEXT_STAGE,
    STAGE_PRIORITY,
    WorkflowStage,
    detect_stage,
    next_stage,
    stage_label,
)


class TestDetectStage:
    def test_empty_labels_is_error(self, config: StoneConfig):
        assert detect_stage([], config.labels) is WorkflowStage.ERROR

    def test_unrelated_labels_is_error(self, config: StoneConfig):
        assert detect_stage(["bug", "help wanted"], config.labels) is WorkflowStage.ERROR

    @pytest.mark.parametrize(("stage", "attr"), STAGE_PRIORITY, ids=lambda v: str(v))
    def test_each_label_maps_to_its_stage(
        self, config: StoneConfig, stage: WorkflowStage, attr: str
    ):
        assert detect_stage([getattr(config.labels, attr)], config.labels) is stage

    def test_earliest_stage_wins(self, config: StoneConfig):
        labels = [config.labels.pull_request, config.labels.audit, config.labels.qa_spec]
        assert detect_stage(labels, config.labels) is WorkflowStage.QA_SPEC

    def test_order_of_labels_does_not_matter(self, config: StoneConfig):
        a = [config.labels.docs, config.labels.implementation]
        assert detect_stage(a, config.labels) == detect_stage(a[::-1], config.labels)

    def test_status_labels_are_not_stages(self, config: StoneConfig):
        labels = [config.labels.audit_passed, config.labels.feedback_processed]
        assert detect_stage(labels, config.labels) is WorkflowStage.ERROR


class TestNextStage:
    def test_forward_order(self):
        order = [WorkflowStage.INTAKE]
        while (nxt := next_stage(order[-1])) is not None:
            order.append(nxt)
        assert order == [
            WorkflowStage.INTAKE,
            WorkflowStage.PLANNING,
            WorkflowStage.QA_SPEC,
            WorkflowStage.IMPLEMENTATION,
            WorkflowStage.AUDIT,
            WorkflowStage.READY_FOR_TEST,
            WorkflowStage.DOCS,
            WorkflowStage.PULL_REQUEST,
            WorkflowStage.COMPLETE,
        ]

    def test_conflict_resolution_rejoins_at_ready_for_test(self):
        assert next_stage(WorkflowStage.CONFLICT_RESOLUTION) is WorkflowStage.READY_FOR_TEST

    def test_terminal_stages(self):
        assert next_stage(WorkflowStage.COMPLETE) is None
        assert next_stage(WorkflowStage.ERROR) is None

    def test_every_transition_target_has_a_label(self, config: StoneConfig):
        for target in NEXT_STAGE.values():
            assert stage_label(target, config.labels)


def test_error_stage_has_no_label(config: StoneConfig):
    assert stage_label(WorkflowStage.ERROR, config.labels) is None
