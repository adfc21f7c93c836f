"""Pydantic models for the data the workflow engine reads and produces.

Forge payloads (issues, comments, pull requests, check runs) are parsed into
these models at the client boundary so that the engine and the evaluators
never touch raw JSON. Evaluation results are created fresh on every
invocation and are only ever rendered into comments; nothing here is stored.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class IssueSnapshot(BaseModel):
    number: int
    title: str
    body: str = ""
    state: str = "OPEN"
    labels: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    closed_at: datetime | None = None


class IssueComment(BaseModel):
    id: int = 0
    author: str = ""
    body: str = ""
    created_at: datetime | None = None


class ReviewComment(BaseModel):
    author: str = "unknown"
    body: str = ""


class PullRequest(BaseModel):
    number: int
    title: str = ""
    body: str = ""
    state: str = "open"
    head_ref: str
    base_ref: str
    requested_reviewers: list[str] = Field(default_factory=list)
    mergeable: bool | None = None
    merged: bool = False


class PullRequestFile(BaseModel):
    filename: str
    additions: int = 0
    deletions: int = 0
    changes: int = 0


class CheckRun(BaseModel):
    name: str
    status: str = "completed"
    conclusion: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class SpecificationScenario(BaseModel):
    name: str
    given: str
    when: str
    then: str

    def render(self) -> str:
        return (
            f"  Scenario: {self.name}\n"
            f"    Given {self.given}\n"
            f"    When {self.when}\n"
            f"    Then {self.then}"
        )


class AuditCriteria(BaseModel):
    code_coverage: int = 0
    reviewers_assigned: int = 0
    complexity_score: int = 0
    has_unit_tests: bool = False


class ImplementationVerification(BaseModel):
    success: bool
    missing_requirements: list[str] = Field(default_factory=list)


class CodeQuality(BaseModel):
    lint_passed: bool = False
    types_passed: bool = False
    tests_passed: bool = False

    @property
    def all_passed(self) -> bool:
        return self.lint_passed and self.types_passed and self.tests_passed


class AuditVerdict(BaseModel):
    criteria: AuditCriteria
    verification: ImplementationVerification
    quality: CodeQuality
    passed: bool
    recommendations: list[str] = Field(default_factory=list)


class ConflictReport(BaseModel):
    has_conflicts: bool
    conflicting_paths: list[str] = Field(default_factory=list)
    branch: str = ""
    base: str = ""


class ConflictResolutionResult(BaseModel):
    success: bool
    resolved_paths: list[str] = Field(default_factory=list)
    error: str | None = None


class FeedbackType(str, Enum):
    BUG = "bug"
    ENHANCEMENT = "enhancement"
    QUESTION = "question"
    OTHER = "other"


class FeedbackPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class FeedbackItem(BaseModel):
    type: FeedbackType
    content: str
    author: str
    priority: FeedbackPriority = FeedbackPriority.LOW
    source_pr: int | None = None
