from __future__ import annotations

from datetime import UTC, datetime

import pytest

from stone.config import StoneConfig, default_config
from stone.models import (
    CheckRun,
    IssueComment,
    IssueSnapshot,
    PullRequest,
    PullRequestFile,
    ReviewComment,
)


class FakeForge:
    """In-memory stand-in for ForgeClient that records label operations."""

    def __init__(self) -> None:
        self.issues: dict[int, IssueSnapshot] = {}
        self.comments: dict[int, list[IssueComment]] = {}
        self.pull_requests: dict[int, PullRequest] = {}
        self.pr_files: dict[int, list[PullRequestFile]] = {}
        self.review_comments: dict[int, list[ReviewComment]] = {}
        self.check_runs: dict[str, list[CheckRun]] = {}
        # issue number -> PR numbers whose body references it
        self.references: dict[int, list[int]] = {}
        self.label_ops: list[tuple[str, int, str]] = []
        self.created_issues: list[dict] = []
        self.created_prs: list[dict] = []
        self._next_number = 1000

    # ── setup helpers ────────────────────────────────────────────────

    def add_issue(
        self,
        number: int,
        title: str = "Add login",
        body: str = "",
        labels: list[str] | None = None,
    ) -> IssueSnapshot:
        issue = IssueSnapshot(
            number=number, title=title, body=body, labels=list(labels or [])
        )
        self.issues[number] = issue
        self.comments.setdefault(number, [])
        return issue

    def add_pull_request(
        self,
        number: int,
        issue_number: int,
        files: list[PullRequestFile] | None = None,
        reviewers: list[str] | None = None,
        head_ref: str = "stone/1",
        state: str = "open",
        mergeable: bool | None = None,
    ) -> PullRequest:
        pr = PullRequest(
            number=number,
            title=f"PR {number}",
            body=f"Closes #{issue_number}",
            state=state,
            head_ref=head_ref,
            base_ref="main",
            requested_reviewers=list(reviewers or []),
            mergeable=mergeable,
        )
        self.pull_requests[number] = pr
        self.pr_files[number] = list(files or [])
        self.references.setdefault(issue_number, []).append(number)
        return pr

    def labels(self, number: int) -> list[str]:
        return list(self.issues[number].labels)

    def bodies(self, number: int) -> list[str]:
        return [c.body for c in self.comments.get(number, [])]

    # ── ForgeClient surface ──────────────────────────────────────────

    def get_issue(self, number: int) -> IssueSnapshot:
        return self.issues[number].model_copy(deep=True)

    def list_comments(self, number: int) -> list[IssueComment]:
        return list(self.comments.get(number, []))

    def create_comment(self, number: int, body: str) -> None:
        comments = self.comments.setdefault(number, [])
        comments.append(
            IssueComment(
                id=len(comments) + 1,
                author="stone",
                body=body,
                created_at=datetime.now(UTC),
            )
        )

    def add_labels(self, number: int, names: list[str]) -> None:
        issue = self.issues[number]
        for name in names:
            self.label_ops.append(("add", number, name))
            if name not in issue.labels:
                issue.labels.append(name)

    def remove_label(self, number: int, name: str) -> None:
        self.label_ops.append(("remove", number, name))
        issue = self.issues[number]
        if name in issue.labels:
            issue.labels.remove(name)

    def create_issue(self, title: str, body: str, labels: list[str]) -> int:
        self._next_number += 1
        number = self._next_number
        self.created_issues.append(
            {"number": number, "title": title, "body": body, "labels": list(labels)}
        )
        self.add_issue(number, title=title, body=body, labels=labels)
        return number

    def get_pull_request(self, number: int) -> PullRequest:
        return self.pull_requests[number]

    def list_pull_request_files(self, number: int) -> list[PullRequestFile]:
        return list(self.pr_files.get(number, []))

    def list_review_comments(self, number: int) -> list[ReviewComment]:
        return list(self.review_comments.get(number, []))

    def list_check_runs(self, ref: str) -> list[CheckRun]:
        return list(self.check_runs.get(ref, []))

    def create_pull_request(self, title: str, body: str, head: str, base: str) -> int:
        self._next_number += 1
        self.created_prs.append(
            {"number": self._next_number, "title": title, "body": body,
             "head": head, "base": base}
        )
        return self._next_number

    def search_pull_requests_referencing(
        self, issue_number: int, state: str = "all"
    ) -> list[int]:
        numbers = self.references.get(issue_number, [])
        if state == "all":
            return list(numbers)
        return [n for n in numbers if self.pull_requests[n].state == state]

    def search_open_pull_requests_referencing(self, issue_number: int) -> list[int]:
        return self.search_pull_requests_referencing(issue_number, state="open")


@pytest.fixture()
def forge() -> FakeForge:
    return FakeForge()


@pytest.fixture()
def config() -> StoneConfig:
    return default_config()
