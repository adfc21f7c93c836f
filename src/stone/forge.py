"""GitHub access through the ``gh`` CLI.

Every durable effect of the workflow goes through :class:`ForgeClient`.
Nothing is cached: each call shells out to ``gh`` and parses the response
into the models from :mod:`stone.models`. Failures are not retried here;
``subprocess.CalledProcessError`` and JSON/validation errors propagate to
the caller unchanged.
"""

from __future__ import annotations

import json
import logging
import re
import subprocess
from typing import Any
from urllib.parse import quote

from stone.models import (
    CheckRun,
    IssueComment,
    IssueSnapshot,
    PullRequest,
    PullRequestFile,
    ReviewComment,
)

logger = logging.getLogger(__name__)

_URL_NUMBER_RE = re.compile(r"/(\d+)\s*$")
_SEARCH_LIMIT = 100


def _number_from_url(output: str) -> int:
    match = _URL_NUMBER_RE.search(output.strip())
    if match is None:
        msg = f"Could not parse a number from gh output: {output!r}"
        raise ValueError(msg)
    return int(match.group(1))


class ForgeClient:
    def __init__(self, repo: str | None = None) -> None:
        self.repo = repo

    # ── plumbing ─────────────────────────────────────────────────────

    def _repo_args(self) -> list[str]:
        return ["--repo", self.repo] if self.repo else []

    def _api_path(self, path: str) -> str:
        # gh substitutes {owner}/{repo} from the current checkout.
        prefix = f"repos/{self.repo}" if self.repo else "repos/{owner}/{repo}"
        return f"{prefix}/{path}"

    def _gh(self, *args: str) -> str:
        logger.debug("gh %s", " ".join(args[:3]))
        result = subprocess.run(
            ["gh", *args],
            capture_output=True,
            text=True,
            check=True,
        )
        return result.stdout

    def _api(self, path: str) -> Any:
        return json.loads(self._gh("api", self._api_path(path)))

    def _api_list(self, path: str, jq: str = ".[]") -> list[dict]:
        """Fetch every page of a list endpoint as newline-delimited JSON."""
        out = self._gh("api", self._api_path(path), "--paginate", "--jq", jq)
        return [json.loads(line) for line in out.splitlines() if line.strip()]

    # ── issues ───────────────────────────────────────────────────────

    def get_issue(self, number: int) -> IssueSnapshot:
        out = self._gh(
            "issue",
            "view",
            str(number),
            *self._repo_args(),
            "--json",
            "number,title,body,state,labels,createdAt,closedAt",
        )
        data = json.loads(out)
        return IssueSnapshot(
            number=data["number"],
            title=data["title"],
            body=data.get("body") or "",
            state=data.get("state", "OPEN"),
            labels=[lbl["name"] for lbl in data.get("labels", [])],
            created_at=data.get("createdAt"),
            closed_at=data.get("closedAt"),
        )

    def list_comments(self, number: int) -> list[IssueComment]:
        return [
            IssueComment(
                id=c.get("id", 0),
                author=(c.get("user") or {}).get("login", ""),
                body=c.get("body") or "",
                created_at=c.get("created_at"),
            )
            for c in self._api_list(f"issues/{number}/comments")
        ]

    def create_comment(self, number: int, body: str) -> None:
        self._gh("issue", "comment", str(number), *self._repo_args(), "--body", body)

    def add_labels(self, number: int, names: list[str]) -> None:
        if not names:
            return
        self._gh(
            "issue",
            "edit",
            str(number),
            *self._repo_args(),
            "--add-label",
            ",".join(names),
        )

    def remove_label(self, number: int, name: str) -> None:
        self._gh(
            "issue", "edit", str(number), *self._repo_args(), "--remove-label", name
        )

    def list_timeline(self, number: int) -> list[dict]:
        return self._api_list(f"issues/{number}/timeline")

    def create_issue(self, title: str, body: str, labels: list[str]) -> int:
        args = ["issue", "create", *self._repo_args(), "--title", title, "--body", body]
        if labels:
            args.extend(["--label", ",".join(labels)])
        return _number_from_url(self._gh(*args))

    # ── pull requests ────────────────────────────────────────────────

    def get_pull_request(self, number: int) -> PullRequest:
        data = self._api(f"pulls/{number}")
        return PullRequest(
            number=data["number"],
            title=data.get("title") or "",
            body=data.get("body") or "",
            state=data.get("state", "open"),
            head_ref=data["head"]["ref"],
            base_ref=data["base"]["ref"],
            requested_reviewers=[
                r["login"] for r in data.get("requested_reviewers") or []
            ],
            mergeable=data.get("mergeable"),
            merged=bool(data.get("merged")),
        )

    def list_pull_request_files(self, number: int) -> list[PullRequestFile]:
        return [
            PullRequestFile.model_validate(f)
            for f in self._api_list(f"pulls/{number}/files")
        ]

    def list_review_comments(self, number: int) -> list[ReviewComment]:
        return [
            ReviewComment(
                author=(c.get("user") or {}).get("login") or "unknown",
                body=c.get("body") or "",
            )
            for c in self._api_list(f"pulls/{number}/comments")
        ]

    def list_check_runs(self, ref: str) -> list[CheckRun]:
        path = f"commits/{quote(ref, safe='')}/check-runs"
        return [
            CheckRun.model_validate(c)
            for c in self._api_list(path, jq=".check_runs[]")
        ]

    def create_pull_request(self, title: str, body: str, head: str, base: str) -> int:
        out = self._gh(
            "pr",
            "create",
            *self._repo_args(),
            "--title",
            title,
            "--body",
            body,
            "--head",
            head,
            "--base",
            base,
        )
        return _number_from_url(out)

    def search_pull_requests_referencing(
        self, issue_number: int, state: str = "all"
    ) -> list[int]:
        """PR numbers whose body mentions the issue number, newest first."""
        out = self._gh(
            "pr",
            "list",
            *self._repo_args(),
            "--state",
            state,
            "--search",
            f"{issue_number} in:body",
            "--limit",
            str(_SEARCH_LIMIT),
            "--json",
            "number,body",
        )
        mention = re.compile(rf"(?<!\d){issue_number}(?!\d)")
        return [
            item["number"]
            for item in json.loads(out)
            if mention.search(item.get("body") or "")
        ]

    def search_open_pull_requests_referencing(self, issue_number: int) -> list[int]:
        return self.search_pull_requests_referencing(issue_number, state="open")
