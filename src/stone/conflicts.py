"""Merge-conflict detection and automated resolution for feature branches.

Detection simulates a three-way merge with ``git merge-tree`` and never
moves a branch; it only refreshes the origin tracking refs it compares.
Resolution works in a throwaway clone that is removed when the attempt
ends, whether it succeeded, failed, or raised.
"""

from __future__ import annotations

import logging
import re
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from stone.config import StoneConfig
from stone.forge import ForgeClient
from stone.git import GitRunner
from stone.models import ConflictReport, ConflictResolutionResult

logger = logging.getLogger(__name__)

_MAX_REBASE_STEPS = 200
_MARKER_RE = re.compile(r"^\+?<{7}", re.MULTILINE)
_ENTRY_RE = re.compile(r"^  (?:base|our|their)\s+\d+ [0-9a-f]+ (.+)$")
_DIFF_PREFIXES = (" ", "+", "-", "@", "\\")


def parse_merge_tree(output: str) -> list[str]:
    """Paths whose merge-tree section contains conflict markers, in order."""
    paths: list[str] = []
    current: str | None = None
    conflicted = False

    def _flush() -> None:
        if current is not None and conflicted and current not in paths:
            paths.append(current)

    for line in output.splitlines():
        if line and not line.startswith(_DIFF_PREFIXES):
            # Section header such as "changed in both" or "added in remote".
            _flush()
            current, conflicted = None, False
            continue
        entry = _ENTRY_RE.match(line)
        if entry:
            current = entry.group(1)
        elif line.startswith("+<<<<<<<"):
            conflicted = True
    _flush()
    return paths


class ResolutionStrategy(Protocol):
    def resolve(self, git: GitRunner, workdir: Path, paths: list[str]) -> list[str] | None:
        """Resolve and stage *paths*; return the touched paths or None on failure."""
        ...


class UnionMergeStrategy:
    """Keep both sides of every hunk via ``git merge-file --union``.

    Only both-modified (``UU``) conflicts are attempted; anything else
    (add/add, modify/delete, binary content) fails the attempt.
    """

    def resolve(self, git: GitRunner, workdir: Path, paths: list[str]) -> list[str] | None:
        resolved: list[str] = []
        for path in paths:
            code = git.status_code(workdir, path)
            if code != "UU":
                logger.info("Conflict %s: type %r not auto-resolvable", path, code)
                return None

            base = git.show_stage(workdir, 1, path)
            ours = git.show_stage(workdir, 2, path)
            theirs = git.show_stage(workdir, 3, path)
            if base is None or ours is None or theirs is None:
                logger.warning("Conflict %s: missing or binary index stage", path)
                return None

            merged = self._merge_union(git, base, ours, theirs)
            if merged is None:
                logger.warning("Conflict %s: git merge-file failed", path)
                return None

            (workdir / path).write_text(merged)
            git.add(workdir, path)
            logger.info("Auto-resolved conflict in %s using union merge", path)
            resolved.append(path)
        return resolved

    @staticmethod
    def _merge_union(git: GitRunner, base: str, ours: str, theirs: str) -> str | None:
        with tempfile.TemporaryDirectory() as tmpdir:
            base_path = Path(tmpdir) / "base"
            ours_path = Path(tmpdir) / "ours"
            theirs_path = Path(tmpdir) / "theirs"
            base_path.write_text(base)
            ours_path.write_text(ours)
            theirs_path.write_text(theirs)
            if not git.merge_file_union(ours_path, base_path, theirs_path):
                return None
            return ours_path.read_text()


class ConflictResolver:
    def __init__(
        self,
        forge: ForgeClient,
        git: GitRunner,
        config: StoneConfig,
        strategy: ResolutionStrategy | None = None,
    ) -> None:
        self.forge = forge
        self.git = git
        self.config = config
        self.strategy = strategy or UnionMergeStrategy()

    def _branches(self, issue_number: int) -> tuple[str, str]:
        branches = self.config.branches
        return branches.feature_branch(issue_number), branches.main

    def _sync(self, *branches: str) -> bool:
        """Fetch *branches* from origin. False when there is no origin."""
        if not self.git.has_remote():
            return False
        self.git.fetch_refs(*branches)
        return True

    def _ref(self, branch: str, remote: bool) -> str:
        """Origin tracking ref when synced, else the local branch, else origin's."""
        tracking = f"origin/{branch}"
        if remote and self.git.branch_exists(tracking):
            return tracking
        if self.git.branch_exists(branch):
            return branch
        if self.git.branch_exists(tracking):
            return tracking
        return branch

    # ── detection ────────────────────────────────────────────────────

    def detect_conflicts(self, issue_number: int) -> ConflictReport:
        logger.info("Detecting conflicts for issue #%d", issue_number)
        feature, base = self._branches(issue_number)
        remote = self._sync(base, feature)
        base_ref, head_ref = self._ref(base, remote), self._ref(feature, remote)

        ancestor = self.git.merge_base(base_ref, head_ref)
        output = self.git.simulate_merge(ancestor, base_ref, head_ref)

        if not _MARKER_RE.search(output):
            return ConflictReport(has_conflicts=False, branch=feature, base=base)
        return ConflictReport(
            has_conflicts=True,
            conflicting_paths=parse_merge_tree(output),
            branch=feature,
            base=base,
        )

    # ── resolution ───────────────────────────────────────────────────

    def resolve_conflicts(self, issue_number: int) -> ConflictResolutionResult:
        """Detect, then rebase the feature branch in a scratch clone and push.

        Labels the issue resolved or manual-resolution-needed. Exceptions
        from clone/rebase/push are reported on the issue and re-raised.
        """
        logger.info("Resolving conflicts for issue #%d", issue_number)
        report = self.detect_conflicts(issue_number)

        if not report.has_conflicts:
            self.forge.create_comment(
                issue_number,
                "## Conflict Resolution\n\n"
                f"No merge conflicts detected for issue #{issue_number}. "
                "The branch can be merged cleanly.",
            )
            return ConflictResolutionResult(success=True)

        result = self.attempt_resolution(issue_number, report)
        labels = self.config.labels
        if result.success:
            touched = "\n".join(f"- {p}" for p in result.resolved_paths) or "- (none)"
            self.forge.create_comment(
                issue_number,
                "## Conflict Resolution\n\n"
                f"Merge conflicts were automatically resolved for issue #{issue_number}. "
                f"The branch can now be merged.\n\nResolved files:\n{touched}",
            )
            self.forge.add_labels(issue_number, [labels.conflicts_resolved])
        else:
            details = "\n".join(f"- {p}" for p in report.conflicting_paths)
            self.forge.create_comment(
                issue_number,
                "## Conflict Resolution\n\n"
                f"Merge conflicts could not be automatically resolved for issue "
                f"#{issue_number}. Manual intervention is required.\n\n"
                f"Conflicting files:\n{details}",
            )
            self.forge.add_labels(issue_number, [labels.manual_resolution])
            logger.warning(
                "Manual resolution needed for issue #%d: %s", issue_number, result.error
            )

        self.track_merge_status(issue_number)
        return result

    def attempt_resolution(
        self, issue_number: int, report: ConflictReport
    ) -> ConflictResolutionResult:
        feature, base = report.branch, report.base
        url = self.config.repository.clone_url or self.git.remote_url()

        with tempfile.TemporaryDirectory(prefix=f"stone-{issue_number}-") as tmp:
            try:
                workdir = self.git.clone_and_checkout(url, feature, Path(tmp) / "repo")
                self.git.fetch(workdir, base)
                result = self._rebase_and_resolve(workdir, f"origin/{base}")
                if result.success:
                    self.git.push(workdir, feature)
            except Exception as exc:
                logger.error(
                    "Conflict resolution for issue #%d failed: %s", issue_number, exc
                )
                self.forge.create_comment(
                    issue_number,
                    "## Conflict Resolution Error\n\n"
                    f"Automated resolution of `{feature}` onto `{base}` "
                    f"raised an error:\n\n```\n{exc}\n```",
                )
                raise
        return result

    def _rebase_and_resolve(self, workdir: Path, onto: str) -> ConflictResolutionResult:
        if self.git.rebase(workdir, onto):
            return ConflictResolutionResult(success=True)

        touched: list[str] = []
        for _ in range(_MAX_REBASE_STEPS):
            paths = self.git.conflicted_paths(workdir)
            if not paths:
                self.git.abort_rebase(workdir)
                return ConflictResolutionResult(
                    success=False,
                    resolved_paths=touched,
                    error="Rebase stopped without conflicted paths",
                )
            resolved = self.strategy.resolve(self.git, workdir, paths)
            if resolved is None:
                self.git.abort_rebase(workdir)
                return ConflictResolutionResult(
                    success=False,
                    resolved_paths=touched,
                    error="Could not resolve: " + ", ".join(paths),
                )
            touched.extend(p for p in resolved if p not in touched)
            if self.git.continue_rebase(workdir):
                return ConflictResolutionResult(success=True, resolved_paths=touched)

        self.git.abort_rebase(workdir)
        return ConflictResolutionResult(
            success=False,
            resolved_paths=touched,
            error=f"Rebase did not finish within {_MAX_REBASE_STEPS} steps",
        )

    # ── status ───────────────────────────────────────────────────────

    def _pull_request_status(self, issue_number: int) -> str:
        numbers = self.forge.search_open_pull_requests_referencing(issue_number)
        if not numbers:
            return "No open PR found"
        pr = self.forge.get_pull_request(numbers[0])
        if pr.merged:
            status = "merged"
        elif pr.mergeable is False:
            status = "conflicts"
        elif pr.mergeable is True:
            status = "ready to merge"
        else:
            status = "open"
        return f"#{pr.number} ({status})"

    def track_merge_status(self, issue_number: int) -> None:
        """Post a merge status report. No labels change."""
        logger.info("Tracking merge status for issue #%d", issue_number)
        issue = self.forge.get_issue(issue_number)
        feature, base = self._branches(issue_number)

        remote = self._sync(base, feature)
        head_ref = self._ref(feature, remote)
        exists = self.git.branch_exists(head_ref)
        behind = self.git.behind_count(head_ref, self._ref(base, remote)) if exists else 0
        conflicts = self.detect_conflicts(issue_number).has_conflicts if exists else False

        report = (
            "## Merge Status Report\n\n"
            f"Issue #{issue_number} - {issue.title}\n\n"
            f"* Branch: {feature} {'exists' if exists else 'does not exist'}\n"
            f"* Branch is {behind} commit(s) behind {base}\n"
            f"* Pull request: {self._pull_request_status(issue_number)}\n"
            f"* Merge conflicts: {'Yes' if conflicts else 'No'}\n\n"
            f"Last updated: {datetime.now(UTC).isoformat()}\n"
        )
        self.forge.create_comment(issue_number, report)
