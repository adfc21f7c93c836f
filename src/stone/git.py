"""Git command runner used by conflict detection and resolution."""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60

_COMMITTER_DEFAULTS = {
    "GIT_COMMITTER_NAME": "stone",
    "GIT_COMMITTER_EMAIL": "stone@localhost",
}


@dataclass
class GitResult:
    """Result of a git command."""

    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out


class GitError(Exception):
    """Raised when a git command that must succeed does not."""

    def __init__(self, args: list[str], result: GitResult) -> None:
        self.git_args = args
        self.result = result
        detail = result.stderr.strip() or result.stdout.strip()
        super().__init__(f"git {' '.join(args)} failed ({result.returncode}): {detail}")


class GitRunner:
    def __init__(self, repo_path: Path, timeout: int = DEFAULT_TIMEOUT) -> None:
        self.repo_path = repo_path
        self.timeout = timeout

    def _env(self) -> dict[str, str]:
        env = {**os.environ, "GIT_EDITOR": "true"}
        for key, value in _COMMITTER_DEFAULTS.items():
            env.setdefault(key, value)
        return env

    def run(
        self, args: list[str], cwd: Path | None = None, check: bool = True
    ) -> GitResult:
        """Run ``git -C <cwd> <args>``; raise GitError on failure when *check*."""
        workdir = cwd or self.repo_path
        cmd = ["git", "-C", str(workdir), *args]
        logger.debug("Running %s", " ".join(cmd))
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=self._env(),
            )
            result = GitResult(proc.returncode, proc.stdout, proc.stderr)
        except subprocess.TimeoutExpired:
            result = GitResult(
                returncode=-1,
                stdout="",
                stderr=f"Command timed out after {self.timeout}s",
                timed_out=True,
            )
        if check and not result.success:
            raise GitError(args, result)
        return result

    # ── read-only queries on the main repository ─────────────────────

    def merge_base(self, base: str, head: str) -> str:
        return self.run(["merge-base", base, head]).stdout.strip()

    def simulate_merge(self, merge_base: str, base: str, head: str) -> str:
        """Three-way merge in memory; output carries conflict markers, refs untouched."""
        return self.run(["merge-tree", merge_base, base, head]).stdout

    def branch_exists(self, branch: str) -> bool:
        return self.run(["rev-parse", "--verify", "--quiet", branch], check=False).success

    def behind_count(self, branch: str, base: str) -> int:
        out = self.run(["rev-list", "--count", f"{branch}..{base}"]).stdout.strip()
        return int(out or 0)

    def remote_url(self, remote: str = "origin") -> str:
        return self.run(["remote", "get-url", remote]).stdout.strip()

    def has_remote(self, remote: str = "origin") -> bool:
        return self.run(["remote", "get-url", remote], check=False).success

    def fetch_refs(self, *branches: str, remote: str = "origin") -> list[str]:
        """Update ``<remote>/<branch>`` tracking refs; return the branches fetched.

        A branch missing on the remote is skipped, not an error.
        """
        fetched: list[str] = []
        for branch in branches:
            refspec = f"+refs/heads/{branch}:refs/remotes/{remote}/{branch}"
            result = self.run(["fetch", "--quiet", remote, refspec], check=False)
            if result.success:
                fetched.append(branch)
            else:
                logger.warning(
                    "Could not fetch %s from %s: %s",
                    branch,
                    remote,
                    result.stderr.strip(),
                )
        return fetched

    # ── working-copy operations ──────────────────────────────────────

    def clone_and_checkout(self, url: str, branch: str, dest: Path) -> Path:
        self.run(["clone", "--quiet", "--branch", branch, url, str(dest)], cwd=dest.parent)
        return dest

    def fetch(self, workdir: Path, ref: str) -> None:
        self.run(["fetch", "--quiet", "origin", ref], cwd=workdir)

    def rebase(self, workdir: Path, onto: str) -> bool:
        """Rebase onto *onto*. False when the rebase stopped on conflicts."""
        return self.run(["rebase", onto], cwd=workdir, check=False).success

    def continue_rebase(self, workdir: Path) -> bool:
        return self.run(["rebase", "--continue"], cwd=workdir, check=False).success

    def abort_rebase(self, workdir: Path) -> None:
        self.run(["rebase", "--abort"], cwd=workdir, check=False)

    def conflicted_paths(self, workdir: Path) -> list[str]:
        out = self.run(["diff", "--name-only", "--diff-filter=U"], cwd=workdir).stdout
        return [line.strip() for line in out.splitlines() if line.strip()]

    def status_code(self, workdir: Path, path: str) -> str:
        """Two-letter porcelain status (``UU``, ``AA``, ...) for *path*."""
        out = self.run(["status", "--porcelain", "--", path], cwd=workdir).stdout
        return out[:2] if len(out) >= 2 else ""

    def show_stage(self, workdir: Path, stage: int, path: str) -> str | None:
        """Index content at *stage* (1 base, 2 ours, 3 theirs).

        None if missing, binary, or not valid UTF-8.
        """
        cmd = ["git", "-C", str(workdir), "show", f":{stage}:{path}"]
        proc = subprocess.run(cmd, capture_output=True, timeout=self.timeout)
        if proc.returncode != 0 or b"\x00" in proc.stdout:
            return None
        try:
            return proc.stdout.decode("utf-8")
        except UnicodeDecodeError:
            return None

    def merge_file_union(self, ours: Path, base: Path, theirs: Path) -> bool:
        """``git merge-file --union`` writing the result into *ours*."""
        result = self.run(
            ["merge-file", "--union", str(ours), str(base), str(theirs)],
            cwd=ours.parent,
            check=False,
        )
        return result.returncode >= 0

    def add(self, workdir: Path, path: str) -> None:
        self.run(["add", "--", path], cwd=workdir)

    def push(self, workdir: Path, branch: str) -> None:
        self.run(
            ["push", "--force-with-lease", "origin", f"HEAD:{branch}"], cwd=workdir
        )
