from __future__ import annotations

import dataclasses
import shutil
import subprocess
from pathlib import Path

import pytest

from conftest import FakeForge
from stone.config import RepositoryConfig, StoneConfig
from stone.conflicts import ConflictResolver
from stone.git import GitRunner

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


@pytest.fixture(autouse=True)
def _git_identity(monkeypatch: pytest.MonkeyPatch) -> None:
    for prefix in ("GIT_AUTHOR", "GIT_COMMITTER"):
        monkeypatch.setenv(f"{prefix}_NAME", "Test")
        monkeypatch.setenv(f"{prefix}_EMAIL", "test@example.com")


def _run(cwd: Path, *args: str) -> str:
    return subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=True
    ).stdout


def _commit(repo: Path, name: str, content: str, message: str) -> None:
    (repo / name).write_text(content)
    _run(repo, "add", name)
    _run(repo, "commit", "-q", "-m", message)


def _make_repo(tmp_path: Path, feature_change: tuple[str, str], main_change: tuple[str, str]) -> Path:
    repo = tmp_path / "work"
    repo.mkdir()
    _run(repo, "init", "-q", "-b", "main")
    _commit(repo, "app.txt", "one\n", "init")
    _run(repo, "checkout", "-q", "-b", "stone/1")
    _commit(repo, *feature_change, "feature")
    _run(repo, "checkout", "-q", "main")
    _commit(repo, *main_change, "main")
    return repo


def _with_origin(tmp_path: Path, repo: Path, config: StoneConfig) -> tuple[Path, StoneConfig]:
    origin = tmp_path / "origin.git"
    _run(tmp_path, "clone", "-q", "--bare", str(repo), str(origin))
    _run(repo, "remote", "add", "origin", str(origin))
    _run(repo, "fetch", "-q", "origin")
    return origin, dataclasses.replace(
        config, repository=RepositoryConfig(clone_url=str(origin))
    )


class TestDetectConflictsOnRealRepo:
    def test_same_line_edits_conflict(
        self, tmp_path: Path, forge: FakeForge, config: StoneConfig
    ):
        repo = _make_repo(tmp_path, ("app.txt", "one\nfeature\n"), ("app.txt", "one\nmain\n"))
        report = ConflictResolver(forge, GitRunner(repo), config).detect_conflicts(1)
        assert report.has_conflicts is True
        assert report.conflicting_paths == ["app.txt"]

    def test_separate_files_merge_cleanly(
        self, tmp_path: Path, forge: FakeForge, config: StoneConfig
    ):
        repo = _make_repo(tmp_path, ("feature.txt", "x\n"), ("main.txt", "y\n"))
        resolver = ConflictResolver(forge, GitRunner(repo), config)
        first = resolver.detect_conflicts(1)
        assert first.has_conflicts is False
        assert first.conflicting_paths == []
        assert resolver.detect_conflicts(1) == first

    def test_detection_leaves_refs_alone(
        self, tmp_path: Path, forge: FakeForge, config: StoneConfig
    ):
        repo = _make_repo(tmp_path, ("app.txt", "one\nfeature\n"), ("app.txt", "one\nmain\n"))
        before = _run(repo, "show-ref")
        ConflictResolver(forge, GitRunner(repo), config).detect_conflicts(1)
        assert _run(repo, "show-ref") == before
        assert _run(repo, "status", "--porcelain") == ""


class TestResolveConflictsOnRealRepo:
    def test_union_merge_is_pushed(
        self, tmp_path: Path, forge: FakeForge, config: StoneConfig
    ):
        repo = _make_repo(tmp_path, ("app.txt", "one\nfeature\n"), ("app.txt", "one\nmain\n"))
        origin, config = _with_origin(tmp_path, repo, config)
        forge.add_issue(1)

        result = ConflictResolver(forge, GitRunner(repo), config).resolve_conflicts(1)

        assert result.success is True
        assert result.resolved_paths == ["app.txt"]
        assert config.labels.conflicts_resolved in forge.labels(1)
        pushed = _run(origin, "show", "stone/1:app.txt")
        assert "main" in pushed
        assert "feature" in pushed
        assert "<<<<<<<" not in pushed

    def test_status_after_resolution_reflects_pushed_branch(
        self, tmp_path: Path, forge: FakeForge, config: StoneConfig
    ):
        repo = _make_repo(tmp_path, ("app.txt", "one\nfeature\n"), ("app.txt", "one\nmain\n"))
        _, config = _with_origin(tmp_path, repo, config)
        forge.add_issue(1)

        result = ConflictResolver(forge, GitRunner(repo), config).resolve_conflicts(1)

        assert result.success is True
        status = forge.bodies(1)[-1]
        assert status.startswith("## Merge Status Report")
        assert "Merge conflicts: No" in status
        assert "Branch is 0 commit(s) behind main" in status


class TestDetectAgainstOrigin:
    def test_sees_branch_updated_only_on_origin(
        self, tmp_path: Path, forge: FakeForge, config: StoneConfig
    ):
        repo = _make_repo(tmp_path, ("feature.txt", "x\n"), ("app.txt", "one\nmain\n"))
        origin, config = _with_origin(tmp_path, repo, config)
        other = tmp_path / "other"
        _run(tmp_path, "clone", "-q", "--branch", "stone/1", str(origin), str(other))
        _commit(other, "app.txt", "one\nfeature\n", "clash with main")
        _run(other, "push", "-q", "origin", "stone/1")

        report = ConflictResolver(forge, GitRunner(repo), config).detect_conflicts(1)

        assert report.has_conflicts is True
        assert report.conflicting_paths == ["app.txt"]
