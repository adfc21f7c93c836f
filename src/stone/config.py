from __future__ import annotations

import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from stone.defaults import (
    AUDIT_DEFAULTS,
    BRANCH_DEFAULTS,
    LABEL_DEFAULTS,
    REPOSITORY_DEFAULTS,
    generate_toml,
)

CONFIG_FILENAME = "stone.toml"
CONFIG_DIR = ".stone"


@dataclass(frozen=True)
class RepositoryConfig:
    slug: str | None = None
    path: Path | None = None
    clone_url: str | None = None


@dataclass(frozen=True)
class BranchConfig:
    main: str = "main"
    prefix: str = "stone/"

    def feature_branch(self, issue_number: int) -> str:
        return f"{self.prefix}{issue_number}"


@dataclass(frozen=True)
class AuditConfig:
    min_code_coverage: int
    required_reviewers: int
    max_complexity: int
    source_extensions: tuple[str, ...] = ()


@dataclass(frozen=True)
class LabelConfig:
    intake: str
    planning: str
    qa_spec: str
    implementation: str
    audit: str
    conflict_resolution: str
    ready_for_test: str
    docs: str
    pull_request: str
    complete: str
    audit_passed: str
    audit_failed: str
    conflicts_resolved: str
    manual_resolution: str
    feedback_processed: str


@dataclass(frozen=True)
class TeamConfig:
    name: str
    areas: tuple[str, ...] = ()


@dataclass(frozen=True)
class StoneConfig:
    audit: AuditConfig
    labels: LabelConfig
    branches: BranchConfig = field(default_factory=BranchConfig)
    repository: RepositoryConfig = field(default_factory=RepositoryConfig)
    teams: tuple[TeamConfig, ...] = ()


def _deep_merge(base: dict, overrides: dict) -> dict:
    merged = dict(base)
    for key, value in overrides.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _build_defaults() -> dict:
    return {
        "repository": dict(REPOSITORY_DEFAULTS),
        "branch": dict(BRANCH_DEFAULTS),
        "audit": dict(AUDIT_DEFAULTS),
        "label": dict(LABEL_DEFAULTS),
        "team": [],
    }


def _config_from_dict(data: dict) -> StoneConfig:
    repo_data = data.get("repository", REPOSITORY_DEFAULTS)
    audit_data = data.get("audit", AUDIT_DEFAULTS)
    branch_data = data.get("branch", BRANCH_DEFAULTS)
    return StoneConfig(
        audit=AuditConfig(
            min_code_coverage=audit_data["min_code_coverage"],
            required_reviewers=audit_data["required_reviewers"],
            max_complexity=audit_data["max_complexity"],
            source_extensions=tuple(audit_data["source_extensions"]),
        ),
        labels=LabelConfig(**data.get("label", LABEL_DEFAULTS)),
        branches=BranchConfig(main=branch_data["main"], prefix=branch_data["prefix"]),
        repository=RepositoryConfig(
            slug=repo_data.get("slug") or None,
            path=Path(repo_data["path"]) if repo_data.get("path") else None,
            clone_url=repo_data.get("clone_url") or None,
        ),
        teams=tuple(
            TeamConfig(name=t["name"], areas=tuple(t.get("areas", [])))
            for t in data.get("team", [])
        ),
    )


def default_config() -> StoneConfig:
    return _config_from_dict(_build_defaults())


def load_config(project_root: Path) -> StoneConfig:
    """Load config: source defaults merged with .stone/stone.toml overrides."""
    defaults = _build_defaults()
    toml_path = project_root / CONFIG_DIR / CONFIG_FILENAME

    if not toml_path.is_file():
        return _config_from_dict(defaults)

    try:
        raw = toml_path.read_bytes()
        overrides = tomllib.loads(raw.decode())
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        print(f"Warning: failed to parse {toml_path}: {exc}", file=sys.stderr)
        return _config_from_dict(defaults)

    merged = _deep_merge(defaults, overrides)
    return _config_from_dict(merged)


def init_config(project_root: Path) -> Path:
    """Write .stone/stone.toml from source defaults. Backup existing."""
    config_dir = project_root / CONFIG_DIR
    config_dir.mkdir(parents=True, exist_ok=True)

    config_path = config_dir / CONFIG_FILENAME
    if config_path.exists():
        backup_path = config_path.with_suffix(".toml.bak")
        backup_path.write_text(config_path.read_text())

    config_path.write_text(generate_toml())
    return config_path
