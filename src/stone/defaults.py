"""Compiled-in default configuration values for stone.

This module is the single source of truth for all default settings.
Other modules should import from here rather than duplicating values.
"""

from __future__ import annotations

from typing import Final

REPOSITORY_DEFAULTS: Final[dict[str, str]] = {
    "slug": "",
    "path": "",
    "clone_url": "",
}

BRANCH_DEFAULTS: Final[dict[str, str]] = {
    "main": "main",
    "prefix": "stone/",
}

AUDIT_DEFAULTS: Final[dict[str, int | list[str]]] = {
    "min_code_coverage": 80,
    "required_reviewers": 1,
    "max_complexity": 20,
    "source_extensions": [
        ".py",
        ".ts",
        ".tsx",
        ".js",
        ".jsx",
        ".go",
        ".rs",
        ".java",
        ".rb",
    ],
}

LABEL_DEFAULTS: Final[dict[str, str]] = {
    "intake": "stone-process",
    "planning": "stone-pm",
    "qa_spec": "stone-qa",
    "implementation": "stone-feature-implement",
    "audit": "stone-audit",
    "conflict_resolution": "stone-conflict-resolution",
    "ready_for_test": "stone-ready-for-tests",
    "docs": "stone-docs",
    "pull_request": "stone-pr",
    "complete": "stone-complete",
    "audit_passed": "stone-audit-pass",
    "audit_failed": "stone-audit-failed",
    "conflicts_resolved": "stone-conflicts-resolved",
    "manual_resolution": "stone-manual-resolution-needed",
    "feedback_processed": "stone-feedback-processed",
}


_BARE_KEY_CHARS = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
)


def _quote_key(key: str) -> str:
    if key and all(c in _BARE_KEY_CHARS for c in key):
        return key
    return f'"{key}"'


def _format_toml_value(value: object) -> str:
    if isinstance(value, str):
        return f'"{value}"'
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, list):
        return "[" + ", ".join(_format_toml_value(v) for v in value) + "]"
    msg = f"Unsupported type: {type(value)}"
    raise TypeError(msg)


def _section_to_toml(name: str, data: dict[str, object]) -> str:
    lines = [f"[{name}]"]
    for key, value in data.items():
        lines.append(f"{_quote_key(key)} = {_format_toml_value(value)}")
    return "\n".join(lines)


def generate_toml() -> str:
    """Generate a TOML configuration string from compiled-in defaults."""
    sections = [
        _section_to_toml("repository", REPOSITORY_DEFAULTS),
        _section_to_toml("branch", BRANCH_DEFAULTS),
        _section_to_toml("audit", AUDIT_DEFAULTS),
        _section_to_toml("label", LABEL_DEFAULTS),
    ]
    return "\n\n".join(sections) + "\n"
