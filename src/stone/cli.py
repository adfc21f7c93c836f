"""CLI entry point for stone."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from stone.models import AuditVerdict, ConflictReport, ConflictResolutionResult


def _add_issue_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("issue", type=int, help="Issue number")
    parser.add_argument(
        "--repo",
        default=None,
        help="GitHub repo in owner/repo format",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stone",
        description="Label-driven issue workflow for GitHub repositories",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )
    parser.add_argument(
        "--init",
        action="store_true",
        help="Generate .stone/stone.toml from source defaults",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    _add_issue_args(
        subparsers.add_parser("process", help="Run one workflow step for an issue")
    )
    _add_issue_args(subparsers.add_parser("audit", help="Audit an issue's pull request"))
    _add_issue_args(
        subparsers.add_parser("feedback", help="Collect and route PR feedback")
    )
    _add_issue_args(subparsers.add_parser("history", help="Show workflow history"))

    conflicts = subparsers.add_parser("conflicts", help="Merge conflict handling")
    conflicts.add_argument("action", choices=["detect", "resolve", "status"])
    _add_issue_args(conflicts)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the stone CLI."""
    parser = _build_parser()
    _args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if _args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if _args.init:
        from stone.config import init_config

        path = init_config(Path.cwd())
        print(f"Wrote {path}")
        return 0

    if _args.command is None:
        parser.print_help()
        return 0

    from stone.config import load_config
    from stone.forge import ForgeClient

    project_root = Path.cwd()
    config = load_config(project_root)
    forge = ForgeClient(repo=_args.repo or config.repository.slug)
    console = Console()

    if _args.command == "process":
        from stone.engine import IssueProcessor

        stage = IssueProcessor(forge, config).process_issue(_args.issue)
        console.print(f"Issue #{_args.issue} processed at stage [green]{stage}[/green]")
        return 0

    if _args.command == "audit":
        from stone.audit import AuditEvaluator

        verdict = AuditEvaluator(forge, config).evaluate(_args.issue)
        console.print(_render_verdict(_args.issue, verdict))
        return 0 if verdict.passed else 1

    if _args.command == "feedback":
        from stone.feedback import FeedbackHandler

        created = FeedbackHandler(forge, config).process_feedback(_args.issue)
        if created is None:
            console.print(f"No feedback found for issue #{_args.issue}")
        else:
            console.print(f"Feedback issue #{created} created")
        return 0

    if _args.command == "history":
        from stone.history import parse_history

        entries = parse_history(forge.list_comments(_args.issue))
        table = Table(title=f"Workflow history for #{_args.issue}")
        table.add_column("Timestamp", style="dim")
        table.add_column("Status", style="green")
        for entry in entries:
            table.add_row(entry.timestamp.isoformat(), entry.status)
        console.print(table)
        return 0

    if _args.command == "conflicts":
        from stone.conflicts import ConflictResolver
        from stone.git import GitRunner

        git = GitRunner(config.repository.path or project_root)
        resolver = ConflictResolver(forge, git, config)
        if _args.action == "detect":
            report = resolver.detect_conflicts(_args.issue)
            console.print(_render_conflicts(_args.issue, report))
            return 1 if report.has_conflicts else 0
        if _args.action == "resolve":
            result = resolver.resolve_conflicts(_args.issue)
            console.print(_render_resolution(_args.issue, result))
            return 0 if result.success else 1
        resolver.track_merge_status(_args.issue)
        console.print(f"Merge status posted on issue #{_args.issue}")
        return 0

    parser.print_help()
    return 0


def _mark(ok: bool) -> str:
    return "[green]pass[/green]" if ok else "[red]fail[/red]"


def _render_verdict(issue_number: int, verdict: AuditVerdict) -> Table:
    c, q = verdict.criteria, verdict.quality
    table = Table(title=f"Audit for #{issue_number}")
    table.add_column("Check", style="cyan")
    table.add_column("Value", justify="right")
    table.add_column("Result")
    table.add_row("Code coverage", f"{c.code_coverage}%", "")
    table.add_row("Reviewers", str(c.reviewers_assigned), "")
    table.add_row("Complexity", str(c.complexity_score), "")
    table.add_row("Unit tests", "", _mark(c.has_unit_tests))
    table.add_row("Lint", "", _mark(q.lint_passed))
    table.add_row("Types", "", _mark(q.types_passed))
    table.add_row("Tests", "", _mark(q.tests_passed))
    table.add_row("Requirements", "", _mark(verdict.verification.success))
    table.add_row("Verdict", "", _mark(verdict.passed), style="bold")
    return table


def _render_conflicts(issue_number: int, report: ConflictReport) -> Table:
    table = Table(title=f"Conflicts for #{issue_number} ({report.branch} -> {report.base})")
    table.add_column("Path", style="magenta")
    for path in report.conflicting_paths:
        table.add_row(path)
    if not report.has_conflicts:
        table.add_row("[dim]no conflicts[/dim]")
    return table


def _render_resolution(issue_number: int, result: ConflictResolutionResult) -> Table:
    table = Table(title=f"Conflict resolution for #{issue_number}")
    table.add_column("Resolved path", style="green")
    for path in result.resolved_paths:
        table.add_row(path)
    table.caption = "resolved" if result.success else f"failed: {result.error or ''}"
    return table


def _get_version() -> str:
    from stone import __version__

    return __version__


if __name__ == "__main__":
    sys.exit(main())
