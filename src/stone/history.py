from __future__ import annotations

import json
import re
from collections.abc import Iterable
from datetime import UTC, datetime

from pydantic import BaseModel

from stone.models import IssueComment

_MARKER = "STONE_HISTORY_ENTRY"
_ENTRY_RE = re.compile(rf"<!--\s*{_MARKER}\s*(\{{.*?\}})\s*-->", re.DOTALL)


class HistoryEntry(BaseModel):
    timestamp: datetime
    status: str


def render_history_entry(status: str, now: datetime | None = None) -> str:
    """Render a hidden HTML comment recording a workflow status change."""
    stamp = (now or datetime.now(UTC)).isoformat()
    payload = json.dumps({"timestamp": stamp, "status": status})
    return f"<!-- {_MARKER}\n{payload}\n-->"


def parse_history(comments: Iterable[IssueComment]) -> list[HistoryEntry]:
    """Collect history entries from comments in posting order.

    Malformed markers are skipped; the history is observational only.
    """
    entries: list[HistoryEntry] = []
    for comment in comments:
        for match in _ENTRY_RE.finditer(comment.body):
            try:
                entries.append(HistoryEntry.model_validate_json(match.group(1)))
            except ValueError:
                continue
    return entries
