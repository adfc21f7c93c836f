from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Sequence

from stone.classify import (
    Classifier,
    feedback_priority_classifier,
    feedback_type_classifier,
)
from stone.config import StoneConfig, TeamConfig
from stone.forge import ForgeClient
from stone.models import (
    FeedbackItem,
    FeedbackPriority,
    FeedbackType,
    ReviewComment,
)

logger = logging.getLogger(__name__)

_PRIORITY_RANK = {
    FeedbackPriority.HIGH: 0,
    FeedbackPriority.MEDIUM: 1,
    FeedbackPriority.LOW: 2,
}
_SLUG_RE = re.compile(r"\s+")


def extract_feedback_content(body: str) -> str:
    """Drop quoted (``>``) lines from a comment."""
    return "\n".join(
        line for line in body.split("\n") if not line.strip().startswith(">")
    ).strip()


def team_label(name: str) -> str:
    return "team-" + _SLUG_RE.sub("-", name.strip().lower())


def match_teams(items: Sequence[FeedbackItem], teams: Sequence[TeamConfig]) -> list[str]:
    """Teams with at least one area keyword found in the combined feedback."""
    combined = " ".join(item.content for item in items).lower()
    return [
        team.name
        for team in teams
        if any(area.lower() in combined for area in team.areas)
    ]


def render_feedback_issue(items: Sequence[FeedbackItem], source_number: int) -> str:
    highest = min((i.priority for i in items), key=_PRIORITY_RANK.__getitem__)
    body = f"# Feedback for #{source_number}\n\nPriority: {highest.value}\n\n"

    grouped: dict[FeedbackType, list[FeedbackItem]] = {}
    for item in items:
        grouped.setdefault(item.type, []).append(item)

    for kind, group in grouped.items():
        body += f"## {kind.value.capitalize()}\n\n"
        for item in group:
            source = f" (PR #{item.source_pr})" if item.source_pr else ""
            body += f"### From @{item.author}{source}\n\n"
            body += f"{item.content}\n\n"
            body += f"Priority: {item.priority.value}\n\n---\n\n"

    body += f"Generated from pull request feedback on issue #{source_number}."
    return body


class FeedbackHandler:
    def __init__(
        self,
        forge: ForgeClient,
        config: StoneConfig,
        type_classifier: Classifier | None = None,
        priority_classifier: Classifier | None = None,
    ) -> None:
        self.forge = forge
        self.config = config
        self.type_classifier = type_classifier or feedback_type_classifier()
        self.priority_classifier = priority_classifier or feedback_priority_classifier()

    def classify_comment(
        self, comment: ReviewComment, source_pr: int | None = None
    ) -> FeedbackItem:
        content = extract_feedback_content(comment.body)
        return FeedbackItem(
            type=FeedbackType(self.type_classifier.classify(content)),
            content=content,
            author=comment.author,
            priority=FeedbackPriority(self.priority_classifier.classify(content)),
            source_pr=source_pr,
        )

    def analyze_pr_comments(self, pr_number: int) -> list[FeedbackItem]:
        logger.info("Analyzing PR #%d comments for feedback", pr_number)
        items = [
            self.classify_comment(c, source_pr=pr_number)
            for c in self.forge.list_review_comments(pr_number)
        ]
        logger.info("Found %d feedback items in PR #%d", len(items), pr_number)
        return items

    def prioritize_feedback(self, items: Sequence[FeedbackItem]) -> list[FeedbackItem]:
        """Sort high to low by the priority each item carries, stable within a level."""
        return sorted(items, key=lambda i: _PRIORITY_RANK[i.priority])

    def generate_feedback_issue(
        self, items: Sequence[FeedbackItem], source_number: int
    ) -> int | None:
        """Open an issue summarizing *items*. None when there is nothing to file."""
        if not items:
            logger.info("No feedback to generate issue for")
            return None

        main_type = Counter(i.type for i in items).most_common(1)[0][0]
        highest = min((i.priority for i in items), key=_PRIORITY_RANK.__getitem__)
        number = self.forge.create_issue(
            title=f"Feedback: {main_type.value} from #{source_number}",
            body=render_feedback_issue(items, source_number),
            labels=["feedback", f"priority-{highest.value}", main_type.value],
        )
        logger.info("Created feedback issue #%d", number)
        return number

    def route_feedback(self, issue_number: int, items: Sequence[FeedbackItem]) -> list[str]:
        """Comment with the matched teams and label the issue. Returns team labels."""
        if not items:
            return []

        teams = match_teams(items, self.config.teams)
        if teams:
            listing = "\n".join(f"- {t}" for t in teams)
            self.forge.create_comment(
                issue_number,
                "## Feedback Routing\n\n"
                f"This feedback has been routed to the following teams:\n\n{listing}",
            )
            labels = [team_label(t) for t in teams]
        else:
            self.forge.create_comment(
                issue_number,
                "## Feedback Routing\n\n"
                "No specific teams could be identified for this feedback. "
                "General team should review.",
            )
            labels = ["team-general"]
        self.forge.add_labels(issue_number, labels)
        return labels

    def process_feedback(self, issue_number: int) -> int | None:
        """Collect PR feedback for an issue, file it, route it, and report back."""
        logger.info("Processing feedback for issue #%d", issue_number)
        items: list[FeedbackItem] = []
        for pr_number in self.forge.search_pull_requests_referencing(issue_number):
            items.extend(self.analyze_pr_comments(pr_number))

        signal = [i for i in items if i.type is not FeedbackType.OTHER]
        if not signal:
            self.forge.create_comment(
                issue_number,
                f"## Feedback Processing\n\nNo feedback found for issue #{issue_number}.",
            )
            return None

        prioritized = self.prioritize_feedback(signal)
        feedback_issue = self.generate_feedback_issue(prioritized, issue_number)
        if feedback_issue is None:
            return None
        self.route_feedback(feedback_issue, prioritized)

        self.forge.create_comment(
            issue_number,
            "## Feedback Processing\n\n"
            f"Feedback has been collected and organized in issue #{feedback_issue}.",
        )
        self.forge.add_labels(issue_number, [self.config.labels.feedback_processed])
        return feedback_issue
