"""Recognize revert commits and collapse them into the commits they undo."""

import logging
import re

from jmullan.jira_changelog.models import CommitRecord, Ticket
from jmullan.jira_changelog.text import collapse_newlines, none_as_empty

logger = logging.getLogger(__name__)

# the message `git revert` writes
REVERT_PATTERN = re.compile(r'^Revert ".*".*This reverts commit ([0-9a-fA-F]+)\.$')
REVERT_PREFIX = 'Revert "'
REVERT_PREFIXES = re.compile(r"^(?:Revert \")+")


def count_revert_prefixes(summary: str | None) -> int:
    """Count how many times a summary has been wrapped in `Revert "..."`."""
    match = REVERT_PREFIXES.match(none_as_empty(summary))
    if not match:
        return 0
    return len(match.group(0)) // len(REVERT_PREFIX)


def is_revert(summary: str | None, full_text: str | None) -> str | None:
    """Get the revision a commit reverts, or None.

    A revert of a revert puts the original work back, so an even number of
    nested reverts is not a revert at all.
    """
    match = REVERT_PATTERN.match(collapse_newlines(full_text))
    if not match:
        return None
    depth = count_revert_prefixes(summary)
    if depth % 2 == 0:
        logger.debug("Unrevert with %s nested reverts: %s", depth, summary)
        return None
    return match.group(1)


def decorate_reverts(commits: list[CommitRecord]) -> list[CommitRecord]:
    """Mark each commit with the revision it reverts, if any."""
    for commit in commits:
        commit.reverted = is_revert(commit.summary, commit.full_text)
        if commit.reverted:
            logger.debug("%s reverts %s", commit.revision, commit.reverted)
    return commits


def filter_reverted_commits(commits: list[CommitRecord]) -> list[CommitRecord]:
    """Keep only one commit of each revert pair that is entirely in the list.

    The original commit stays, marked with the commit that reverted it. A
    revert whose original is not in the list stays as it is.
    """
    commits_by_revision = {commit.revision: commit for commit in commits}
    # use a dictionary's keys as an ordered set
    reduced: dict[str, CommitRecord] = {}
    for commit in commits:
        reverted_commit = commits_by_revision.get(commit.reverted) if commit.reverted else None
        if reverted_commit is None:
            reduced.setdefault(commit.revision, commit)
            continue
        reverted_commit.reverted_by = commit.revision
        reduced.setdefault(reverted_commit.revision, reverted_commit)
    return list(reduced.values())


def decorate_ticket_reverts(tickets: list[Ticket]) -> list[Ticket]:
    """Mark tickets as reverted when their latest commit is part of a revert."""
    for ticket in tickets:
        if not ticket.commits:
            ticket.reverted = None
            continue
        last_commit = sorted(ticket.commits, key=lambda commit: commit.sort_date)[-1]
        ticket.reverted = last_commit.reverted or last_commit.reverted_by
    return tickets
