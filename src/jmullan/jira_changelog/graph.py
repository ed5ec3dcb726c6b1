"""Reduce a commit log to its first-parent mainline, with merged work folded in."""

import logging

from jmullan.jira_changelog.models import CommitRecord
from jmullan.jira_changelog.text import join_stripped

logger = logging.getLogger(__name__)


def index_commits(commits: list[CommitRecord]) -> dict[str, CommitRecord]:
    """Build a lookup by revision and split each commit's parents into prev and merged parents."""
    commits_by_revision: dict[str, CommitRecord] = {}
    for commit in commits:
        if not commit.revision:
            raise ValueError(f"Commit has no revision: {commit!r}")
        parents = commit.parent_revisions
        commit.graph_prev = parents[0] if parents else None
        commit.graph_parents = parents[1:]
        commit.graph_merged = []
        if commit.revision in commits_by_revision:
            logger.warning("Duplicate revision %s in commit log", commit.revision)
        commits_by_revision[commit.revision] = commit
    return commits_by_revision


def walk_mainline(tip: CommitRecord, unclaimed: dict[str, CommitRecord]) -> list[CommitRecord]:
    """Follow first parents from the tip, claiming each commit found."""
    mainline = []
    commit: CommitRecord | None = unclaimed.pop(tip.revision, None)
    while commit is not None:
        mainline.append(commit)
        if commit.graph_prev is None:
            break
        commit = unclaimed.pop(commit.graph_prev, None)
    return mainline


def related_revisions(commit: CommitRecord) -> list[str]:
    """Get every parent of a commit, first parent first."""
    if commit.graph_prev is None:
        return list(commit.graph_parents)
    return [commit.graph_prev, *commit.graph_parents]


def collect_merged(top_level: CommitRecord, unclaimed: dict[str, CommitRecord]) -> list[CommitRecord]:
    """Claim every unclaimed commit reachable from a mainline commit, depth first.

    A commit is removed from `unclaimed` as soon as it is found, so it can only
    ever be merged under one mainline commit.
    """
    merged = []
    stack = list(reversed(related_revisions(top_level)))
    while stack:
        revision = stack.pop()
        commit = unclaimed.pop(revision, None)
        if commit is None:
            continue
        merged.append(commit)
        stack.extend(reversed(related_revisions(commit)))
    return merged


def simple_top_level_graph(commits: list[CommitRecord]) -> list[CommitRecord]:
    """Reduce a newest-first commit log to its mainline.

    The first commit is the tip of the range. Commits that only arrived
    through a merge end up in the `graph_merged` list of the mainline commit
    that merged them. Commits that cannot be reached from the tip are dropped.
    """
    if not commits:
        return []
    unclaimed = index_commits(commits)
    mainline = walk_mainline(commits[0], unclaimed)
    for commit in mainline:
        commit.graph_merged = collect_merged(commit, unclaimed)
    if unclaimed:
        logger.debug("Dropping %s commits unreachable from %s", len(unclaimed), commits[0].revision)
    return mainline


def consolidate_commit_messages(commits: list[CommitRecord]) -> list[CommitRecord]:
    """Append the messages of merged commits to the commit that merged them.

    Merged commits that are reverts are left out. Call this once per reduced
    log: every call appends again.
    """
    for commit in commits:
        merged = [merged_commit for merged_commit in commit.graph_merged if not merged_commit.reverted]
        if not merged:
            continue
        commit.summary = join_stripped([commit.summary, *(m.summary for m in merged)])
        commit.full_text = join_stripped([commit.full_text, *(m.full_text for m in merged)])
    return commits
