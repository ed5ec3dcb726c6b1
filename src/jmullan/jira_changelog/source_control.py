"""Read commit logs out of git."""

import logging
import subprocess
from collections.abc import Iterator
from dataclasses import fields
from typing import IO

import requests

from jmullan.jira_changelog.graph import consolidate_commit_messages, simple_top_level_graph
from jmullan.jira_changelog.models import CommitRange, CommitRecord, SlackError
from jmullan.jira_changelog.reverts import decorate_reverts
from jmullan.jira_changelog.slack import SlackClient
from jmullan.jira_changelog.text import some_string

logger = logging.getLogger(__name__)

GIT_COMMIT_FORMAT = "\n".join(
    f"%h {commit_field.name} {commit_field.metadata['template']}"
    for commit_field in fields(CommitRecord)
    if commit_field.metadata.get("template") is not None
)


def stream_chunks(io: IO[bytes] | None, separator: str = "\n") -> Iterator[str]:
    """Read a stream of bytes and yield strings divided by the separator."""
    separator_bytes = separator.encode("UTF8")
    accumulated = bytearray()
    keep_going = True
    while io is not None and io.readable() and keep_going:
        read_chunk = io.read(1024)
        if read_chunk == b"":
            keep_going = False
        accumulated.extend(read_chunk)
        while separator_bytes in accumulated:
            chunk, accumulated = accumulated.split(separator_bytes, 1)
            yield chunk.decode("UTF8", errors="replace")
    yield accumulated.decode("UTF8", errors="replace")


def chunk_command(args: list[str]) -> Iterator[str]:
    """Run the args as a shell command.

    This is provided to be mockable.
    """
    with subprocess.Popen(args, stdout=subprocess.PIPE) as proc:  # noqa: S603
        yield from stream_chunks(proc.stdout, "\x00")


def range_arguments(commit_range: CommitRange) -> list[str]:
    """Turn a commit range into git log arguments."""
    arguments = []
    if some_string(commit_range.from_ref):
        dots = "..." if commit_range.symmetry else ".."
        to_ref = commit_range.to_ref or "HEAD"
        arguments.append(f"{commit_range.from_ref}{dots}{to_ref}")
    elif some_string(commit_range.to_ref):
        arguments.append(commit_range.to_ref)
    if some_string(commit_range.after):
        arguments.append(f"--after={commit_range.after}")
    if some_string(commit_range.before):
        arguments.append(f"--before={commit_range.before}")
    return arguments


def git_log(workspace: str, git_format: str, commit_range: CommitRange) -> Iterator[str]:
    """Run git log with a particular format, newest commits first."""
    command = ["git", "-C", workspace, "log", "-z", f"--format={git_format}", *range_arguments(commit_range)]
    logger.debug("Running %s", command)
    yield from chunk_command(command)


def chunk_to_commit(chunk: str | None) -> CommitRecord | None:
    """Turn a chunk into a commit record."""
    if not some_string(chunk):
        return None
    abbreviated_sha = chunk.split(" ", 1)[0]
    field_pieces = chunk.removeprefix(f"{abbreviated_sha} ").split(f"\n{abbreviated_sha} ")
    commit_data = {p[0]: p[1] for p in [piece.split(" ", 1) for piece in field_pieces] if len(p) > 1}
    for piece in field_pieces:
        # fields like parents can be empty
        if " " not in piece and piece:
            commit_data.setdefault(piece, "")
    if not commit_data.get("revision"):
        logger.debug("No revision in commit %r", chunk)
        return None
    commit_data["full_text"] = commit_data.get("full_text", "").rstrip()
    try:
        return CommitRecord(**commit_data)
    except TypeError:
        logger.exception("error processing chunk %s %s", chunk, commit_data)
        raise


def git_commit_records(workspace: str, commit_range: CommitRange) -> list[CommitRecord]:
    """Load commits for a range, newest first."""
    records = []
    for chunk in git_log(workspace, GIT_COMMIT_FORMAT, commit_range):
        commit = chunk_to_commit(chunk)
        if commit is None:
            logger.debug("None commit")
            continue
        records.append(commit)
    return records


class SourceControl:
    """Load commit logs for a range and reduce them to the commits that matter."""

    def __init__(self, slack: SlackClient | None = None):
        self.slack = slack

    def decorate_authors(self, commits: list[CommitRecord]) -> list[CommitRecord]:
        """Attach the slack user for each commit author, if there is one."""
        if self.slack is None or not self.slack.is_enabled():
            return commits
        for commit in commits:
            try:
                commit.slack_user = self.slack.get_user_for_email(commit.author_email)
            except (SlackError, requests.RequestException) as e:
                logger.debug("No slack user for %s: %s", commit.author_email, e)
        return commits

    def get_commit_logs(self, workspace: str, commit_range: CommitRange) -> list[CommitRecord]:
        """Return the mainline commits for a range, with merged work folded in."""
        records = decorate_reverts(git_commit_records(workspace, commit_range))
        logger.debug("Found %s commits", len(records))
        commits = consolidate_commit_messages(simple_top_level_graph(records))
        logger.debug("Reduced to %s top-level commits", len(commits))
        return self.decorate_authors(commits)
