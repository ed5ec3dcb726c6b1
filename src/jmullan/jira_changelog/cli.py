#!/usr/bin/env python3.13
"""The jira changelog command."""

import logging
import pathlib
import sys

from jmullan.jira_changelog.changelog import generate_template_data, render_template
from jmullan.jira_changelog.config import Config, read_config_file
from jmullan.jira_changelog.jira import JiraClient
from jmullan.jira_changelog.models import (
    ChangelogData,
    ChangelogError,
    CommitRange,
    PostToSlack,
    RangeError,
    SlackError,
    Symmetry,
)
from jmullan.jira_changelog.slack import SlackClient
from jmullan.jira_changelog.source_control import SourceControl
from jmullan.logging import easy_logging

from jmullan.cmd import cmd

logger = logging.getLogger(__name__)

RELEASE_FROM_CONFIG = object()


def parse_range(range_string: str) -> CommitRange:
    """Turn `a...b`, `a..b` or `a` into a commit range."""
    range_string = range_string.strip()
    if "..." in range_string:
        from_ref, _, to_ref = range_string.partition("...")
        symmetry = Symmetry.SYMMETRIC
    elif ".." in range_string:
        from_ref, _, to_ref = range_string.partition("..")
        symmetry = Symmetry.ASYMMETRIC
    else:
        from_ref, to_ref = range_string, ""
        symmetry = Symmetry.ASYMMETRIC
    if not from_ref:
        raise RangeError(f"Invalid range: {range_string!r}")
    return CommitRange(from_ref=from_ref, to_ref=to_ref, symmetry=symmetry)


def get_range(config: Config, revision_range: CommitRange | None, date_range: CommitRange | None) -> CommitRange:
    """Pick a range from the command line, falling back to the configured default."""
    commit_range = CommitRange()
    if revision_range is not None and revision_range.from_ref:
        commit_range.from_ref = revision_range.from_ref
        commit_range.to_ref = revision_range.to_ref
        commit_range.symmetry = revision_range.symmetry
    if date_range is not None and date_range.from_ref:
        commit_range.after = date_range.from_ref
        commit_range.before = date_range.to_ref or None

    default_range = config.source_control.default_range or {}
    if commit_range.is_empty() and default_range:
        commit_range = CommitRange(
            from_ref=default_range.get("from"),
            to_ref=default_range.get("to"),
            symmetry=Symmetry.if_true(default_range.get("symmetric")),
            after=default_range.get("after"),
            before=default_range.get("before"),
        )

    if commit_range.is_empty():
        raise RangeError("No range defined for the changelog.")
    return commit_range


def post_to_slack(config: Config, slack: SlackClient, data: ChangelogData, message: str) -> None:
    """Post the changelog to the configured slack channel."""
    channel = config.slack.channel
    if not slack.is_enabled() or not channel:
        raise SlackError("Slack is not configured.")
    logger.info("Posting changelog message to slack channel: %s...", channel)
    message = config.transform_for_slack(message, data)
    slack.post_message(message, channel)
    logger.info("Sent")


def print_changelog(
    workspace: str,
    config: Config,
    commit_range: CommitRange,
    release: str | None,
    post: PostToSlack,
) -> str:
    """Build the changelog, print it, and maybe post it."""
    slack = SlackClient(config.slack)
    jira = JiraClient(config.jira, slack)
    source = SourceControl(slack)

    commits = source.get_commit_logs(workspace, commit_range)
    commits = jira.generate(commits, release)

    data = generate_template_data(
        commits,
        config.jira.approval_status,
        config.jira.base_url,
        jira.release_versions,
        config.transform_data,
    )
    message = render_template(config.template, data)
    sys.stdout.write(message)
    if post:
        post_to_slack(config, slack, data, message)
    return message


class ChangeLogMain(cmd.Main):
    """Print a changelog of the jira tickets in a range of git commits."""

    def __init__(self):
        super().__init__()
        self.parser.add_argument(
            "-c",
            "--config",
            dest="config",
            default=None,
            help="Path to the config file.",
        )
        self.parser.add_argument(
            "-r",
            "--range",
            dest="range",
            type=parse_range,
            default=None,
            help="git commit range for changelog, as <from>...<to>, <from>..<to> or <from>",
        )
        self.parser.add_argument(
            "-d",
            "--date",
            dest="date_range",
            type=parse_range,
            default=None,
            help="Only include commits after this date, as <date>[...<date>]",
        )
        self.parser.add_argument(
            "-s",
            "--slack",
            dest="slack",
            action="store_true",
            default=False,
            help="Automatically post changelog to slack (if configured)",
        )
        self.parser.add_argument(
            "--release",
            dest="release",
            nargs="?",
            const=RELEASE_FROM_CONFIG,
            default=None,
            help="Assign a release version to these stories",
        )
        self.parser.add_argument("path", metavar="PATH", default=".", nargs="?", help="The git workspace")

    def setup(self) -> None:
        """Configure logging."""
        super().setup()
        if self.args.verbose:
            easy_logging.easy_initialize_logging("DEBUG", stream=sys.stderr)
        elif self.args.quiet:
            easy_logging.easy_initialize_logging("WARNING", stream=sys.stderr)
        else:
            easy_logging.easy_initialize_logging("INFO", stream=sys.stderr)

    def main(self) -> None:
        """Print a changelog."""
        super().main()
        workspace = str(pathlib.Path(self.args.path).resolve())
        try:
            config = read_config_file(workspace, self.args.config)
            release = self.args.release
            if release is RELEASE_FROM_CONFIG:
                release = config.jira.generate_release_version_name()
            commit_range = get_range(config, self.args.range, self.args.date_range)
            print_changelog(workspace, config, commit_range, release, PostToSlack.if_true(self.args.slack))
        except ChangelogError as e:
            logger.error("%s", e)  # noqa: TRY400
            sys.exit(1)


def main() -> None:
    """Run the command."""
    ChangeLogMain().main()


if __name__ == "__main__":
    main()
