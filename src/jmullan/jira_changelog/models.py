"""Classes and enums mostly devoid of business logic."""

import enum
import logging
import typing
from dataclasses import dataclass, field
from datetime import UTC, datetime

from jmullan.jira_changelog.text import none_as_empty_stripped

logger = logging.getLogger(__name__)

EARLIEST = datetime.min.replace(tzinfo=UTC)


class ChangelogError(Exception):
    """Something the user can fix went wrong while building a changelog."""


class ConfigError(ChangelogError):
    """The configuration could not be loaded or is invalid."""


class RangeError(ChangelogError, ValueError):
    """No usable commit range was given."""


class JiraError(ChangelogError):
    """The issue tracker refused or failed a request."""


class SlackError(ChangelogError):
    """The chat service refused or failed a request."""


class BooleanEnum(enum.Enum):
    """Extend this to make simple two-value enums to replace boolean arguments."""

    def __bool__(self):
        """Cast me into a boolean."""
        return bool(self.value)

    @classmethod
    def if_true(cls, true_false: bool) -> typing.Self:  # noqa: FBT001
        """Build this enum from something truthy."""
        for item in cls:
            if bool(true_false) == bool(item.value):
                return item
        raise ValueError("Not a boolean")


class Symmetry(BooleanEnum):
    """Whether a range is `a...b` rather than `a..b`."""

    ASYMMETRIC = False
    SYMMETRIC = True


class PostToSlack(BooleanEnum):
    """Whether to post the changelog to slack."""

    FALSE = False
    TRUE = True


@dataclass
class CommitRange:
    """Boundaries for a git log: refs, dates, or both."""

    from_ref: str | None = None
    to_ref: str | None = None
    symmetry: Symmetry = Symmetry.ASYMMETRIC
    after: str | None = None
    before: str | None = None

    def is_empty(self) -> bool:
        """Check whether any boundary was given."""
        return not any([self.from_ref, self.to_ref, self.after, self.before])


def parse_date(date: str | None) -> datetime:
    """Turn a git or jira timestamp into an aware datetime, or the earliest possible one."""
    date = none_as_empty_stripped(date)
    if not date:
        return EARLIEST
    try:
        parsed = datetime.fromisoformat(date)
    except ValueError:
        logger.debug("Unparseable date %r", date)
        return EARLIEST
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(eq=False)
class Ticket:
    """An issue tracker ticket, mostly the raw api payload.

    Templates can reach into `fields` the same way the api documents them,
    for example `ticket.fields.issuetype.name`.
    """

    key: str
    id: str = ""
    fields: dict[str, typing.Any] = field(default_factory=dict)

    slack_user: dict[str, typing.Any] | None = None
    reverted: str | None = None
    commits: list["CommitRecord"] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, typing.Any]) -> "Ticket":
        """Build a ticket from a jira issue response."""
        return cls(key=data["key"], id=str(data.get("id") or ""), fields=data.get("fields") or {})

    def _field_name(self, field_name: str) -> str:
        value = self.fields.get(field_name) or {}
        return none_as_empty_stripped(value.get("name"))

    @property
    def status_name(self) -> str:
        """Get the ticket's workflow status."""
        return self._field_name("status")

    @property
    def issue_type_name(self) -> str:
        """Get the ticket's type, like Bug or Story."""
        return self._field_name("issuetype")

    @property
    def project_key(self) -> str:
        """Get the key of the project that owns the ticket."""
        project = self.fields.get("project") or {}
        return none_as_empty_stripped(project.get("key")) or self.key.split("-", 1)[0]

    @property
    def summary(self) -> str:
        """Get the ticket title."""
        return none_as_empty_stripped(self.fields.get("summary"))

    @property
    def reporter_email(self) -> str:
        """Get the email of whoever filed the ticket."""
        reporter = self.fields.get("reporter") or {}
        return none_as_empty_stripped(reporter.get("emailAddress") or reporter.get("email"))

    @property
    def reporter_name(self) -> str:
        """Get the display name of whoever filed the ticket."""
        reporter = self.fields.get("reporter") or {}
        return none_as_empty_stripped(reporter.get("displayName"))

    @property
    def fix_versions(self) -> list[dict[str, typing.Any]]:
        """Get the release versions, creating the list if jira omitted it."""
        if self.fields.get("fixVersions") is None:
            self.fields["fixVersions"] = []
        return self.fields["fixVersions"]


@dataclass(eq=False)
class CommitRecord:
    """One commit from the log, plus what we learn about it along the way."""

    revision: str = field(metadata={"template": "%H"})
    date: str = field(metadata={"template": "%aI"})
    summary: str = field(metadata={"template": "%s"})
    full_text: str = field(metadata={"template": "%B"})
    author_name: str = field(metadata={"template": "%aN"})
    author_email: str = field(metadata={"template": "%aE"})
    parents: str | list[str] | None = field(default=None, metadata={"template": "%P"})

    tickets: list[Ticket] = field(default_factory=list)
    reverted: str | None = None
    reverted_by: str | None = None
    slack_user: dict[str, typing.Any] | None = None

    graph_prev: str | None = None
    graph_parents: list[str] = field(default_factory=list)
    graph_merged: list["CommitRecord"] = field(default_factory=list)

    @property
    def parent_revisions(self) -> list[str]:
        """Get the parents of this commit, first parent first."""
        match self.parents:
            case None:
                return []
            case str() as parents:
                candidates = parents.split(" ")
            case _:
                candidates = list(self.parents)
        # use a dictionary's keys as an ordered set
        revisions = {revision.strip(): True for revision in candidates if revision and revision.strip()}
        return list(revisions.keys())

    @property
    def short_revision(self) -> str:
        """Get an abbreviated revision for display."""
        return self.revision[:7]

    @property
    def sort_date(self) -> datetime:
        """Get the commit date as something safely comparable."""
        return parse_date(self.date)

    def is_reverted(self) -> bool:
        """Check if the commit reverts, or was reverted by, another commit."""
        return bool(self.reverted or self.reverted_by)


@dataclass
class ReleaseVersion:
    """A jira release version attached to one project."""

    name: str
    id: str
    project_key: str


@dataclass
class Reporter:
    """Whoever filed some pending tickets, and those tickets."""

    email: str
    name: str
    slack_user: dict[str, typing.Any] | None
    tickets: list[Ticket]


@dataclass
class CommitGroups:
    """Commits sliced the ways a template wants them."""

    all: list[CommitRecord]
    tickets: list[CommitRecord]
    no_tickets: list[CommitRecord]
    reverted: list[CommitRecord]


@dataclass
class TicketGroups:
    """Tickets sliced the ways a template wants them."""

    all: list[Ticket]
    approved: list[Ticket]
    pending: list[Ticket]
    pending_by_owner: list[Reporter]
    reverted: list[Ticket]


@dataclass
class ChangelogData:
    """Everything a template needs to render a changelog."""

    commits: CommitGroups
    tickets: TicketGroups
    jira: dict[str, typing.Any] = field(default_factory=dict)
