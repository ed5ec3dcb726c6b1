"""Functions to group commits by ticket and render a changelog."""

import logging
from collections.abc import Callable
from typing import Any

import jinja2

from jmullan.jira_changelog.models import (
    ChangelogData,
    CommitGroups,
    CommitRecord,
    ReleaseVersion,
    Reporter,
    Ticket,
    TicketGroups,
)
from jmullan.jira_changelog.reverts import decorate_ticket_reverts, filter_reverted_commits

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = """\
{% if jira.release_versions %}
Release version: {{ jira.release_versions[0].name }}
{% for release in jira.release_versions %}
  * {{ release.project_key }}: {{ jira.base_url }}/projects/{{ release.project_key }}/versions/{{ release.id }}
{% endfor %}

{% endif %}
Jira Tickets
---------------------
{% for ticket in tickets.all if not ticket.reverted %}
  * <{{ ticket.issue_type_name }}> - {{ ticket.summary }}
    [{{ ticket.key }}] {{ jira.base_url }}/browse/{{ ticket.key }}
{% else %}
 ~ None ~
{% endfor %}

Other Commits
---------------------
{% for commit in commits.no_tickets %}
  * {{ ('@' ~ commit.slack_user.name) if commit.slack_user else commit.author_name }} \
- <{{ commit.short_revision }}> - {{ commit.summary.split('\\n')[0] }}
{% else %}
 ~ None ~
{% endfor %}

Pending Approval
---------------------
{% for owner in tickets.pending_by_owner %}
{{ ('@' ~ owner.slack_user.name) if owner.slack_user else owner.email }}
{% for ticket in owner.tickets %}
  * {{ jira.base_url }}/browse/{{ ticket.key }}
{% endfor %}
{% else %}
 ~ None. Yay! ~
{% endfor %}
{% if tickets.reverted %}

Reverted
---------------------
{% for ticket in tickets.reverted %}
  * <{{ ticket.issue_type_name }}> - {{ ticket.summary }}
    [{{ ticket.key }}] {{ jira.base_url }}/browse/{{ ticket.key }}
    commit: {{ ticket.reverted }}
{% endfor %}
{% endif %}
"""


def get_ticket_reporters(tickets: list[Ticket]) -> list[Reporter]:
    """Group tickets under the people who reported them, sorted by name."""
    reporters: dict[str, Reporter] = {}
    for ticket in tickets:
        email = ticket.reporter_email
        reporter = reporters.get(email)
        if reporter is None:
            reporters[email] = Reporter(
                email=email,
                name=ticket.reporter_name,
                slack_user=ticket.slack_user,
                tickets=[ticket],
            )
        else:
            reporter.tickets.append(ticket)
    return sorted(reporters.values(), key=lambda reporter: reporter.name)


def group_tickets_by_status(
    tickets: list[Ticket], approval_status: list[str] | str | None
) -> tuple[list[Ticket], list[Ticket]]:
    """Split tickets into approved and pending, ignoring the case of status names."""
    if not approval_status:
        return [], list(tickets)
    if isinstance(approval_status, str):
        approval_status = [approval_status]
    approved_names = {status.lower() for status in approval_status}
    approved = []
    pending = []
    for ticket in tickets:
        if ticket.status_name.lower() in approved_names:
            approved.append(ticket)
        else:
            pending.append(ticket)
    return approved, pending


def group_commits_by_ticket(commits: list[CommitRecord]) -> list[Ticket]:
    """Collect each distinct ticket once, along with every commit that mentions it."""
    tickets_by_key: dict[str, Ticket] = {}
    for commit in commits:
        for ticket in commit.tickets:
            if ticket.key not in tickets_by_key:
                ticket.commits = []
                tickets_by_key[ticket.key] = ticket
            tickets_by_key[ticket.key].commits.append(commit)
    return list(tickets_by_key.values())


def transform_commit_logs(commits: list[CommitRecord], approval_status: list[str] | str | None) -> ChangelogData:
    """Filter reduced commit logs into the data a changelog template renders."""
    reduced = filter_reverted_commits(commits)

    tickets = decorate_ticket_reverts(group_commits_by_ticket(reduced))
    tickets = sorted(tickets, key=lambda ticket: ticket.issue_type_name)
    approved, pending = group_tickets_by_status(tickets, approval_status)

    return ChangelogData(
        commits=CommitGroups(
            all=reduced,
            tickets=[commit for commit in reduced if commit.tickets],
            no_tickets=[commit for commit in reduced if not commit.tickets],
            reverted=[commit for commit in reduced if commit.is_reverted()],
        ),
        tickets=TicketGroups(
            all=tickets,
            approved=approved,
            pending=pending,
            pending_by_owner=get_ticket_reporters(pending),
            reverted=[ticket for ticket in tickets if ticket.reverted],
        ),
    )


def generate_template_data(
    commits: list[CommitRecord],
    approval_status: list[str] | str | None,
    base_url: str,
    release_versions: list[ReleaseVersion],
    transform_data: Callable[[ChangelogData], ChangelogData] | None = None,
) -> ChangelogData:
    """Build the template data, letting the configuration have the last word."""
    data = transform_commit_logs(commits, approval_status)
    if transform_data is not None:
        data = transform_data(data)
    data.jira = {"base_url": base_url.rstrip("/"), "release_versions": release_versions}
    return data


def render_template(template: str, data: ChangelogData, **extra: Any) -> str:
    """Render the changelog text."""
    environment = jinja2.Environment(  # noqa: S701
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
    compiled = environment.from_string(template)
    return compiled.render(commits=data.commits, tickets=data.tickets, jira=data.jira, **extra)
