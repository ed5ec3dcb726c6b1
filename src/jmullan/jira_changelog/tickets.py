"""Find ticket keys in commit messages and decide which tickets belong in a changelog."""

import logging
import re

from jmullan.jira_changelog.models import Ticket
from jmullan.jira_changelog.text import none_as_empty_stripped

logger = logging.getLogger(__name__)

DEFAULT_TICKET_ID_PATTERN = r"\[([A-Z]+\-[0-9]+)\]"


def compile_ticket_pattern(pattern: str | re.Pattern[str]) -> re.Pattern[str]:
    """Compile a ticket pattern so that it always ignores case."""
    if isinstance(pattern, re.Pattern):
        return re.compile(pattern.pattern, pattern.flags | re.IGNORECASE)
    return re.compile(pattern, re.IGNORECASE)


def extract_ticket_keys(text: str | None, pattern: re.Pattern[str]) -> list[str]:
    """Find every distinct ticket key in the text, in the order they first appear.

    When the pattern has a capture group, the first group is the key.
    Otherwise the whole match is.
    """
    if not text:
        return []
    keys: dict[str, bool] = {}
    for match in pattern.finditer(text):
        key = match.group(1) if pattern.groups else match.group(0)
        key = none_as_empty_stripped(key).upper()
        if key:
            keys[key] = True
    return list(keys.keys())


def include_ticket(
    ticket: Ticket,
    include_issue_types: list[str] | None,
    exclude_issue_types: list[str] | None,
) -> bool:
    """Decide if a ticket should be in the changelog based on its type.

    A non-empty include list wins over the exclude list.
    """
    issue_type = ticket.issue_type_name
    if include_issue_types:
        return issue_type in include_issue_types
    if exclude_issue_types:
        return issue_type not in exclude_issue_types
    return True
