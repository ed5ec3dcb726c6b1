"""Match commits to jira tickets and assign tickets to release versions."""

import logging
import threading
import time
import typing
from collections import defaultdict
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from jmullan.jira_changelog.config import JiraConfig
from jmullan.jira_changelog.models import CommitRecord, JiraError, ReleaseVersion, SlackError, Ticket
from jmullan.jira_changelog.slack import SlackClient
from jmullan.jira_changelog.tickets import extract_ticket_keys, include_ticket

logger = logging.getLogger(__name__)

API_PATH = "rest/api/2"
TIMEOUT_SECONDS = 30


class RateLimiter:
    """Space out calls so that no more than `per_second` start in any second."""

    def __init__(
        self,
        per_second: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.interval = 1.0 / per_second if per_second and per_second > 0 else 0.0
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_slot = 0.0

    def wait(self) -> None:
        """Block until the caller may make another request."""
        if not self.interval:
            return
        with self._lock:
            now = self._clock()
            slot = max(now, self._next_slot)
            self._next_slot = slot + self.interval
        delay = slot - now
        if delay > 0:
            self._sleep(delay)


def build_session(email: str | None, token: str | None) -> requests.Session:
    """Build a session that authenticates and retries transient failures."""
    session = requests.Session()
    if email and token:
        session.auth = (email, token)
    session.headers.update({"Accept": "application/json"})
    retry = Retry(
        total=3,
        connect=3,
        read=3,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("GET", "POST", "PUT"),
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class JiraClient:
    """Fetch and update jira tickets for one changelog run.

    Tickets are cached by key, so a key mentioned by many commits is only
    requested once.
    """

    def __init__(
        self,
        config: JiraConfig,
        slack: SlackClient | None = None,
        session: requests.Session | None = None,
    ):
        self.config = config
        self.slack = slack
        self.session = session
        if self.session is None and self.is_enabled():
            self.session = build_session(config.api.email, config.api.token)
        self.rate_limiter = RateLimiter(config.api.requests_per_second)
        self.release_versions: list[ReleaseVersion] = []
        self._tickets: dict[str, Ticket] = {}
        self._lock = threading.Lock()

    def is_enabled(self) -> bool:
        """Check if there is a jira host to talk to."""
        return bool(self.config.api.host)

    def url(self, path: str) -> str:
        """Build an api url."""
        host = self.config.api.host or ""
        if "://" not in host:
            host = f"https://{host}"
        return f"{host.rstrip('/')}/{API_PATH}/{path}"

    def api(self, method: str, path: str, body: dict[str, typing.Any] | None = None) -> typing.Any:
        """Make a rate limited api call and return the decoded response, if any."""
        if not self.is_enabled() or self.session is None:
            raise JiraError("Jira is not configured.")
        self.rate_limiter.wait()
        try:
            response = self.session.request(method, self.url(path), json=body, timeout=TIMEOUT_SECONDS)
            response.raise_for_status()
        except requests.RequestException as e:
            raise JiraError(f"Jira {method} {path} failed: {e}") from e
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise JiraError(f"Jira {method} {path} returned something other than json") from e

    def fetch_jira_ticket(self, key: str) -> Ticket:
        """Load a ticket from the api."""
        data = self.api("GET", f"issue/{key}")
        if not isinstance(data, dict):
            raise JiraError(f"Jira returned no issue for {key}")
        return Ticket.from_api(data)

    def get_jira_issue(self, key: str) -> Ticket:
        """Get a ticket, from the cache if we have seen it, along with its reporter's slack user."""
        with self._lock:
            cached = self._tickets.get(key)
        if cached is not None:
            return cached
        ticket = self.fetch_jira_ticket(key)
        if self.slack is not None and self.slack.is_enabled():
            try:
                ticket.slack_user = self.slack.find_user(ticket.reporter_email, ticket.reporter_name)
            except (SlackError, requests.RequestException) as e:
                logger.debug("No slack user for %s: %s", ticket.reporter_email, e)
        with self._lock:
            return self._tickets.setdefault(key, ticket)

    def try_get_jira_issue(self, key: str) -> Ticket | None:
        """Get a ticket, or log why we could not."""
        try:
            return self.get_jira_issue(key)
        except (JiraError, KeyError) as e:
            logger.warning("Ticket not found %s: %s", key, e)
            return None

    def include_ticket(self, ticket: Ticket) -> bool:
        """Decide if a ticket's type belongs in the changelog."""
        return include_ticket(ticket, self.config.include_issue_types, self.config.exclude_issue_types)

    def parse_tickets_from_string(self, text: str | None) -> list[str]:
        """Find ticket keys in some text."""
        return extract_ticket_keys(text, self.config.ticket_id_pattern)

    def fetch_tickets(self, keys: list[str]) -> dict[str, Ticket]:
        """Fetch many tickets at once, leaving out any that fail."""
        unique_keys = list(dict.fromkeys(keys))
        if not unique_keys:
            return {}
        workers = max(1, min(self.config.api.max_workers, len(unique_keys)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = executor.map(self.try_get_jira_issue, unique_keys)
            return {key: ticket for key, ticket in zip(unique_keys, results, strict=True) if ticket is not None}

    def find_jira_in_commit(self, commit: CommitRecord, tickets_by_key: dict[str, Ticket]) -> CommitRecord:
        """Attach the tickets a commit mentions."""
        commit.tickets = []
        for key in self.parse_tickets_from_string(commit.full_text):
            ticket = tickets_by_key.get(key)
            if ticket is not None and self.include_ticket(ticket):
                commit.tickets.append(ticket)
        return commit

    def generate(self, commits: list[CommitRecord], release_version: str | None = None) -> list[CommitRecord]:
        """Attach tickets to commits and, optionally, put those tickets in a release."""
        self.release_versions = []
        if not self.is_enabled():
            logger.warning("Jira is not configured, so no tickets will be found.")
        keys = [key for commit in commits for key in self.parse_tickets_from_string(commit.full_text)]
        tickets_by_key = self.fetch_tickets(keys) if self.is_enabled() else {}
        for commit in commits:
            self.find_jira_in_commit(commit, tickets_by_key)

        # each ticket once, keyed by id
        tickets = list({ticket.id or ticket.key: ticket for commit in commits for ticket in commit.tickets}.values())
        if tickets and release_version:
            self.add_tickets_to_release_version(tickets, release_version)
        return commits

    def create_project_version(self, version_name: str, project_key: str) -> dict[str, typing.Any]:
        """Find a release version in a project by name, or create it."""
        search_name = version_name.lower()
        versions = self.api("GET", f"project/{project_key}/versions") or []
        for version in versions:
            if str(version.get("name", "")).lower() == search_name:
                logger.debug("Reusing release %s in %s", version_name, project_key)
                return version
        logger.info("Creating release %s in %s", version_name, project_key)
        return self.api("POST", "version", {"name": version_name, "project": project_key}) or {}

    def add_tickets_to_release_version(self, tickets: list[Ticket], version_name: str) -> list[ReleaseVersion]:
        """Create the release version in every project involved and add each ticket to it."""
        tickets_by_project: dict[str, list[Ticket]] = defaultdict(list)
        for ticket in tickets:
            project_key = self.config.project or ticket.project_key
            tickets_by_project[project_key].append(ticket)

        for project_key, project_tickets in tickets_by_project.items():
            version = self.create_project_version(version_name, project_key)
            name = version.get("name") or version_name
            self.release_versions.append(
                ReleaseVersion(name=name, id=str(version.get("id") or ""), project_key=project_key)
            )
            for ticket in project_tickets:
                fix_versions = ticket.fix_versions
                fix_versions.append({"name": name})
                try:
                    self.api("PUT", f"issue/{ticket.id or ticket.key}", {"fields": {"fixVersions": fix_versions}})
                except JiraError as e:
                    logger.warning("Could not assign ticket %s to release '%s': %s", ticket.key, name, e)
        return self.release_versions
