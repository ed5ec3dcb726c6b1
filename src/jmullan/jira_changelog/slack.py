"""Talk to slack: look up users and post the changelog."""

import logging
import typing

import requests

from jmullan.jira_changelog.config import SlackConfig
from jmullan.jira_changelog.models import SlackError
from jmullan.jira_changelog.text import none_as_empty_stripped, split_into_chunks

logger = logging.getLogger(__name__)

API_ROOT = "https://slack.com/api"
MSG_SIZE_LIMIT = 4000
TIMEOUT_SECONDS = 30

SlackUser = dict[str, typing.Any]


class SlackClient:
    """A thin wrapper around the slack web api.

    GET responses are cached for the life of the client, so one client
    should be used per changelog run.
    """

    def __init__(self, config: SlackConfig, session: requests.Session | None = None):
        self.config = config
        self.session = session or requests.Session()
        self._cache: dict[str, dict[str, typing.Any]] = {}
        self._users: list[SlackUser] | None = None

    def is_enabled(self) -> bool:
        """Check if there is an api key to talk to slack with."""
        return bool(self.config.api_key)

    def api(self, endpoint: str, method: str = "GET", body: dict[str, typing.Any] | None = None) -> dict[str, typing.Any]:
        """Call an api endpoint and return the decoded response."""
        if not self.is_enabled():
            raise SlackError("The slack API is not configured.")
        method = method.upper()
        url = f"{API_ROOT}/{endpoint}"
        cachable = method == "GET"
        if cachable and url in self._cache:
            return self._cache[url]

        headers = {"Authorization": f"Bearer {self.config.api_key}"}
        try:
            response = self.session.request(method, url, data=body, headers=headers, timeout=TIMEOUT_SECONDS)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise SlackError(f"Slack {endpoint} failed: {e}") from e

        if cachable and data and data.get("ok"):
            self._cache[url] = data
        return data

    def get_slack_users(self) -> list[SlackUser]:
        """Load all the slack users, once."""
        if not self.is_enabled():
            return []
        if self._users is not None:
            return self._users
        response = self.api("users.list")
        if response.get("error"):
            logger.error("Could not load slack users: %s", response["error"])
            raise SlackError(response["error"])
        self._users = response.get("members") or []
        return self._users

    def get_user_for_email(self, email: str | None) -> SlackUser | None:
        """Find the slack user with this email address."""
        email = none_as_empty_stripped(email).lower()
        if not email:
            return None
        for user in self.get_slack_users():
            profile_email = none_as_empty_stripped((user.get("profile") or {}).get("email"))
            if profile_email.lower() == email:
                return user
        return None

    def find_user(self, email: str | None, name: str | None = None) -> SlackUser | None:
        """Find a slack user by email, falling back to their real or display name."""
        user = self.get_user_for_email(email)
        if user is not None:
            return user
        name = none_as_empty_stripped(name).lower()
        if not name:
            return None
        for candidate in self.get_slack_users():
            profile = candidate.get("profile") or {}
            names = [candidate.get("real_name"), profile.get("real_name"), profile.get("display_name")]
            if name in {none_as_empty_stripped(n).lower() for n in names}:
                return candidate
        return None

    def post_message(self, text: str, channel: str) -> list[dict[str, typing.Any]]:
        """Post a message to a channel, in as many pieces as slack needs."""
        if not text:
            raise SlackError("No text to send to slack.")
        if not self.is_enabled():
            return []
        responses = []
        for chunk in split_into_chunks(text, MSG_SIZE_LIMIT):
            body = {
                **self.config.post_args,
                "text": chunk,
                "channel": channel,
                "username": self.config.username,
            }
            if self.config.icon_url:
                body["icon_url"] = self.config.icon_url
            elif self.config.icon_emoji:
                body["icon_emoji"] = self.config.icon_emoji
            response = self.api("chat.postMessage", "POST", body)
            if not response.get("ok"):
                raise SlackError(response.get("error") or "Slack did not accept the message")
            responses.append(response)
        return responses
