"""Load the changelog configuration.

A workspace may hold a `changelog_config.py` module. Any of these module-level
names it defines replace the defaults:

    jira = {"api": {"host": "yourapp.atlassian.net", "email": ..., "token": ...},
            "base_url": "https://yourapp.atlassian.net",
            "ticket_id_pattern": r"\\[([A-Z]+\\-[0-9]+)\\]",
            "approval_status": ["Done", "Closed", "Accepted"],
            "exclude_issue_types": ["Sub-task", "Story Bug"],
            "include_issue_types": [],
            "project": None,
            "generate_release_version_name": callable}
    slack = {"api_key": ..., "channel": "#releases", "username": ..., "icon_emoji": ...,
             "icon_url": ..., "post_args": {}}
    source_control = {"default_range": {"from": "origin/prod", "to": "origin/stage"}}
    transform_data = callable(data) -> data
    transform_for_slack = callable(content, data) -> content
    template = "a jinja2 template"

Each key replaces its default wholesale; lists are never merged.
"""

import dataclasses
import datetime
import importlib.util
import logging
import os
import pathlib
import re
import typing
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from jmullan.jira_changelog.changelog import DEFAULT_TEMPLATE
from jmullan.jira_changelog.models import ChangelogData, ConfigError
from jmullan.jira_changelog.tickets import DEFAULT_TICKET_ID_PATTERN, compile_ticket_pattern

logger = logging.getLogger(__name__)

CONF_FILENAME = "changelog_config.py"

ENVIRONMENT_OVERRIDES = {
    ("jira", "host"): "JIRA_HOST",
    ("jira", "email"): "JIRA_EMAIL",
    ("jira", "token"): "JIRA_TOKEN",
    ("slack", "api_key"): "SLACK_API_KEY",
}


def date_release_version_name() -> str:
    """Name a release after today."""
    return f"release-{datetime.datetime.now(tz=datetime.UTC).date().isoformat()}"


def identity_transform_data(data: ChangelogData) -> ChangelogData:
    """Leave the changelog data alone."""
    return data


def identity_transform_for_slack(content: str, data: ChangelogData) -> str:  # noqa: ARG001
    """Leave the slack message alone."""
    return content


C = typing.TypeVar("C")


def pick_fields(cls: type[C], values: Mapping[str, typing.Any] | None) -> dict[str, typing.Any]:
    """Keep only the values a dataclass knows about, warning about the rest."""
    if values is None:
        return {}
    if not isinstance(values, Mapping):
        raise ConfigError(f"Expected a mapping for {cls.__name__}, got {type(values).__name__}")
    known = {f.name for f in dataclasses.fields(cls)}  # type: ignore[arg-type]
    unknown = set(values) - known
    if unknown:
        logger.warning("Ignoring unknown %s settings: %s", cls.__name__, ", ".join(sorted(unknown)))
    return {k: v for k, v in values.items() if k in known}


@dataclass
class JiraApiConfig:
    """How to reach the jira api."""

    host: str | None = None
    email: str | None = None
    token: str | None = None
    requests_per_second: float = 10.0
    max_workers: int = 5

    @classmethod
    def from_mapping(cls, values: Mapping[str, typing.Any] | None) -> "JiraApiConfig":
        """Build from a mapping, defaulting anything missing."""
        return cls(**pick_fields(cls, values))


@dataclass
class JiraConfig:
    """How to find and judge tickets."""

    api: JiraApiConfig = field(default_factory=JiraApiConfig)
    base_url: str = "https://atlassian.net"
    ticket_id_pattern: re.Pattern[str] = field(default_factory=lambda: compile_ticket_pattern(DEFAULT_TICKET_ID_PATTERN))
    approval_status: list[str] = field(default_factory=lambda: ["Done", "Closed", "Accepted"])
    exclude_issue_types: list[str] = field(default_factory=lambda: ["Sub-task", "Story Bug"])
    include_issue_types: list[str] = field(default_factory=list)
    project: str | None = None
    generate_release_version_name: Callable[[], str] = date_release_version_name

    @classmethod
    def from_mapping(cls, values: Mapping[str, typing.Any] | None) -> "JiraConfig":
        """Build from a mapping, defaulting anything missing."""
        picked = pick_fields(cls, values)
        picked["api"] = JiraApiConfig.from_mapping(picked.get("api"))
        if "ticket_id_pattern" in picked:
            try:
                picked["ticket_id_pattern"] = compile_ticket_pattern(picked["ticket_id_pattern"])
            except (re.error, TypeError) as e:
                raise ConfigError(f"Invalid jira.ticket_id_pattern: {e}") from e
        for list_name in ["approval_status", "exclude_issue_types", "include_issue_types"]:
            value = picked.get(list_name)
            if isinstance(value, str):
                picked[list_name] = [value]
            elif list_name in picked and value is None:
                picked[list_name] = []
        return cls(**picked)


@dataclass
class SlackConfig:
    """How to post to slack."""

    api_key: str | None = None
    channel: str | None = None
    username: str = "Changelog Bot"
    icon_emoji: str | None = ":clipboard:"
    icon_url: str | None = None
    post_args: dict[str, typing.Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, values: Mapping[str, typing.Any] | None) -> "SlackConfig":
        """Build from a mapping, defaulting anything missing."""
        return cls(**pick_fields(cls, values))


@dataclass
class SourceControlConfig:
    """Settings for reading the git log."""

    default_range: dict[str, str] = field(default_factory=lambda: {"from": "origin/prod", "to": "origin/stage"})

    @classmethod
    def from_mapping(cls, values: Mapping[str, typing.Any] | None) -> "SourceControlConfig":
        """Build from a mapping, defaulting anything missing."""
        picked = pick_fields(cls, values)
        if picked.get("default_range") is None:
            picked.pop("default_range", None)
        return cls(**picked)


@dataclass
class Config:
    """Everything configurable about a changelog run."""

    jira: JiraConfig = field(default_factory=JiraConfig)
    slack: SlackConfig = field(default_factory=SlackConfig)
    source_control: SourceControlConfig = field(default_factory=SourceControlConfig)
    transform_data: Callable[[ChangelogData], ChangelogData] = identity_transform_data
    transform_for_slack: Callable[[str, ChangelogData], str] = identity_transform_for_slack
    template: str = DEFAULT_TEMPLATE

    @classmethod
    def from_mapping(cls, values: Mapping[str, typing.Any] | None) -> "Config":
        """Build from a mapping, defaulting anything missing."""
        picked = pick_fields(cls, values)
        picked["jira"] = JiraConfig.from_mapping(picked.get("jira"))
        picked["slack"] = SlackConfig.from_mapping(picked.get("slack"))
        picked["source_control"] = SourceControlConfig.from_mapping(picked.get("source_control"))
        for name in ["transform_data", "transform_for_slack", "template"]:
            if picked.get(name) is None:
                picked.pop(name, None)
        return cls(**picked)


def config_file_path(workspace: str | pathlib.Path, config_path: str | None = None) -> pathlib.Path:
    """Find the config file: the one given, or the one in the workspace."""
    if config_path:
        return pathlib.Path(config_path)
    return pathlib.Path(workspace) / CONF_FILENAME


def read_config_module(path: pathlib.Path) -> dict[str, typing.Any]:
    """Import a python config file and return the settings it defines."""
    spec = importlib.util.spec_from_file_location("changelog_config", path)
    if spec is None or spec.loader is None:
        raise ConfigError(f"Cannot load config file {path}")
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:  # noqa: BLE001
        raise ConfigError(f"Error reading {path}: {e}") from e
    config_names = {f.name for f in dataclasses.fields(Config)}
    return {k: v for k, v in vars(module).items() if k in config_names}


def apply_environment(config: Config) -> Config:
    """Fill in any missing secrets from the environment."""
    sections = {"jira": config.jira.api, "slack": config.slack}
    for (section, name), variable in ENVIRONMENT_OVERRIDES.items():
        target = sections[section]
        value = os.environ.get(variable)
        if value and not getattr(target, name):
            logger.debug("Using %s from the environment", variable)
            setattr(target, name, value)
    return config


def read_config_file(workspace: str | pathlib.Path, config_path: str | None = None) -> Config:
    """Load the config file if there is one, on top of the defaults."""
    path = config_file_path(workspace, config_path)
    values: dict[str, typing.Any] = {}
    if path.exists():
        logger.debug("Reading config from %s", path)
        values = read_config_module(path)
    elif config_path:
        raise ConfigError(f"Config file {path} does not exist")
    return apply_environment(Config.from_mapping(values))
