import pathlib
import textwrap

import pytest

from jmullan.jira_changelog import config
from jmullan.jira_changelog.changelog import DEFAULT_TEMPLATE
from jmullan.jira_changelog.models import ConfigError


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for variable in config.ENVIRONMENT_OVERRIDES.values():
        monkeypatch.delenv(variable, raising=False)


def write_config(directory: pathlib.Path, content: str) -> pathlib.Path:
    path = directory / config.CONF_FILENAME
    path.write_text(textwrap.dedent(content), encoding="utf8")
    return path


def test_config_file_path():
    assert config.config_file_path("foobar/") == pathlib.Path("foobar/changelog_config.py")
    assert config.config_file_path("foobar/", "/custom/path/bar.py") == pathlib.Path("/custom/path/bar.py")


def test_defaults(tmp_path):
    loaded = config.read_config_file(tmp_path)
    assert loaded.jira.api.host is None
    assert loaded.jira.base_url == "https://atlassian.net"
    assert loaded.jira.approval_status == ["Done", "Closed", "Accepted"]
    assert loaded.jira.exclude_issue_types == ["Sub-task", "Story Bug"]
    assert loaded.jira.include_issue_types == []
    assert loaded.jira.ticket_id_pattern.search("[eng-1]").group(1) == "eng-1"
    assert loaded.slack.username == "Changelog Bot"
    assert loaded.source_control.default_range == {"from": "origin/prod", "to": "origin/stage"}
    assert loaded.template == DEFAULT_TEMPLATE
    assert loaded.jira.generate_release_version_name().startswith("release-")


def test_only_add_default_values():
    loaded = config.Config.from_mapping({"jira": {"base_url": "https://mine.atlassian.net"}})
    assert loaded.jira.base_url == "https://mine.atlassian.net"
    assert loaded.jira.approval_status == ["Done", "Closed", "Accepted"]
    assert loaded.slack.icon_emoji == ":clipboard:"


def test_nested_sections_default_independently():
    loaded = config.Config.from_mapping({"jira": {"api": {"host": "mine.atlassian.net"}}})
    assert loaded.jira.api.host == "mine.atlassian.net"
    assert loaded.jira.api.requests_per_second == 10.0
    assert loaded.jira.api.max_workers == 5


def test_lists_are_replaced_not_merged():
    loaded = config.Config.from_mapping({"jira": {"approval_status": ["Shipped"], "exclude_issue_types": None}})
    assert loaded.jira.approval_status == ["Shipped"]
    assert loaded.jira.exclude_issue_types == []


def test_invalid_ticket_pattern():
    with pytest.raises(ConfigError):
        config.Config.from_mapping({"jira": {"ticket_id_pattern": "[unclosed"}})


def test_read_config_file(tmp_path):
    write_config(
        tmp_path,
        """
        import re

        jira = {
            "api": {"host": "mine.atlassian.net", "email": "me@example.com", "token": "secret"},
            "ticket_id_pattern": re.compile(r"([A-Z]+-[0-9]+)"),
            "include_issue_types": ["Story"],
        }
        slack = {"channel": "#releases"}

        def transform_for_slack(content, data):
            return content.upper()
        """,
    )
    loaded = config.read_config_file(tmp_path)
    assert loaded.jira.api.token == "secret"
    assert loaded.jira.include_issue_types == ["Story"]
    assert loaded.jira.ticket_id_pattern.findall("eng-1 ABC-2") == ["eng-1", "ABC-2"]
    assert loaded.slack.channel == "#releases"
    assert loaded.slack.username == "Changelog Bot"
    assert loaded.transform_for_slack("hi", None) == "HI"


def test_broken_config_file(tmp_path):
    write_config(tmp_path, "jira = {\n")
    with pytest.raises(ConfigError):
        config.read_config_file(tmp_path)


def test_missing_explicit_config_file(tmp_path):
    with pytest.raises(ConfigError):
        config.read_config_file(tmp_path, str(tmp_path / "nope.py"))


def test_environment_fills_in_secrets(tmp_path, monkeypatch):
    monkeypatch.setenv("JIRA_TOKEN", "from-env")
    monkeypatch.setenv("SLACK_API_KEY", "xoxb-env")
    write_config(tmp_path, 'jira = {"api": {"host": "mine.atlassian.net"}}\n')
    loaded = config.read_config_file(tmp_path)
    assert loaded.jira.api.host == "mine.atlassian.net"
    assert loaded.jira.api.token == "from-env"
    assert loaded.slack.api_key == "xoxb-env"


def test_configured_secrets_beat_the_environment(monkeypatch):
    monkeypatch.setenv("JIRA_HOST", "env.atlassian.net")
    loaded = config.apply_environment(config.Config.from_mapping({"jira": {"api": {"host": "file.atlassian.net"}}}))
    assert loaded.jira.api.host == "file.atlassian.net"
