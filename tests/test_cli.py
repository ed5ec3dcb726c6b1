import pytest

from jmullan.jira_changelog import cli, source_control
from jmullan.jira_changelog.config import Config
from jmullan.jira_changelog.models import CommitRange, CommitRecord, PostToSlack, RangeError, SlackError, Symmetry


def make_config(default_range: dict | None = None) -> Config:
    return Config.from_mapping({"source_control": {"default_range": default_range or {}}})


def test_parse_symmetric_range():
    assert cli.parse_range("v1.22...v1.23") == CommitRange("v1.22", "v1.23", Symmetry.SYMMETRIC)


def test_parse_asymmetric_range():
    assert cli.parse_range("origin/prod..origin/stage") == CommitRange("origin/prod", "origin/stage")


def test_parse_single_ref():
    assert cli.parse_range("v1.23") == CommitRange("v1.23", "")


def test_parse_open_ended_range():
    assert cli.parse_range("v1.23...") == CommitRange("v1.23", "", Symmetry.SYMMETRIC)


@pytest.mark.parametrize("range_string", ["", "...", "..v2", "...v2", "  "])
def test_parse_invalid_range(range_string):
    with pytest.raises(RangeError):
        cli.parse_range(range_string)


def test_range_errors_are_value_errors():
    with pytest.raises(ValueError):
        cli.parse_range("..")


def test_range_from_the_command_line_wins():
    config = make_config({"from": "origin/prod", "to": "origin/stage"})
    commit_range = cli.get_range(config, cli.parse_range("v1...v2"), None)
    assert commit_range == CommitRange("v1", "v2", Symmetry.SYMMETRIC)


def test_date_range():
    config = make_config({"from": "origin/prod", "to": "origin/stage"})
    commit_range = cli.get_range(config, None, cli.parse_range("2020-01-01..2020-02-01"))
    assert commit_range == CommitRange(after="2020-01-01", before="2020-02-01")


def test_refs_and_dates_together():
    commit_range = cli.get_range(make_config(), cli.parse_range("v1"), cli.parse_range("2020-01-01"))
    assert commit_range == CommitRange("v1", "", after="2020-01-01")


def test_default_range_from_config():
    config = make_config({"from": "origin/prod", "to": "origin/stage", "symmetric": True})
    commit_range = cli.get_range(config, None, None)
    assert commit_range == CommitRange("origin/prod", "origin/stage", Symmetry.SYMMETRIC)


def test_no_range_at_all():
    config = make_config()
    config.source_control.default_range = {}
    with pytest.raises(RangeError):
        cli.get_range(config, None, None)


def test_print_changelog_without_jira(monkeypatch, capsys):
    commits = [
        CommitRecord(
            revision="1234567890",
            date="2020-01-23T15:52:51-08:00",
            summary="[ENG-1] Fix the thing",
            full_text="[ENG-1] Fix the thing",
            author_name="Za",
            author_email="za@example.com",
        )
    ]
    ranges = []

    def fake_records(workspace, commit_range):
        ranges.append((workspace, commit_range))
        return commits

    monkeypatch.setattr(source_control, "git_commit_records", fake_records)
    config = make_config()
    commit_range = CommitRange("v1", "v2")

    message = cli.print_changelog("/work", config, commit_range, None, PostToSlack.FALSE)

    assert ranges == [("/work", commit_range)]
    assert capsys.readouterr().out == message
    assert "  * Za - <1234567> - [ENG-1] Fix the thing" in message
    assert "Release version" not in message


def test_posting_needs_slack(monkeypatch):
    monkeypatch.setattr(source_control, "git_commit_records", lambda workspace, commit_range: [])
    with pytest.raises(SlackError):
        cli.print_changelog("/work", make_config(), CommitRange("v1"), None, PostToSlack.TRUE)
