from jmullan.jira_changelog import reverts
from jmullan.jira_changelog.models import CommitRecord, Ticket

SHA = "b71e882870a04fa35b77031f06b1edbdb6acb21c"


def make_commit(revision: str, **kwargs) -> CommitRecord:
    data = {
        "revision": revision,
        "date": "",
        "summary": "",
        "full_text": "",
        "author_name": "Za",
        "author_email": "Za@nowhere.com",
    }
    data.update(kwargs)
    return CommitRecord(**data)


def test_basic_revert():
    summary = 'Revert "Foo bar commit"'
    full_text = f'Revert "Foo bar commit"\nThis reverts commit {SHA}.'
    assert reverts.is_revert(summary, full_text) == SHA


def test_false_revert():
    summary = "Code I wrote to revert old behavior."
    full_text = f"Code I wrote to revert old behavior. From commit {SHA}."
    assert reverts.is_revert(summary, full_text) is None


def test_revert_of_a_revert_is_not_a_revert():
    summary = 'Revert "Revert "Foo bar commit""'
    full_text = f'Revert "Revert "Foo bar commit""\nThis reverts commit {SHA}.'
    assert reverts.is_revert(summary, full_text) is None


def test_odd_number_of_reverts():
    summary = 'Revert "Revert "Revert "Foo bar commit"""'
    full_text = f'Revert "Revert "Revert "Foo bar commit"""\nThis reverts commit {SHA}.'
    assert reverts.is_revert(summary, full_text) == SHA


def test_revert_with_a_longer_body():
    summary = 'Revert "Foo bar commit"'
    full_text = f'Revert "Foo bar commit"\n\nThis reverts commit {SHA}.\n'
    assert reverts.is_revert(summary, full_text) == SHA


def test_revert_must_end_with_the_reverted_commit():
    summary = 'Revert "Foo bar commit"'
    full_text = f'Revert "Foo bar commit"\nThis reverts commit {SHA}.\nBecause it broke [ENG-1]'
    assert reverts.is_revert(summary, full_text) is None


def test_detection_is_repeatable():
    summary = "Plain commit"
    assert reverts.is_revert(summary, summary) is None
    assert reverts.is_revert(summary, summary) is None


def test_count_revert_prefixes():
    assert reverts.count_revert_prefixes("Foo") == 0
    assert reverts.count_revert_prefixes(None) == 0
    assert reverts.count_revert_prefixes('Revert "Foo"') == 1
    assert reverts.count_revert_prefixes('Revert "Revert "Foo""') == 2


def test_decorate_reverts():
    commits = [
        make_commit("11", summary='Revert "ten"', full_text=f'Revert "ten"\n\nThis reverts commit {SHA}.'),
        make_commit(SHA, summary="ten", full_text="ten"),
    ]
    reverts.decorate_reverts(commits)
    assert commits[0].reverted == SHA
    assert commits[1].reverted is None


def test_revert_commit_is_removed_when_the_original_is_present():
    commits = [make_commit("10"), make_commit("11", reverted="10"), make_commit("12")]
    filtered = reverts.filter_reverted_commits(commits)
    assert [c.revision for c in filtered] == ["10", "12"]
    assert filtered[0].reverted_by == "11"


def test_revert_commit_is_kept_when_the_original_is_missing():
    commits = [make_commit("10"), make_commit("11", reverted="5"), make_commit("12")]
    filtered = reverts.filter_reverted_commits(commits)
    assert [c.revision for c in filtered] == ["10", "11", "12"]
    assert filtered[1].reverted == "5"
    assert all(c.reverted_by is None for c in filtered)


def test_newest_first_revert_pairs_collapse():
    commits = [make_commit("13", reverted="10"), make_commit("12"), make_commit("10")]
    filtered = reverts.filter_reverted_commits(commits)
    assert sorted(c.revision for c in filtered) == ["10", "12"]
    assert len(filtered) == 2


def make_ticket(*commits: CommitRecord) -> Ticket:
    return Ticket(key="ENG-123", commits=list(commits))


def test_ticket_reverts_use_the_latest_commit():
    ticket = make_ticket(
        make_commit("1", date="2020-02-02T16:02:36-08:00"),
        make_commit("2", date="2020-02-04T16:02:36-08:00", reverted="10"),
        make_commit("3", date="2020-02-03T16:02:36-08:00"),
    )
    reverts.decorate_ticket_reverts([ticket])
    assert ticket.reverted == "10"


def test_ticket_reverted_by_commit():
    ticket = make_ticket(
        make_commit("1", date="2020-02-04T16:02:36-08:00", reverted_by="10"),
        make_commit("2", date="2020-02-02T16:02:36-08:00"),
        make_commit("3", date="2020-02-03T16:02:36-08:00"),
    )
    reverts.decorate_ticket_reverts([ticket])
    assert ticket.reverted == "10"


def test_ticket_with_an_older_revert_is_not_reverted():
    ticket = make_ticket(
        make_commit("1", date="2020-02-02T16:02:36-08:00", reverted="10"),
        make_commit("2", date="2020-02-04T16:02:36-08:00"),
    )
    reverts.decorate_ticket_reverts([ticket])
    assert not ticket.reverted


def test_ticket_without_commits_is_not_reverted():
    ticket = make_ticket()
    ticket.reverted = "stale"
    reverts.decorate_ticket_reverts([ticket])
    assert ticket.reverted is None
