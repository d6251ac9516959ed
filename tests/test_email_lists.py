"""Watchlist 수신자 목록 테스트."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pendulum
import pytest

from activity_report.contacts import ContactDirectory, parse_contacts
from activity_report.email_lists import (
    EmailLists,
    build_email_lists,
    watchlist_contacts,
    write_email_lists,
)
from activity_report.models import Repository
from activity_report.sla import apply_sla

OPT_IN = "mypurecloud-opt-in"


@pytest.fixture()
def directory(
    repo_contacts_data: dict[str, Any], github_users_data: dict[str, Any],
) -> ContactDirectory:
    return parse_contacts(repo_contacts_data, github_users_data)


@pytest.fixture()
def make_repo(sample_repo_data: dict[str, Any], now: pendulum.DateTime):
    def factory(name: str, *, on_watchlist: bool = True) -> Repository:
        created = now.subtract(days=40 if on_watchlist else 1).isoformat()
        repo = Repository.model_validate(
            {
                **sample_repo_data,
                "name": name,
                "issues": [{"number": 1, "created_at": created, "updated_at": created}],
            }
        )
        apply_sla(repo, now)
        return repo

    return factory


class TestWatchlistContacts:
    def test_maintainers(self, directory: ContactDirectory, make_repo) -> None:
        contacts = watchlist_contacts(make_repo("platform-client-sdk-javascript"), directory)
        assert [c.email for c in contacts] == ["alex.smith@example.com", "bo.wong@example.com"]

    def test_owners_when_no_maintainers(
        self, directory: ContactDirectory, make_repo, caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="activity_report"):
            contacts = watchlist_contacts(make_repo("owners-only"), directory)

        assert [c.email for c in contacts] == ["jane.doe@example.com"]
        assert "does not have maintainers defined" in caplog.text

    def test_unconfigured_repo(
        self, directory: ContactDirectory, make_repo, caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.ERROR, logger="activity_report"):
            assert watchlist_contacts(make_repo("unconfigured"), directory) == []
        assert "No configuration for unconfigured!" in caplog.text

    def test_no_owners_or_maintainers(
        self, directory: ContactDirectory, make_repo, caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.ERROR, logger="activity_report"):
            assert watchlist_contacts(make_repo("empty-entry"), directory) == []
        assert "does not have owners or maintainers defined" in caplog.text

    def test_unknown_maintainer_dropped(self, make_repo) -> None:
        directory = parse_contacts(
            {"mypurecloud": {"widgets": {"maintainers": ["ghost", "jdoe"]}}},
            {"jdoe": {"name": "Jane Doe", "email": "jane.doe@example.com"}},
        )

        contacts = watchlist_contacts(make_repo("widgets"), directory)

        assert [c.email for c in contacts] == ["jane.doe@example.com"]


class TestBuildEmailLists:
    def test_recipients_and_cc(self, directory: ContactDirectory, make_repo) -> None:
        repos = [
            make_repo("platform-client-sdk-javascript"),
            make_repo("owners-only"),
            make_repo("unconfigured"),
        ]

        lists = build_email_lists(repos, directory, OPT_IN)

        assert lists.recipients == [
            "alex.smith@example.com",
            "bo.wong@example.com",
            "jane.doe@example.com",
            "cc:casey.lee@example.com",
        ]
        assert lists.opt_in == ["casey.lee@example.com"]

    def test_repos_without_watchlist_ignored(self, directory: ContactDirectory, make_repo) -> None:
        repos = [make_repo("platform-client-sdk-javascript", on_watchlist=False)]

        lists = build_email_lists(repos, directory, OPT_IN)

        assert lists.recipients == ["cc:casey.lee@example.com"]

    def test_recipients_deduplicated(self, make_repo) -> None:
        directory = parse_contacts(
            {
                "mypurecloud": {
                    "one": {"maintainers": ["jdoe"]},
                    "two": {"maintainers": ["jdoe"]},
                },
                OPT_IN: [
                    {"name": "Jane Doe", "email": "jane.doe@example.com"},
                    {"name": "Casey Lee", "email": "casey.lee@example.com"},
                    {"name": "Casey Lee", "email": "casey.lee@example.com"},
                ],
            },
            {"jdoe": {"name": "Jane Doe", "email": "jane.doe@example.com"}},
        )

        lists = build_email_lists([make_repo("one"), make_repo("two")], directory, OPT_IN)

        assert lists.recipients == ["jane.doe@example.com", "cc:casey.lee@example.com"]
        assert lists.opt_in == ["jane.doe@example.com", "casey.lee@example.com"]

    def test_missing_opt_in_group(
        self, directory: ContactDirectory, caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="activity_report"):
            lists = build_email_lists([], directory, "nobody-opt-in")

        assert lists == EmailLists()
        assert "Opt-in group nobody-opt-in is empty or missing" in caplog.text


class TestWriteEmailLists:
    def test_comma_separated_files(self, tmp_path: Path) -> None:
        lists = EmailLists(
            recipients=["a@example.com", "cc:b@example.com"], opt_in=["b@example.com"],
        )

        recipients_path, opt_in_path = write_email_lists(
            lists,
            tmp_path / "emails",
            recipients_filename="watchlist-emails.txt",
            opt_in_filename=f"{OPT_IN}.txt",
        )

        assert recipients_path.read_text() == "a@example.com,cc:b@example.com"
        assert opt_in_path.read_text() == "b@example.com"
        assert opt_in_path.name == "mypurecloud-opt-in.txt"
