"""Pytest configuration and fixtures."""

from datetime import datetime, timezone

import pytest

from org_auditor.models import AggregateActivity, CommitRecord, Member


NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)
CUTOFF1 = datetime(2025, 6, 1, tzinfo=timezone.utc)  # short window: 1 year
CUTOFF2 = datetime(2021, 6, 1, tzinfo=timezone.utc)  # long window: 5 years


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def cutoffs():
    return CUTOFF1, CUTOFF2


def commits(login, count, when):
    """``count`` commits by ``login`` on the same date."""
    return [CommitRecord(author_login=login, date=when) for _ in range(count)]


def commit_json(login, date):
    """A commit as returned by ``GET /repos/{owner}/{repo}/commits``."""
    return {
        "sha": "0" * 40,
        "commit": {"author": {"name": login or "ghost", "date": date}},
        "author": {"login": login} if login else None,
    }


@pytest.fixture
def members():
    return [
        Member(login="bob"),
        Member(login="carol"),
        Member(login="dave", org_admin=True),
        Member(login="erin"),
    ]


@pytest.fixture
def activity():
    return AggregateActivity(
        interval1={"alice": 6, "erin": 7},
        interval2={"alice": 6, "carol": 3, "erin": 9},
        last_commit={
            "alice": datetime(2026, 3, 1, tzinfo=timezone.utc),
            "bob": datetime(2019, 2, 1, tzinfo=timezone.utc),
            "carol": datetime(2023, 4, 1, tzinfo=timezone.utc),
            "erin": datetime(2026, 5, 1, tzinfo=timezone.utc),
        },
    )
