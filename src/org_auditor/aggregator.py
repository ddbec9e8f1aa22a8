"""Commit window aggregation — per-repository activity counts."""

import logging
from datetime import datetime
from typing import Iterable

from org_auditor.fetcher import GitHubFetcher
from org_auditor.models import CommitRecord, RepoCommitStats, RepoTarget

log = logging.getLogger(__name__)

BOT_MARKER = "[bot]"


def tally_commits(
    stats: RepoCommitStats,
    commits: Iterable[CommitRecord],
    cutoff1: datetime,
    cutoff2: datetime,
    bot_marker: str = BOT_MARKER,
) -> RepoCommitStats:
    """Add ``commits`` to ``stats`` and return it.

    A commit newer than ``cutoff1`` counts in the short window, one newer
    than ``cutoff2`` in the long window. With ``cutoff1`` the more recent of
    the two, every short-window commit is also a long-window commit.
    """
    for c in commits:
        login = c.author_login
        if not login:
            continue
        if bot_marker and bot_marker in login:
            continue
        if c.date > cutoff1:
            stats.interval1[login] = stats.interval1.get(login, 0) + 1
        if c.date > cutoff2:
            stats.interval2[login] = stats.interval2.get(login, 0) + 1
        last = stats.last_commit.get(login)
        if last is None or last < c.date:
            stats.last_commit[login] = c.date
    return stats


async def aggregate_repository(
    fetcher: GitHubFetcher,
    target: RepoTarget,
    cutoff1: datetime,
    cutoff2: datetime,
    bot_marker: str = BOT_MARKER,
) -> RepoCommitStats:
    """Scan the full commit history of one repository."""
    log.info("Listing %s commits …", target.full_name)
    stats = RepoCommitStats(repo=target.full_name)
    async for page in fetcher.iter_commits(target.owner, target.repo):
        tally_commits(stats, page, cutoff1, cutoff2, bot_marker)
    log.debug(
        "%s: %d users in short window, %d in long window",
        target.full_name,
        len(stats.interval1),
        len(stats.interval2),
    )
    return stats
