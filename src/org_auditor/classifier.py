"""Membership classification — who to add, who to remove."""

import logging
from datetime import datetime
from typing import Iterable, Optional

import httpx

from org_auditor.fetcher import RepoAdminProbe
from org_auditor.models import (
    ActivityRow,
    AggregateActivity,
    Classification,
    Member,
    MemberStatus,
    ProbeFailurePolicy,
    Thresholds,
)

log = logging.getLogger(__name__)


def add_years(when: datetime, years: int) -> datetime:
    """Shift by whole calendar years; 29 Feb falls back to 28 Feb."""
    try:
        return when.replace(year=when.year + years)
    except ValueError:
        return when.replace(year=when.year + years, day=28)


def select_additions(
    members: Iterable[Member],
    activity: AggregateActivity,
    add_min_commits: int,
    ignore: Iterable[str] = (),
) -> set[str]:
    """Active non-members with at least ``add_min_commits`` short-window commits."""
    current = {m.login for m in members}
    active = {
        login
        for login, count in activity.interval1.items()
        if count >= add_min_commits
    }
    return active - current - set(ignore)


def removal_candidates(
    members: Iterable[Member],
    activity: AggregateActivity,
    ignore: Iterable[str] = (),
) -> set[str]:
    """Members without a single long-window commit, org admins excepted."""
    members = list(members)
    current = {m.login for m in members}
    active = {login for login, count in activity.interval2.items() if count > 0}
    org_admins = {m.login for m in members if m.org_admin}
    return current - active - org_admins - set(ignore)


async def resolve_repo_admins(
    members: Iterable[Member],
    candidates: set[str],
    probe: RepoAdminProbe,
) -> tuple[set[str], set[str]]:
    """Probe each candidate for repository admin rights.

    Returns ``(repo_admins, unresolved)``. A member found to be a repo
    admin gets ``repo_admin`` set. A probe failure is logged and the login
    goes into ``unresolved``; it does not abort the run.
    """
    by_login = {m.login: m for m in members}
    repo_admins: set[str] = set()
    unresolved: set[str] = set()
    for login in sorted(candidates):
        member = by_login.get(login)
        if member is not None and (member.org_admin or member.repo_admin):
            if member.repo_admin:
                repo_admins.add(login)
            continue
        try:
            is_admin = await probe(login)
        except (httpx.HTTPError, ValueError) as exc:
            # ValueError: a success response whose body is not JSON.
            log.warning("Could not check repository permissions of %s: %s", login, exc)
            unresolved.add(login)
            continue
        if is_admin:
            repo_admins.add(login)
            if member is not None:
                member.repo_admin = True
    return repo_admins, unresolved


def build_activity_table(
    members: Iterable[Member],
    activity: AggregateActivity,
    thresholds: Thresholds,
    ignore: Iterable[str] = (),
) -> list[ActivityRow]:
    """Rank members and short-window-active users by activity."""
    by_login = {m.login: m for m in members}
    active = {
        login
        for login, count in activity.interval1.items()
        if count >= thresholds.add_min_commits
    }
    users = (set(by_login) | active) - set(ignore)

    rows: list[ActivityRow] = []
    for login in users:
        member = by_login.get(login)
        n1 = activity.interval1.get(login, 0)
        n2 = activity.interval2.get(login, 0)
        last = activity.last_commit.get(login)
        eligible = None
        if member is not None and member.org_admin:
            status = MemberStatus.org_admin
        elif member is not None and member.repo_admin:
            status = MemberStatus.repo_admin
        elif n1 >= thresholds.add_min_commits:
            status = MemberStatus.recently_active
        elif n2 >= thresholds.add_min_commits:
            status = MemberStatus.long_window_only
            if last is not None:
                eligible = add_years(last, thresholds.remove_time_window).date()
        else:
            continue
        rows.append(
            ActivityRow(
                login=login,
                interval1=n1,
                interval2=n2,
                last_commit=last,
                status=status,
                eligible_for_removal_on=eligible,
            )
        )
    rows.sort(key=lambda r: (-r.interval1, -r.interval2, r.login))
    return rows


async def classify(
    members: list[Member],
    activity: AggregateActivity,
    thresholds: Thresholds,
    ignore: Iterable[str] = (),
    probe: Optional[RepoAdminProbe] = None,
) -> Classification:
    """Turn aggregated activity into membership recommendations."""
    ignore = set(ignore)
    to_add = select_additions(members, activity, thresholds.add_min_commits, ignore)
    candidates = removal_candidates(members, activity, ignore)

    repo_admins: set[str] = set()
    unresolved: set[str] = set()
    if probe is not None and candidates:
        repo_admins, unresolved = await resolve_repo_admins(members, candidates, probe)
    else:
        repo_admins = {m.login for m in members if m.repo_admin} & candidates

    to_remove = candidates - repo_admins
    if thresholds.probe_failure_policy is ProbeFailurePolicy.exclude:
        to_remove -= unresolved

    return Classification(
        to_add=to_add,
        to_remove=to_remove,
        unresolved=unresolved,
        repo_admins=repo_admins,
        activity_table=build_activity_table(members, activity, thresholds, ignore),
    )
