"""Tests for the membership classifier."""

import random
from datetime import date, datetime, timezone

import httpx
import pytest
import respx

from org_auditor.classifier import (
    add_years,
    build_activity_table,
    classify,
    removal_candidates,
    select_additions,
)
from org_auditor.fetcher import GitHubFetcher
from org_auditor.models import (
    AggregateActivity,
    Member,
    MemberStatus,
    ProbeFailurePolicy,
    RepoTarget,
    Thresholds,
)


@pytest.fixture
def thresholds():
    return Thresholds(add_min_commits=5, remove_time_window=5)


def _probe(admins=(), failing=()):
    calls = []

    async def probe(login):
        calls.append(login)
        if login in failing:
            raise httpx.ConnectError("permission lookup failed")
        return login in admins

    probe.calls = calls
    return probe


class TestAddYears:
    def test_forward_and_back(self):
        d = datetime(2024, 3, 15, tzinfo=timezone.utc)
        assert add_years(d, 5) == datetime(2029, 3, 15, tzinfo=timezone.utc)
        assert add_years(d, -1) == datetime(2023, 3, 15, tzinfo=timezone.utc)

    def test_leap_day(self):
        assert add_years(datetime(2024, 2, 29), 1) == datetime(2025, 2, 28)


class TestScenarios:
    @pytest.mark.asyncio
    async def test_alice_is_added(self, members, activity, thresholds):
        result = await classify(members, activity, thresholds)
        assert "alice" in result.to_add

    @pytest.mark.asyncio
    async def test_bob_is_removed(self, members, activity, thresholds):
        result = await classify(members, activity, thresholds)
        assert "bob" in result.to_remove
        assert activity.last_commit["bob"] == datetime(2019, 2, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_carol_is_retained_with_any_long_window_commit(self, members, activity, thresholds):
        result = await classify(members, activity, thresholds)
        assert "carol" not in result.to_remove
        assert "carol" not in result.to_add

    @pytest.mark.asyncio
    async def test_active_member_is_neither_added_nor_removed(self, members, activity, thresholds):
        result = await classify(members, activity, thresholds)
        assert "erin" not in result.to_add
        assert "erin" not in result.to_remove
        assert result.has_recommendation is True


class TestSelectAdditions:
    def test_threshold_applies_to_summed_count(self):
        activity = AggregateActivity(interval1={"alice": 5, "zed": 4})
        assert select_additions([], activity, 5) == {"alice"}

    def test_members_and_ignored_are_not_added(self):
        activity = AggregateActivity(interval1={"alice": 9, "bob": 9, "mallory": 9})
        assert select_additions([Member(login="bob")], activity, 5, ignore=["mallory"]) == {"alice"}

    def test_pending_invitee_is_not_added_again(self):
        activity = AggregateActivity(interval1={"newbie": 9})
        assert select_additions([Member(login="newbie", pending=True)], activity, 5) == set()


class TestRemovalCandidates:
    def test_org_admin_is_exempt(self):
        members = [Member(login="dave", org_admin=True), Member(login="bob")]
        assert removal_candidates(members, AggregateActivity()) == {"bob"}

    def test_ignored_members_are_exempt(self):
        assert removal_candidates([Member(login="bob")], AggregateActivity(), ignore=["bob"]) == set()

    def test_zero_counts_do_not_count_as_activity(self):
        activity = AggregateActivity(interval2={"bob": 0})
        assert removal_candidates([Member(login="bob")], activity) == {"bob"}


class TestRepoAdminProbe:
    @pytest.mark.asyncio
    async def test_repo_admin_is_not_removed(self, members, activity, thresholds):
        probe = _probe(admins={"bob"})
        result = await classify(members, activity, thresholds, probe=probe)
        assert "bob" not in result.to_remove
        assert result.repo_admins == {"bob"}
        assert next(m for m in members if m.login == "bob").repo_admin is True

    @pytest.mark.asyncio
    async def test_only_candidates_are_probed(self, members, activity, thresholds):
        probe = _probe()
        await classify(members, activity, thresholds, probe=probe)
        assert probe.calls == ["bob"]

    @pytest.mark.asyncio
    async def test_known_repo_admin_is_not_probed_again(self, activity, thresholds):
        members = [Member(login="bob", repo_admin=True)]
        probe = _probe()
        result = await classify(members, activity, thresholds, probe=probe)
        assert probe.calls == []
        assert result.to_remove == set()

    @pytest.mark.asyncio
    async def test_probe_failure_keeps_candidate_by_default(self, members, activity, thresholds):
        probe = _probe(failing={"bob"})
        result = await classify(members, activity, thresholds, probe=probe)
        assert "bob" in result.to_remove
        assert result.unresolved == {"bob"}

    @pytest.mark.asyncio
    async def test_probe_failure_can_exclude_candidate(self, members, activity):
        thresholds = Thresholds(probe_failure_policy=ProbeFailurePolicy.exclude)
        probe = _probe(failing={"bob"})
        result = await classify(members, activity, thresholds, probe=probe)
        assert "bob" not in result.to_remove
        assert result.unresolved == {"bob"}

    @pytest.mark.asyncio
    async def test_probe_failure_does_not_stop_other_probes(self, thresholds):
        members = [Member(login="a"), Member(login="b"), Member(login="c")]
        probe = _probe(admins={"c"}, failing={"a"})
        result = await classify(members, AggregateActivity(), thresholds, probe=probe)
        assert probe.calls == ["a", "b", "c"]
        assert result.to_remove == {"a", "b"}
        assert result.repo_admins == {"c"}


    @pytest.mark.asyncio
    @respx.mock
    async def test_non_json_permission_body_leaves_member_unresolved(self, thresholds):
        respx.get("https://api.github.com/repos/octo/app/collaborators/bob/permission").mock(
            return_value=httpx.Response(200, text="<html>proxy</html>")
        )
        fetcher = GitHubFetcher(token="t")
        probe = fetcher.make_repo_admin_probe([RepoTarget(owner="octo", repo="app")])
        result = await classify([Member(login="bob")], AggregateActivity(), thresholds, probe=probe)
        await fetcher.close()
        assert result.unresolved == {"bob"}
        assert result.to_remove == {"bob"}

    @pytest.mark.asyncio
    async def test_malformed_answer_does_not_abort(self, thresholds):
        async def probe(login):
            raise ValueError("Expecting value")

        members = [Member(login="a"), Member(login="b")]
        result = await classify(members, AggregateActivity(), thresholds, probe=probe)
        assert result.unresolved == {"a", "b"}


class TestActivityTable:
    def test_rows_and_statuses(self, members, activity, thresholds):
        rows = build_activity_table(members, activity, thresholds)
        by_login = {r.login: r for r in rows}
        assert by_login["dave"].status is MemberStatus.org_admin
        assert by_login["erin"].status is MemberStatus.recently_active
        assert by_login["alice"].status is MemberStatus.recently_active
        # bob: no activity; carol: below threshold in both windows.
        assert "bob" not in by_login
        assert "carol" not in by_login

    def test_sorted_by_short_then_long_window(self, members, activity, thresholds):
        rows = build_activity_table(members, activity, thresholds)
        assert [r.login for r in rows] == ["erin", "alice", "dave"]

    def test_ties_broken_by_login(self, thresholds):
        activity = AggregateActivity(
            interval1={"zoe": 5, "amy": 5, "kim": 5},
            interval2={"zoe": 5, "amy": 5, "kim": 6},
        )
        rows = build_activity_table([], activity, thresholds)
        assert [r.login for r in rows] == ["kim", "amy", "zoe"]

    def test_long_window_only_gets_removal_date(self, thresholds):
        last = datetime(2022, 8, 20, tzinfo=timezone.utc)
        activity = AggregateActivity(interval2={"frank": 12}, last_commit={"frank": last})
        rows = build_activity_table([Member(login="frank")], activity, thresholds)
        assert rows[0].status is MemberStatus.long_window_only
        assert rows[0].eligible_for_removal_on == date(2027, 8, 20)

    def test_repo_admin_status(self, thresholds):
        rows = build_activity_table([Member(login="gina", repo_admin=True)], AggregateActivity(), thresholds)
        assert rows[0].status is MemberStatus.repo_admin

    def test_org_admin_status_wins(self, thresholds):
        activity = AggregateActivity(interval1={"dave": 20}, interval2={"dave": 20})
        rows = build_activity_table([Member(login="dave", org_admin=True, repo_admin=True)], activity, thresholds)
        assert rows[0].status is MemberStatus.org_admin

    def test_ignored_users_are_left_out(self, members, activity, thresholds):
        rows = build_activity_table(members, activity, thresholds, ignore=["alice", "dave"])
        assert [r.login for r in rows] == ["erin"]


class TestProperties:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", range(25))
    async def test_invariants_hold_for_random_inputs(self, seed, thresholds):
        rng = random.Random(seed)
        logins = [f"user{i}" for i in range(20)]
        members = [
            Member(login=login, org_admin=rng.random() < 0.2)
            for login in rng.sample(logins, 10)
        ]
        interval2 = {login: rng.randint(0, 8) for login in rng.sample(logins, 12)}
        interval1 = {
            login: rng.randint(0, n) for login, n in interval2.items() if rng.random() < 0.7
        }
        activity = AggregateActivity(interval1=interval1, interval2=interval2)
        ignore = set(rng.sample(logins, 3))

        result = await classify(members, activity, thresholds, ignore=ignore)

        current = {m.login for m in members}
        org_admins = {m.login for m in members if m.org_admin}
        assert result.to_add.isdisjoint(current)
        assert result.to_remove <= current
        assert result.to_add.isdisjoint(ignore)
        assert result.to_remove.isdisjoint(ignore)
        assert result.to_remove.isdisjoint(org_admins)
        assert all(r.login not in ignore for r in result.activity_table)

    @pytest.mark.asyncio
    async def test_idle_org_admin_is_never_removed(self, thresholds):
        members = [Member(login="root", org_admin=True)]
        result = await classify(members, AggregateActivity(), thresholds, probe=_probe())
        assert result.to_remove == set()
        assert result.has_recommendation is False

    @pytest.mark.asyncio
    async def test_ignored_user_never_recommended(self, thresholds):
        members = [Member(login="idle")]
        activity = AggregateActivity(interval1={"busy": 100}, interval2={"busy": 100})
        result = await classify(members, activity, thresholds, ignore=["idle", "busy"])
        assert result.to_add == set()
        assert result.to_remove == set()
