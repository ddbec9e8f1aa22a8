"""Data models for org-auditor."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


# ── Membership ────────────────────────────────────────────────────────────

class Member(BaseModel):
    """A current organization member or a pending invitee."""

    login: str
    org_admin: bool = False
    repo_admin: bool = False
    pending: bool = False


# ── Repositories & commits ────────────────────────────────────────────────

class RepoTarget(BaseModel, frozen=True):
    """One repository whose commit history is scanned."""

    owner: str
    repo: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def __str__(self) -> str:
        return self.full_name


class CommitRecord(BaseModel):
    """The two commit fields the audit cares about."""

    author_login: Optional[str] = None
    date: datetime


class RepoCommitStats(BaseModel):
    """Per-repository commit tallies for the short and long windows."""

    repo: str
    interval1: dict[str, int] = Field(default_factory=dict)
    interval2: dict[str, int] = Field(default_factory=dict)
    last_commit: dict[str, datetime] = Field(default_factory=dict)


class AggregateActivity(BaseModel):
    """Activity summed over every scanned repository.

    Only the reducer in :mod:`org_auditor.scheduler` calls :meth:`merge`;
    sums and maxima make the result independent of merge order.
    """

    interval1: dict[str, int] = Field(default_factory=dict)
    interval2: dict[str, int] = Field(default_factory=dict)
    last_commit: dict[str, datetime] = Field(default_factory=dict)
    repos_scanned: int = 0

    def merge(self, stats: RepoCommitStats) -> None:
        for login, count in stats.interval1.items():
            self.interval1[login] = self.interval1.get(login, 0) + count
        for login, count in stats.interval2.items():
            self.interval2[login] = self.interval2.get(login, 0) + count
        for login, when in stats.last_commit.items():
            seen = self.last_commit.get(login)
            if seen is None or seen < when:
                self.last_commit[login] = when
        self.repos_scanned += 1


# ── Classification ────────────────────────────────────────────────────────

class MemberStatus(str, Enum):
    """Why a user is listed in the activity table."""

    org_admin = "org_admin"
    repo_admin = "repo_admin"
    recently_active = "recently_active"
    long_window_only = "long_window_only"

    @property
    def marker(self) -> str:
        markers = {
            MemberStatus.org_admin: "@",
            MemberStatus.repo_admin: "#",
            MemberStatus.recently_active: "+",
            MemberStatus.long_window_only: "-",
        }
        return markers[self]


class ProbeFailurePolicy(str, Enum):
    """What to do with a removal candidate whose admin probe failed."""

    keep = "keep"
    exclude = "exclude"


class Thresholds(BaseModel):
    """Classification thresholds."""

    add_min_commits: int = 5
    remove_time_window: int = 5  # years
    probe_failure_policy: ProbeFailurePolicy = ProbeFailurePolicy.keep


class ActivityRow(BaseModel):
    """One row of the ranked activity table."""

    login: str
    interval1: int = 0
    interval2: int = 0
    last_commit: Optional[datetime] = None
    status: MemberStatus
    eligible_for_removal_on: Optional[date] = None


class Classification(BaseModel):
    """Recommended membership changes."""

    to_add: set[str] = Field(default_factory=set)
    to_remove: set[str] = Field(default_factory=set)
    unresolved: set[str] = Field(default_factory=set)
    repo_admins: set[str] = Field(default_factory=set)
    activity_table: list[ActivityRow] = Field(default_factory=list)

    @property
    def has_recommendation(self) -> bool:
        return bool(self.to_add or self.to_remove)


# ── Full report ───────────────────────────────────────────────────────────

class AuditReport(BaseModel):
    """Everything produced by one audit run."""

    organisation: str
    cutoff1: datetime
    cutoff2: datetime
    targets: list[RepoTarget] = Field(default_factory=list)
    members: list[Member] = Field(default_factory=list)
    activity: AggregateActivity = Field(default_factory=AggregateActivity)
    classification: Classification = Field(default_factory=Classification)
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_recommendation(self) -> bool:
        return self.classification.has_recommendation
