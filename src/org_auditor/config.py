"""Audit configuration."""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from org_auditor.aggregator import BOT_MARKER
from org_auditor.classifier import add_years
from org_auditor.models import ProbeFailurePolicy, RepoTarget, Thresholds
from org_auditor.scheduler import DEFAULT_MAX_WORKERS, parse_repo_target


def _split_csv(value: Any) -> Any:
    # Environment variables arrive as one comma-separated string.
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if isinstance(value, (list, tuple)):
        items: list[Any] = []
        for v in value:
            if isinstance(v, str):
                items.extend(p.strip() for p in v.split(",") if p.strip())
            else:
                items.append(v)
        return items
    return value


class AuditConfig(BaseModel):
    """Settings for one audit run."""

    organisation: str = Field(min_length=1)
    github_token: Optional[str] = None
    add_min_commits: int = Field(default=5, ge=1)
    add_time_window: int = Field(default=1, ge=1)  # years
    remove_time_window: int = Field(default=5, ge=1)  # years
    also_repos: list[RepoTarget] = Field(default_factory=list)
    ignore_users: list[str] = Field(default_factory=list)
    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, ge=1)
    bot_marker: str = BOT_MARKER
    probe_failure_policy: ProbeFailurePolicy = ProbeFailurePolicy.keep

    @field_validator("also_repos", mode="before")
    @classmethod
    def _parse_also_repos(cls, value: Any) -> Any:
        return [
            parse_repo_target(v) if isinstance(v, str) else v
            for v in _split_csv(value)
        ]

    @field_validator("ignore_users", mode="before")
    @classmethod
    def _parse_ignore_users(cls, value: Any) -> Any:
        return _split_csv(value)

    @model_validator(mode="after")
    def _check_windows(self) -> "AuditConfig":
        if self.add_time_window >= self.remove_time_window:
            raise ValueError(
                "add_time_window must be shorter than remove_time_window "
                f"({self.add_time_window} >= {self.remove_time_window})"
            )
        return self

    @property
    def thresholds(self) -> Thresholds:
        return Thresholds(
            add_min_commits=self.add_min_commits,
            remove_time_window=self.remove_time_window,
            probe_failure_policy=self.probe_failure_policy,
        )

    def cutoffs(self, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
        """Return ``(cutoff1, cutoff2)``; the first is the more recent."""
        now = now or datetime.now(timezone.utc)
        return (
            add_years(now, -self.add_time_window),
            add_years(now, -self.remove_time_window),
        )
