"""Audit engine.

Orchestrates GitHub membership and repository listing, the concurrent
commit scan and the membership classification to produce an AuditReport.
"""

import logging
import os
from datetime import datetime
from typing import Callable, Optional

from org_auditor.classifier import classify
from org_auditor.config import AuditConfig
from org_auditor.fetcher import GitHubFetcher
from org_auditor.models import AuditReport, RepoTarget
from org_auditor.scheduler import build_targets, collect_activity

log = logging.getLogger(__name__)


class Auditor:
    """End-to-end organization membership audit."""

    def __init__(
        self,
        token: Optional[str] = None,
        on_status: Optional[Callable[[str], None]] = None,
        fetcher: Optional[GitHubFetcher] = None,
    ) -> None:
        self.token = token or os.environ.get("GITHUB_TOKEN") or os.environ.get("GH_TOKEN") or None
        self._on_status = on_status or (lambda _: None)
        self._fetcher = fetcher or GitHubFetcher(token=self.token)

    # ── Status helper ─────────────────────────────────────────────────────

    def _status(self, msg: str) -> None:
        log.info(msg)
        self._on_status(msg)

    async def close(self) -> None:
        """Tear down resources."""
        await self._fetcher.close()

    # ── Full audit ────────────────────────────────────────────────────────

    async def audit(
        self, config: AuditConfig, now: Optional[datetime] = None
    ) -> AuditReport:
        """Run the entire audit pipeline.

        Enumeration and commit-scan failures propagate and abort the run;
        only repository permission probes are allowed to fail quietly.
        """
        org = config.organisation
        cutoff1, cutoff2 = config.cutoffs(now)

        # 1. Current membership
        self._status("Listing current members …")
        members = await self._fetcher.list_current_members(org)

        # 2. Repositories
        self._status("Listing repositories …")
        repo_names = await self._fetcher.list_repositories(org)
        targets = build_targets(org, repo_names, config.also_repos)

        # 3. Commit activity
        self._status(f"Scanning commits in {len(targets)} repositories …")

        def on_progress(done: int, total: int, target: RepoTarget) -> None:
            self._status(f"Scanned {target.full_name} ({done}/{total})")

        activity = await collect_activity(
            self._fetcher,
            targets,
            cutoff1,
            cutoff2,
            max_workers=config.max_workers,
            bot_marker=config.bot_marker,
            on_progress=on_progress,
        )

        # 4. Classification
        self._status("Classifying members …")
        classification = await classify(
            members,
            activity,
            config.thresholds,
            ignore=config.ignore_users,
            probe=self._fetcher.make_repo_admin_probe(targets),
        )

        warnings = [
            f"Could not determine repository permissions of {login}; "
            + (
                "kept as a removal candidate"
                if login in classification.to_remove
                else "left out of the removal list"
            )
            for login in sorted(classification.unresolved)
        ]

        self._status("Done!")
        return AuditReport(
            organisation=org,
            cutoff1=cutoff1,
            cutoff2=cutoff2,
            targets=targets,
            members=members,
            activity=activity,
            classification=classification,
            warnings=warnings,
        )
