"""Fan-out scheduling of aggregation units and fan-in of their results."""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Iterable, NamedTuple, Optional, Sequence

from org_auditor.aggregator import BOT_MARKER, aggregate_repository
from org_auditor.fetcher import GitHubFetcher
from org_auditor.models import AggregateActivity, RepoCommitStats, RepoTarget

log = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8


class InvalidRepoTarget(ValueError):
    """An extra repository was not given as ``owner/repo``."""


class AggregationError(RuntimeError):
    """Scanning one repository failed; the whole run is aborted."""

    def __init__(self, target: RepoTarget, cause: BaseException) -> None:
        super().__init__(f"{target.full_name}: {cause}")
        self.target = target
        self.cause = cause


class _Outcome(NamedTuple):
    target: RepoTarget
    stats: Optional[RepoCommitStats]
    error: Optional[BaseException]


def parse_repo_target(value: str) -> RepoTarget:
    """Parse ``owner/repo``."""
    owner, sep, repo = value.strip().partition("/")
    if not sep or not owner or not repo or "/" in repo:
        raise InvalidRepoTarget(f"Invalid repository name: {value!r}")
    return RepoTarget(owner=owner, repo=repo)


def build_targets(
    org: str, repo_names: Iterable[str], extra: Iterable[RepoTarget] = ()
) -> list[RepoTarget]:
    """Organization repositories followed by extra ones, without duplicates."""
    targets: list[RepoTarget] = []
    seen: set[str] = set()
    for t in [RepoTarget(owner=org, repo=name) for name in repo_names] + list(extra):
        key = t.full_name.lower()
        if key in seen:
            continue
        seen.add(key)
        targets.append(t)
    return targets


async def collect_activity(
    fetcher: GitHubFetcher,
    targets: Sequence[RepoTarget],
    cutoff1: datetime,
    cutoff2: datetime,
    max_workers: int = DEFAULT_MAX_WORKERS,
    bot_marker: str = BOT_MARKER,
    on_progress: Optional[Callable[[int, int, RepoTarget], None]] = None,
) -> AggregateActivity:
    """Scan every target concurrently and reduce the results.

    Units hand their outcome to a queue; this coroutine is the only reader
    and the only writer of the returned aggregate. It waits for one outcome
    per dispatched unit. The first failure cancels the remaining units and
    is raised as :class:`AggregationError`.
    """
    queue: asyncio.Queue[_Outcome] = asyncio.Queue()
    semaphore = asyncio.Semaphore(max_workers)

    async def unit(target: RepoTarget) -> None:
        try:
            async with semaphore:
                stats = await aggregate_repository(
                    fetcher, target, cutoff1, cutoff2, bot_marker
                )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await queue.put(_Outcome(target, None, exc))
        else:
            await queue.put(_Outcome(target, stats, None))

    tasks = [asyncio.create_task(unit(t)) for t in targets]
    activity = AggregateActivity()
    try:
        for done in range(1, len(tasks) + 1):
            outcome = await queue.get()
            if outcome.error is not None:
                log.error("Scanning %s failed: %s", outcome.target, outcome.error)
                raise AggregationError(outcome.target, outcome.error) from outcome.error
            if outcome.stats is not None:
                activity.merge(outcome.stats)
            if on_progress:
                on_progress(done, len(tasks), outcome.target)
    finally:
        pending = [t for t in tasks if not t.done()]
        for t in pending:
            t.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
    return activity
