"""GitHub data fetching via REST API."""

import asyncio
import logging
import time
from datetime import datetime
from typing import AsyncIterator, Awaitable, Callable, Optional, Sequence

import httpx

from org_auditor.models import CommitRecord, Member, RepoTarget

log = logging.getLogger(__name__)

RepoAdminProbe = Callable[[str], Awaitable[bool]]


class RateLimitExceeded(httpx.HTTPStatusError):
    """GitHub refused a request because the rate limit is spent."""


class GitHubFetcher:
    """Fetches membership, repositories, commits and permissions from GitHub."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        max_rate_limit_wait: float = 900.0,
    ) -> None:
        self.token = token
        self.base_url = base_url
        self.timeout = timeout
        self.max_rate_limit_wait = max_rate_limit_wait
        self._client: Optional[httpx.AsyncClient] = None
        self._rate_limit_reset: Optional[float] = None  # epoch seconds

    # ── HTTP plumbing ─────────────────────────────────────────────────────

    @property
    def headers(self) -> dict[str, str]:
        h: dict[str, str] = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            h["Authorization"] = f"Bearer {self.token}"
        return h

    async def _client_instance(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                timeout=self.timeout,
            )
        return self._client

    async def _wait_for_rate_limit(self) -> None:
        """Hold the request back while the rate-limit window is spent."""
        if self._rate_limit_reset is None:
            return
        delay = self._rate_limit_reset - time.time()
        if delay <= 0:
            self._rate_limit_reset = None
            return
        delay = min(delay, self.max_rate_limit_wait)
        log.warning("GitHub rate limit exhausted, waiting %.0fs for reset", delay)
        await asyncio.sleep(delay)

    def _track_rate_limit(self, resp: httpx.Response) -> None:
        remaining = resp.headers.get("x-ratelimit-remaining")
        reset = resp.headers.get("x-ratelimit-reset")
        if remaining == "0" and reset and reset.isdigit():
            self._rate_limit_reset = float(reset)

    async def _get(self, path: str, **kwargs) -> httpx.Response:  # type: ignore[no-untyped-def]
        """GET with rate-limit awareness.

        Raises ``httpx.TransportError`` on connection problems and
        ``httpx.HTTPStatusError`` for any non-success status.
        """
        await self._wait_for_rate_limit()
        client = await self._client_instance()
        resp = await client.get(path, **kwargs)
        self._track_rate_limit(resp)
        if resp.status_code in (403, 429) and (
            "rate limit" in resp.text.lower()
            or resp.headers.get("x-ratelimit-remaining") == "0"
        ):
            remaining = resp.headers.get("x-ratelimit-remaining", "0")
            raise RateLimitExceeded(
                f"GitHub API rate limit exceeded (remaining: {remaining}). "
                "Wait for the limit to reset, or lower --max-workers, and retry.",
                request=resp.request,
                response=resp,
            )
        resp.raise_for_status()
        return resp

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # ── Paginated helper ──────────────────────────────────────────────────

    async def _paginate(
        self,
        path: str,
        params: Optional[dict[str, str]] = None,
    ) -> AsyncIterator[list[dict]]:
        """Yield pages until the ``Link`` header has no ``next`` relation."""
        params = dict(params or {})
        params.setdefault("per_page", "100")

        url: Optional[str] = path
        query: Optional[dict[str, str]] = params
        while url:
            resp = await self._get(url, params=query)
            yield resp.json()
            # The next URL already carries the query string.
            url = resp.links.get("next", {}).get("url")
            query = None

    async def _collect(
        self, path: str, params: Optional[dict[str, str]] = None
    ) -> list[dict]:
        results: list[dict] = []
        async for page in self._paginate(path, params):
            results.extend(page)
        return results

    # ── Membership ────────────────────────────────────────────────────────

    async def list_org_members(self, org: str) -> list[Member]:
        """List current members, flagging organization admins."""
        everyone = await self._collect(f"/orgs/{org}/members")
        admins = {
            item["login"]
            for item in await self._collect(
                f"/orgs/{org}/members", params={"role": "admin"}
            )
        }
        return [
            Member(login=item["login"], org_admin=item["login"] in admins)
            for item in everyone
        ]

    async def list_pending_invitations(self, org: str) -> list[str]:
        """Logins with an outstanding invitation (e-mail invites are skipped)."""
        raw = await self._collect(f"/orgs/{org}/invitations")
        return [item["login"] for item in raw if item.get("login")]

    async def list_current_members(self, org: str) -> list[Member]:
        """Members plus pending invitees; together they define membership."""
        members = await self.list_org_members(org)
        known = {m.login for m in members}
        for login in await self.list_pending_invitations(org):
            if login not in known:
                members.append(Member(login=login, pending=True))
                known.add(login)
        return members

    # ── Repositories ──────────────────────────────────────────────────────

    async def list_repositories(self, org: str) -> list[str]:
        """Names of the organization's public, non-archived repositories."""
        raw = await self._collect(f"/orgs/{org}/repos", params={"type": "public"})
        return [item["name"] for item in raw if not item.get("archived")]

    # ── Commits ───────────────────────────────────────────────────────────

    async def iter_commits(
        self, owner: str, repo: str
    ) -> AsyncIterator[list[CommitRecord]]:
        """Yield the repository's commits one page at a time."""
        async for page in self._paginate(f"/repos/{owner}/{repo}/commits"):
            records: list[CommitRecord] = []
            for item in page:
                author_info = item.get("commit", {}).get("author") or {}
                if not author_info.get("date"):
                    continue
                records.append(
                    CommitRecord(
                        author_login=(item.get("author") or {}).get("login"),
                        date=datetime.fromisoformat(
                            author_info["date"].replace("Z", "+00:00")
                        ),
                    )
                )
            yield records

    # ── Permissions ───────────────────────────────────────────────────────

    async def get_permission_level(self, owner: str, repo: str, login: str) -> str:
        """Permission of ``login`` on a repository (``admin``, ``write``, …)."""
        resp = await self._get(
            f"/repos/{owner}/{repo}/collaborators/{login}/permission"
        )
        return resp.json().get("permission", "none")

    def make_repo_admin_probe(self, targets: Sequence[RepoTarget]) -> RepoAdminProbe:
        """Build a probe that reports whether a login administers any target."""

        async def probe(login: str) -> bool:
            for target in targets:
                level = await self.get_permission_level(
                    target.owner, target.repo, login
                )
                if level == "admin":
                    log.info("%s is an admin of %s", login, target.full_name)
                    return True
            return False

        return probe
