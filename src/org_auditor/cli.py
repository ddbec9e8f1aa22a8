"""CLI entry point for org-auditor."""

import asyncio
import logging
from typing import Optional

import httpx
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from org_auditor.aggregator import BOT_MARKER
from org_auditor.auditor import Auditor
from org_auditor.config import AuditConfig
from org_auditor.models import AuditReport, ProbeFailurePolicy
from org_auditor.render import render_report
from org_auditor.scheduler import DEFAULT_MAX_WORKERS, AggregationError

EXIT_RECOMMENDATION = 1
EXIT_ERROR = 2

app = typer.Typer(
    name="org-auditor",
    help="Recommend GitHub organization membership changes from commit activity.",
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def _run(config: AuditConfig) -> AuditReport:
    auditor = Auditor(token=config.github_token)
    try:
        return await auditor.audit(config)
    finally:
        await auditor.close()


def _describe(exc: Exception) -> str:
    if isinstance(exc, AggregationError):
        return f"Scanning {exc.target.full_name} failed: {_describe(exc.cause)}"  # type: ignore[arg-type]
    if isinstance(exc, httpx.HTTPStatusError):
        if exc.response.status_code == 404:
            return f"Not found: {exc.request.url}. Check the organisation and repository names."
        return str(exc)
    if isinstance(exc, httpx.TransportError):
        return f"Could not reach GitHub: {exc!r}"
    return str(exc)


@app.command()
def audit(
    github_token: str = typer.Option(..., envvar="GITHUB_TOKEN", help="GitHub token"),
    organisation: str = typer.Option(..., envvar="GITHUB_ORGANISATION", help="Organisation name"),
    add_min_commits: int = typer.Option(5, help="Minimum number of commits to be considered active"),
    add_time_window: int = typer.Option(1, help="Time window in years to consider active"),
    remove_time_window: int = typer.Option(5, help="Time window in years to consider inactive"),
    also_repos: Optional[list[str]] = typer.Option(None, envvar="ALSO_REPOS", help="Also consider these repositories (owner/repo)"),
    ignore_users: Optional[list[str]] = typer.Option(None, envvar="IGNORE_USERS", help="Make no recommendation about these users"),
    max_workers: int = typer.Option(DEFAULT_MAX_WORKERS, help="Repositories scanned concurrently"),
    bot_marker: str = typer.Option(BOT_MARKER, help="Logins containing this text are ignored as bots"),
    probe_failure_policy: ProbeFailurePolicy = typer.Option(
        ProbeFailurePolicy.keep,
        help="Removal candidates whose permission check failed: keep them or exclude them",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress"),
) -> None:
    _setup_logging(verbose)
    try:
        config = AuditConfig(
            organisation=organisation,
            github_token=github_token,
            add_min_commits=add_min_commits,
            add_time_window=add_time_window,
            remove_time_window=remove_time_window,
            also_repos=also_repos or [],
            ignore_users=ignore_users or [],
            max_workers=max_workers,
            bot_marker=bot_marker,
            probe_failure_policy=probe_failure_policy,
        )
    except ValidationError as exc:
        err_console.print(f"[red]Invalid configuration:[/red] {escape(str(exc))}")
        raise typer.Exit(code=EXIT_ERROR)

    try:
        report = asyncio.run(_run(config))
    except (httpx.HTTPError, AggregationError) as exc:
        err_console.print(f"[red]Error:[/red] {escape(_describe(exc))}", highlight=False)
        raise typer.Exit(code=EXIT_ERROR)

    render_report(report, console)
    if report.has_recommendation:
        raise typer.Exit(code=EXIT_RECOMMENDATION)


def main() -> None:
    """Load ``.env`` and run the CLI."""
    from dotenv import load_dotenv

    load_dotenv()  # Load .env file (e.g. GITHUB_TOKEN)

    app()


if __name__ == "__main__":
    main()
