"""Terminal rendering of an audit report."""

from datetime import datetime
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from org_auditor.models import ActivityRow, AuditReport


def _fmt_date(value: Optional[datetime]) -> str:
    return f"{value:%Y-%m-%d}" if value else "never"


def activity_table(rows: list[ActivityRow], title: Optional[str] = None) -> Table:
    t = Table(title=title, show_lines=False, box=None, pad_edge=False)
    for c in ("", "login", "short window", "long window", "last commit", "removable on"):
        t.add_column(c)
    for r in rows:
        t.add_row(
            r.status.marker,
            escape(r.login),
            str(r.interval1),
            str(r.interval2),
            _fmt_date(r.last_commit),
            f"{r.eligible_for_removal_on:%Y-%m-%d}" if r.eligible_for_removal_on else "",
        )
    return t


def render_report(report: AuditReport, console: Optional[Console] = None) -> None:
    """Print recommendations, warnings and the activity table."""
    console = console or Console()
    result = report.classification

    if result.to_add:
        console.print("Add the following members:")
        for login in sorted(result.to_add):
            console.print(f"+ {login}", markup=False)

    if result.to_remove:
        console.print("Remove the following members:")
        for login in sorted(result.to_remove):
            last = report.activity.last_commit.get(login)
            console.print(f"- {login} (last commit {_fmt_date(last)})", markup=False)

    for warning in report.warnings:
        console.print(f"[yellow]warning:[/yellow] {escape(warning)}")

    console.print("---")
    console.print(activity_table(result.activity_table))
