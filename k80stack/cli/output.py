"""
Shared rendering for run reports.

Every command that produces a RunReport prints it the same way: a table
of outcomes followed by a summary line of counts, or JSON with --json.
"""

from __future__ import annotations

import json
import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from k80stack.core.backup.models import OutcomeStatus, RunReport

STATUS_STYLES = {
    OutcomeStatus.SUCCEEDED: ("✓ ok", "green"),
    OutcomeStatus.FAILED: ("✗ failed", "red"),
    OutcomeStatus.SKIPPED: ("- skipped", "yellow"),
}


def get_console(ctx: click.Context) -> Console:
    """Get the Rich console from context."""
    return ctx.obj.get("console", Console())


def print_report(console: Console, report: RunReport, title: str) -> None:
    """Print the outcomes table and summary counts."""
    if report.outcomes:
        table = Table(title=title)
        table.add_column("Kind", style="cyan", no_wrap=True)
        table.add_column("Item", style="bold")
        table.add_column("Status", no_wrap=True)
        table.add_column("Detail", style="dim")

        for outcome in report.outcomes:
            label, style = STATUS_STYLES[outcome.status]
            table.add_row(
                outcome.kind.value,
                escape(outcome.name),
                f"[{style}]{label}[/{style}]",
                escape(outcome.message or ""),
            )
        console.print(table)

    counts = report.counts()
    summary = (
        f"[green]{counts['succeeded']} succeeded[/green], "
        f"[red]{counts['failed']} failed[/red], "
        f"[yellow]{counts['skipped']} skipped[/yellow]"
    )
    console.print(f"\n{summary}")


def echo_json(report: RunReport) -> None:
    click.echo(json.dumps(report.to_dict(), indent=2))


def exit_for_report(report: RunReport, allow_partial: bool = False) -> None:
    """Exit 1 when the report holds failures, unless partial results are allowed."""
    if report.has_failures and not allow_partial:
        sys.exit(1)
