"""stats command: severity, file and rule breakdown of a review run."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from meiwei_cli.context import get_orchestrator, user_errors
from meiwei_store.models import Severity

console = Console()

SEVERITY_STYLE = {
    Severity.CRITICAL: "bold red",
    Severity.ERROR: "red",
    Severity.WARNING: "yellow",
    Severity.INFO: "blue",
}


def styled_severity(severity: Severity) -> str:
    style = SEVERITY_STYLE.get(severity, "white")
    return f"[{style}]{severity.value}[/{style}]"


def print_summary(summary, top: int = 10) -> None:
    """Render a SummaryView: totals, severity table, most flagged files and top issues."""
    total = summary.total_findings
    console.print(f"\n[bold]Run {summary.run_id}[/bold]")
    console.print(f"  Findings:       {total}")
    console.print(f"  Files affected: {summary.file_count}")

    if summary.severity_counts:
        sev_table = Table(title="Severity Breakdown", show_header=True)
        sev_table.add_column("Severity", style="bold")
        sev_table.add_column("Count", justify="right")
        sev_table.add_column("% of total", justify="right")
        for severity in sorted(Severity, key=lambda s: s.rank, reverse=True):
            count = summary.severity_counts.get(severity, 0)
            pct = f"{count / total * 100:.1f}%" if total else "0%"
            sev_table.add_row(styled_severity(severity), str(count), pct)
        console.print(sev_table)

    if summary.files:
        file_table = Table(title=f"Top {top} Most Flagged Files", show_header=True)
        file_table.add_column("File")
        file_table.add_column("Findings", justify="right")
        file_table.add_column("Worst", width=10)
        for stat in summary.files[:top]:
            file_table.add_row(stat.file_path, str(stat.count), styled_severity(stat.max_severity))
        console.print(file_table)

    if summary.top_issues:
        issue_table = Table(title="Most Frequent Issues (all runs of this repository)", show_header=True)
        issue_table.add_column("Rule", style="bold")
        issue_table.add_column("Message", max_width=60)
        issue_table.add_column("Count", justify="right")
        for issue in summary.top_issues[:top]:
            issue_table.add_row(issue.rule_id, issue.message, str(issue.count))
        console.print(issue_table)


@click.command("stats")
@click.argument("run_id", type=int)
@click.option("--top", default=10, show_default=True, help="Number of top entries to show per category.")
@click.pass_context
def stats_cmd(ctx, run_id: int, top: int):
    """Show aggregated statistics for review run RUN_ID.

    Reports the severity distribution, the most flagged files and the rules
    that fire most often across every run of the same repository.
    """
    orchestrator = get_orchestrator(ctx)
    with user_errors():
        summary = orchestrator.get_summary(run_id)
    print_summary(summary, top)
