"""history command: display past review runs from the store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from meiwei_cli.context import get_orchestrator, user_errors

console = Console()

_STATUS_STYLE = {
    "COMPLETED": "green",
    "FAILED": "red",
    "RUNNING": "cyan",
    "PENDING": "dim",
}


@click.command("history")
@click.option("--repo-id", "repository_id", type=int, default=None, help="Only show runs of this repository.")
@click.option("--page", default=1, show_default=True, type=click.IntRange(min=1), help="Page number, starting at 1.")
@click.option("--page-size", default=20, show_default=True, type=click.IntRange(min=1), help="Runs per page.")
@click.pass_context
def history_cmd(ctx, repository_id: int | None, page: int, page_size: int):
    """Show past review runs, most recent first."""
    orchestrator = get_orchestrator(ctx)
    with user_errors():
        result = orchestrator.get_histories(repository_id, page=page - 1, page_size=page_size)
        stats = orchestrator.repository_statistics(repository_id) if repository_id is not None else None

    if not result.items:
        console.print("[yellow]No review runs found.[/yellow]")
        return

    table = Table(title="Review History", show_header=True, header_style="bold cyan")
    table.add_column("Run", style="bold", justify="right", width=6)
    table.add_column("Repository", max_width=30)
    table.add_column("Status", width=10)
    table.add_column("Commit", width=8)
    table.add_column("Started", width=20)
    table.add_column("Minutes", justify="right", width=8)
    table.add_column("Files", justify="right", width=6)
    table.add_column("Issues", justify="right", width=7)

    for h in result.items:
        style = _STATUS_STYLE.get(h.status.value, "white")
        table.add_row(
            str(h.run_id),
            h.repository_name or str(h.repository_id),
            f"[{style}]{h.status.value}[/{style}]",
            (h.commit_hash or "")[:7],
            h.started_at.isoformat()[:19].replace("T", " "),
            "" if h.duration_minutes is None else str(h.duration_minutes),
            "" if h.total_files is None else str(h.total_files),
            "" if h.total_issues is None else str(h.total_issues),
        )

    console.print(table)
    if result.has_next:
        console.print(f"[dim]Older runs: --page {page + 1}[/dim]")

    if stats is not None:
        console.print(
            f"\n  Runs: {stats.total_runs} ({stats.completed_runs} completed, {stats.failed_runs} failed)"
            f"  Avg issues: {stats.average_issues:.1f}"
        )
