"""progress command: show where a review run stands."""

from __future__ import annotations

import click
from rich.console import Console

from meiwei_cli.context import get_orchestrator, user_errors

console = Console()

_STATUS_STYLE = {
    "PENDING": "dim",
    "RUNNING": "cyan",
    "COMPLETED": "green",
    "FAILED": "red",
    "CANCELLED": "yellow",
}


@click.command("progress")
@click.argument("run_id", type=int)
@click.pass_context
def progress_cmd(ctx, run_id: int):
    """Show the progress of review run RUN_ID as recorded in the store."""
    orchestrator = get_orchestrator(ctx)
    with user_errors():
        view = orchestrator.get_progress(run_id)

    style = _STATUS_STYLE.get(view.status.value, "white")
    console.print(f"Run {run_id}: [{style}]{view.status.value}[/{style}] {view.percent}%")
    console.print(f"  Files:   {view.processed_files}/{view.total_files}")
    console.print(f"  Issues:  {view.found_issues}")
    console.print(f"  Elapsed: {view.elapsed_seconds}s")
    if view.eta_seconds is not None:
        console.print(f"  ETA:     {view.eta_seconds}s")
    if view.current_file:
        console.print(f"  Current: {view.current_file}")
    if view.error_message:
        console.print(f"  [red]Error:[/red] {view.error_message}")
