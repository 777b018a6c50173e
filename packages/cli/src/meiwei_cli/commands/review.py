"""review command: start a review run and follow it to the end."""

from __future__ import annotations

import time

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn

from meiwei_cli.commands.stats import print_summary
from meiwei_cli.context import get_orchestrator, user_errors
from meiwei_store.models import ReviewStatus

console = Console()


def follow_progress(orchestrator, run_id: int, poll_interval: float):
    """Poll the persisted run until it reaches a terminal status; return the last view."""
    with Progress(
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TextColumn("{task.fields[files]}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Pending", total=100, files="")
        while True:
            view = orchestrator.get_progress(run_id)
            progress.update(
                task,
                completed=view.percent,
                description=view.current_file or view.status.value.title(),
                files=f"{view.processed_files}/{view.total_files} files, {view.found_issues} issues",
            )
            if view.status.is_terminal:
                return view
            time.sleep(poll_interval)


@click.command("review")
@click.argument("repository_id", type=int)
@click.option("--force-pull", is_flag=True, help="Pass --force to git pull when updating an existing checkout.")
@click.option("--no-wait", is_flag=True, help="Do not display progress or the summary; print the run id only.")
@click.option("--top", default=10, show_default=True, help="Entries per table in the final summary.")
@click.option("--poll-interval", default=0.5, show_default=True, hidden=True, type=float)
@click.pass_context
def review_cmd(ctx, repository_id: int, force_pull: bool, no_wait: bool, top: int, poll_interval: float):
    """Review repository REPOSITORY_ID.

    Synchronizes the working copy, runs every analyzer over the source files
    that survive the repository's exclusion rules and stores the findings.
    Progress is read back from the store while the run proceeds.
    """
    orchestrator = get_orchestrator(ctx)
    with user_errors():
        run_id = orchestrator.start_review(repository_id, force_pull=force_pull)

    console.print(f"Started review run [bold]{run_id}[/bold] for repository {repository_id}.")
    if no_wait:
        return

    view = follow_progress(orchestrator, run_id, poll_interval)
    if view.status == ReviewStatus.FAILED:
        raise click.ClickException(f"Review run {run_id} failed: {view.error_message}")

    console.print(
        f"[green]Review run {run_id} completed[/green] in {view.elapsed_seconds}s: "
        f"{view.found_issues} issue(s) in {view.total_files} file(s)."
    )
    print_summary(orchestrator.get_summary(run_id), top)
