"""results command: page through the findings of a run."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from meiwei_cli.commands.stats import styled_severity
from meiwei_cli.context import get_orchestrator, user_errors
from meiwei_store.base import FINDING_SORT_KEYS

console = Console()


@click.command("results")
@click.argument("run_id", type=int)
@click.option("--page", default=1, show_default=True, type=click.IntRange(min=1), help="Page number, starting at 1.")
@click.option("--page-size", default=20, show_default=True, type=click.IntRange(min=1), help="Findings per page.")
@click.option("--sort-by", type=click.Choice(FINDING_SORT_KEYS), default="file_path", show_default=True)
@click.option("--desc", "descending", is_flag=True, help="Sort in descending order.")
@click.pass_context
def results_cmd(ctx, run_id: int, page: int, page_size: int, sort_by: str, descending: bool):
    """List the findings of review run RUN_ID."""
    orchestrator = get_orchestrator(ctx)
    with user_errors():
        result = orchestrator.get_results(
            run_id, page=page - 1, page_size=page_size, sort_by=sort_by, sort_dir="desc" if descending else "asc"
        )

    if not result.items:
        console.print("[yellow]No findings on this page.[/yellow]")
        return

    table = Table(
        title=f"Findings: run {run_id} (page {page}/{result.total_pages}, {result.total} total)",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("File", max_width=50)
    table.add_column("Line", justify="right", width=6)
    table.add_column("Severity", width=10)
    table.add_column("Rule", width=36)
    table.add_column("Message", max_width=60)

    for f in result.items:
        location = str(f.line) if f.line is not None else ""
        table.add_row(f.file_path, location, styled_severity(f.severity), f.rule_id or "", f.message)

    console.print(table)
    if result.has_next:
        console.print(f"[dim]More findings: --page {page + 1}[/dim]")
