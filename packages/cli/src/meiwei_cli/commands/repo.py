"""repo commands: register, update and list repositories."""

from __future__ import annotations

from dataclasses import replace

import click
from rich.console import Console
from rich.table import Table

from meiwei_cli.context import get_store
from meiwei_store.models import RepositoryRecord, utcnow

console = Console()


@click.group("repo")
def repo_group():
    """Manage repositories registered for review."""


@repo_group.command("add")
@click.argument("name")
@click.argument("clone_url")
@click.option("--branch", default="main", show_default=True, help="Branch to check out and review.")
@click.option("--description", default=None, help="Free-form description.")
@click.pass_context
def repo_add_cmd(ctx, name: str, clone_url: str, branch: str, description: str | None):
    """Register a repository by NAME and CLONE_URL."""
    store = get_store(ctx)
    record = store.add_repository(
        RepositoryRecord(name=name, clone_url=clone_url, branch=branch, description=description)
    )
    console.print(f"[green]Registered repository {record.id}:[/green] {record.name} ({record.branch})")


@repo_group.command("list")
@click.option("--all", "show_all", is_flag=True, help="Include inactive repositories.")
@click.pass_context
def repo_list_cmd(ctx, show_all: bool):
    """List registered repositories."""
    store = get_store(ctx)
    records = store.list_repositories(active_only=not show_all)
    if not records:
        console.print("[yellow]No repositories registered.[/yellow]")
        return

    table = Table(title="Repositories", show_header=True, header_style="bold cyan")
    table.add_column("ID", justify="right", width=5)
    table.add_column("Name", style="bold")
    table.add_column("Branch")
    table.add_column("Clone URL", max_width=60)
    table.add_column("Last run", width=20)

    for r in records:
        latest = store.latest_run(r.id)
        last = f"{latest.status.value} #{latest.id}" if latest else "-"
        table.add_row(str(r.id), r.name, r.branch, r.clone_url, last)

    console.print(table)


@repo_group.command("update")
@click.argument("repository_id", type=int)
@click.option("--branch", default=None, help="New branch to review.")
@click.option("--description", default=None, help="New description.")
@click.option("--active/--inactive", "active", default=None, help="Enable or retire the repository.")
@click.pass_context
def repo_update_cmd(ctx, repository_id: int, branch: str | None, description: str | None, active: bool | None):
    """Change the branch, description or active flag of a repository."""
    store = get_store(ctx)
    record = store.get_repository(repository_id)
    if record is None:
        raise click.ClickException(f"Repository {repository_id} not found")

    changes = {"branch": branch, "description": description, "active": active}
    changes = {k: v for k, v in changes.items() if v is not None}
    if not changes:
        raise click.UsageError("Nothing to update; pass --branch, --description or --active/--inactive.")

    record = store.update_repository(replace(record, updated_at=utcnow(), **changes))
    state = "active" if record.active else "inactive"
    console.print(f"[green]Updated repository {record.id}:[/green] {record.name} ({record.branch}, {state})")
