"""exclude commands: per-repository exclusion rules."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from meiwei_cli.context import get_store
from meiwei_store.models import ExclusionRule, ExclusionType

console = Console()


@click.group("exclude")
def exclude_group():
    """Manage files and directories skipped during review."""


@exclude_group.command("add")
@click.argument("repository_id", type=int)
@click.argument("rule_type", metavar="TYPE", type=click.Choice([t.value for t in ExclusionType], case_sensitive=False))
@click.argument("path")
@click.option("--pattern", default=None, help="Glob for PATTERN rules. Defaults to PATH.")
@click.option("--description", default=None, help="Why the rule exists.")
@click.pass_context
def exclude_add_cmd(ctx, repository_id: int, rule_type: str, path: str, pattern: str | None, description: str | None):
    """Add an exclusion rule to a repository.

    \b
    TYPE is one of:
      FILE       PATH is an exact repository-relative file path
      DIRECTORY  PATH is a directory; everything below it is skipped
      PATTERN    --pattern (or PATH) is a whole-path glob, e.g. "Assets/*.g.cs"
      EXTENSION  PATH is a bare extension, e.g. "shader"
    """
    store = get_store(ctx)
    if store.get_repository(repository_id) is None:
        raise click.ClickException(f"Repository {repository_id} not found")

    kind = ExclusionType(rule_type.upper())
    if kind is ExclusionType.PATTERN and pattern is None:
        pattern = path

    rule = store.add_exclusion(
        ExclusionRule(repository_id=repository_id, type=kind, path=path, pattern=pattern, description=description)
    )
    console.print(f"[green]Added exclusion {rule.id}:[/green] {kind.value} {pattern or path}")


@exclude_group.command("list")
@click.argument("repository_id", type=int)
@click.pass_context
def exclude_list_cmd(ctx, repository_id: int):
    """List the active exclusion rules of a repository."""
    store = get_store(ctx)
    rules = store.list_active_exclusions(repository_id)
    if not rules:
        console.print("[yellow]No active exclusion rules.[/yellow]")
        return

    table = Table(title=f"Exclusions for repository {repository_id}", show_header=True, header_style="bold cyan")
    table.add_column("ID", justify="right", width=5)
    table.add_column("Type", width=10)
    table.add_column("Path")
    table.add_column("Pattern")
    table.add_column("Description", max_width=40)
    for rule in rules:
        table.add_row(str(rule.id), rule.type.value, rule.path, rule.pattern or "", rule.description or "")
    console.print(table)


@exclude_group.command("remove")
@click.argument("exclusion_id", type=int)
@click.pass_context
def exclude_remove_cmd(ctx, exclusion_id: int):
    """Deactivate an exclusion rule."""
    from meiwei_store.base import RecordNotFound

    store = get_store(ctx)
    try:
        store.deactivate_exclusion(exclusion_id)
    except RecordNotFound as e:
        raise click.ClickException(str(e)) from e
    console.print(f"[green]Deactivated exclusion {exclusion_id}.[/green]")
