"""CLI entry point for meiwei.

Commands:
  repo      — register, update and list repositories
  exclude   — manage per-repository exclusion rules
  review    — start a review run and follow its progress
  progress  — show the persisted progress of a run
  results   — page through the findings of a run
  history   — list past review runs
  stats     — severity, per-file and top-issue breakdown of a run
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console

from meiwei_cli.commands.exclude import exclude_group
from meiwei_cli.commands.history import history_cmd
from meiwei_cli.commands.progress import progress_cmd
from meiwei_cli.commands.repo import repo_group
from meiwei_cli.commands.results import results_cmd
from meiwei_cli.commands.review import review_cmd
from meiwei_cli.commands.stats import stats_cmd

console = Console()


def _build_store(config: dict):
    """Instantiate the configured store from .meiwei.yml settings.

      store: sqlite → SQLiteStore (store_path, defaults to .meiwei.db)
      store: memory → InMemoryStore (nothing survives the process)
    """
    store_type = config.get("store", "sqlite")

    if store_type == "memory":
        from meiwei_store.memory import InMemoryStore

        return InMemoryStore()

    if store_type == "sqlite":
        from meiwei_store.sqlite import SQLiteStore

        return SQLiteStore(db_path=config.get("store_path", ".meiwei.db"))

    raise click.UsageError(f"Unknown store type {store_type!r} in config. Choose 'sqlite' or 'memory'.")


def _build_orchestrator(store, config: dict):
    from meiwei_core.config import git_timeout_seconds
    from meiwei_core.git.sync import RepositorySynchronizer
    from meiwei_core.orchestrator import ReviewOrchestrator

    synchronizer = RepositorySynchronizer(
        workspace_dir=config["workspace_dir"],
        timeout=git_timeout_seconds(config),
        skip_smudge=bool(config.get("lfs_skip_smudge")),
    )
    return ReviewOrchestrator(store, synchronizer, max_workers=int(config.get("max_workers", 4)))


@click.group()
@click.version_option(
    version=importlib.metadata.version("meiwei"),
    prog_name="meiwei",
)
@click.option(
    "--config",
    "config_path",
    default=".meiwei.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="MEIWEI_CONFIG",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Logging level. Overrides config file.",
)
@click.pass_context
def main(ctx: click.Context, config_path: str, log_level: str | None):
    """Unattended static code review for game repositories."""
    from meiwei_core.config import load_config

    ctx.ensure_object(dict)

    try:
        config = load_config(config_path, cli_overrides={"log_level": log_level})
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    logging.basicConfig(
        level=str(config["log_level"]).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    store = _build_store(config)
    ctx.obj["store"] = store
    ctx.obj["config"] = config
    ctx.call_on_close(store.close)


main.add_command(repo_group)
main.add_command(exclude_group)
main.add_command(review_cmd)
main.add_command(progress_cmd)
main.add_command(results_cmd)
main.add_command(history_cmd)
main.add_command(stats_cmd)
