"""Helpers shared by the subcommands for reaching the store and orchestrator."""

from __future__ import annotations

from contextlib import contextmanager

import click

from meiwei_core.errors import MeiweiError


def get_store(ctx: click.Context):
    store = ctx.obj.get("store") if ctx.obj else None
    if store is None:
        raise click.UsageError("No store configured. Run this command through `meiwei`.")
    return store


def get_orchestrator(ctx: click.Context):
    """Build the orchestrator on first use and shut it down when the command exits.

    Read-only commands share it too, since every query goes through the store.
    """
    root = ctx.find_root()
    orchestrator = root.obj.get("orchestrator")
    if orchestrator is None:
        from meiwei_cli import cli

        orchestrator = cli._build_orchestrator(get_store(ctx), root.obj["config"])
        root.obj["orchestrator"] = orchestrator
        root.call_on_close(orchestrator.shutdown)
    return orchestrator


@contextmanager
def user_errors():
    """Turn lookup, conflict and validation failures into a clean CLI error."""
    try:
        yield
    except (MeiweiError, ValueError) as e:
        raise click.ClickException(str(e)) from e
