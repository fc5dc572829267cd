"""CLI entry point and configuration commands."""

from __future__ import annotations

import logging
from pathlib import Path

import click

from tripsync.cli.helpers import effective_config, output_error, output_result
from tripsync.core.config import default_config, save_sync_config
from tripsync.core.ids import validate_actor_id
from tripsync.storage.fs import TRIPSYNC_DIR


@click.group()
@click.option("-v", "--verbose", count=True, help="Log more (-v info, -vv debug).")
def cli(verbose: int) -> None:
    """tripsync: realtime plan sync with echo suppression."""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


@cli.command()
@click.option(
    "--path",
    "target_path",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    default=".",
    help="Directory to create .tripsync/ in (defaults to current directory).",
)
@click.option("--actor", default=None, help="Actor id this client writes as.")
@click.option("--url", default=None, help="Backend URL (ws://host:port).")
@click.option("--json", "is_json", is_flag=True, help="Output as JSON.")
def init(target_path: str, actor: str | None, url: str | None, is_json: bool) -> None:
    """Create .tripsync/config.json."""
    tripsync_dir = Path(target_path) / TRIPSYNC_DIR

    if tripsync_dir.exists() and not tripsync_dir.is_dir():
        output_error(
            f"Cannot initialize: '{TRIPSYNC_DIR}' exists but is not a directory.",
            "NOT_A_DIRECTORY",
            is_json,
        )

    if actor is not None and not validate_actor_id(actor):
        output_error(f"Invalid actor id: '{actor}'", "INVALID_ACTOR", is_json)

    if (tripsync_dir / "config.json").exists():
        output_result(
            data={"path": str(tripsync_dir), "created": False},
            human_message=f"tripsync already initialized in {TRIPSYNC_DIR}/",
            is_json=is_json,
        )
        return

    config: dict = dict(default_config())
    if actor is not None:
        config["actor_id"] = actor
    if url is not None:
        config["backend_url"] = url
    save_sync_config(tripsync_dir, config)

    output_result(
        data={"path": str(tripsync_dir), "created": True},
        human_message=f"Initialized tripsync in {TRIPSYNC_DIR}/",
        is_json=is_json,
    )


@cli.command("config")
@click.option("--json", "is_json", is_flag=True, help="Output as JSON.")
def show_config(is_json: bool) -> None:
    """Show the effective configuration."""
    config = effective_config(is_json)
    if is_json:
        output_result(data=config, human_message="", is_json=True)
        return
    for key in sorted(config):
        click.echo(f"{key}: {config[key]}")


# Register subcommand modules
from tripsync.cli import sync_cmds as _sync_cmds  # noqa: E402, F401
