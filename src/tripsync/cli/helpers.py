"""Shared CLI plumbing: config lookup and the ``--json`` output envelope."""

from __future__ import annotations

import json
from pathlib import Path
from typing import NoReturn

import click

from tripsync.core.config import ConfigError, load_sync_config
from tripsync.storage.fs import TRIPSYNC_DIR, TripsyncRootError, find_root


def tripsync_dir_or_none() -> Path | None:
    """Return the nearest ``.tripsync/`` directory, or ``None``."""
    try:
        root = find_root()
    except TripsyncRootError as e:
        raise click.ClickException(str(e)) from None
    if root is None:
        return None
    return root / TRIPSYNC_DIR


def effective_config(is_json: bool = False) -> dict:
    """Config from ``.tripsync/config.json`` (if found) plus env overrides."""
    try:
        return load_sync_config(tripsync_dir_or_none())
    except ConfigError as e:
        output_error(str(e), "BAD_CONFIG", is_json)


def json_envelope(ok: bool, *, data: object = None, error: object = None) -> str:
    """``{"ok": ..., "data": ...}`` or ``{"ok": ..., "error": ...}`` as text."""
    body = {"ok": ok, "data": data, "error": error}
    return json.dumps({k: v for k, v in body.items() if v is not None}, sort_keys=True, indent=2)


def output_error(message: str, code: str, is_json: bool, exit_code: int = 1) -> NoReturn:
    """Report a failure and exit.  JSON goes to stdout, plain text to stderr."""
    if is_json:
        click.echo(json_envelope(False, error={"code": code, "message": message}))
    else:
        click.echo(f"Error: {message}", err=True)
    raise SystemExit(exit_code)


def output_result(*, data: object, human_message: str, is_json: bool) -> None:
    click.echo(json_envelope(True, data=data) if is_json else human_message)
