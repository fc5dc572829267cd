"""CLI commands for creating and pushing plans, the relay, and watching remote changes."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import click

from tripsync.cli.helpers import effective_config, output_error, output_result
from tripsync.cli.main import cli
from tripsync.core.ids import generate_place_id, generate_plan_id, validate_id
from tripsync.core.models import Place, Plan, PlanMember
from tripsync.storage.fs import atomic_write
from tripsync.sync.documents import document_to_plan, plan_to_document
from tripsync.sync.errors import BackendError, DocumentFormatError, PushError
from tripsync.sync.gateway import SyncGateway
from tripsync.sync.operations import ANONYMOUS_ACTOR, OPERATION_KINDS, Operation


@cli.command("new")
@click.argument("title")
@click.option("--description", default="", help="Plan description.")
@click.option(
    "--place",
    "places",
    multiple=True,
    metavar="NAME@LAT,LNG",
    help="Add a place (repeatable).",
)
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write the document to a file instead of stdout.",
)
def new_plan(title: str, description: str, places: tuple[str, ...], output: str | None) -> None:
    """Create a plan document (stored JSON shape) ready for push."""
    config = effective_config()
    actor = config.get("actor_id") or ANONYMOUS_ACTOR

    parsed: list[Place] = []
    for raw in places:
        try:
            parsed.append(_parse_place(raw, actor))
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--place") from None

    plan = Plan(
        id=generate_plan_id(),
        title=title,
        description=description,
        places=parsed,
        members=[PlanMember(user_id=actor, role="owner")],
        created_by=actor,
    )
    text = json.dumps(plan_to_document(plan), sort_keys=True, indent=2) + "\n"
    if output is None:
        click.echo(text, nl=False)
        return
    atomic_write(Path(output), text)
    click.echo(f"Created {plan.id} in {output}", err=True)


def _parse_place(raw: str, actor: str) -> Place:
    name, sep, coords = raw.rpartition("@")
    lat, comma, lng = coords.partition(",")
    if not sep or not name or not comma:
        raise ValueError(f"expected NAME@LAT,LNG, got {raw!r}")
    try:
        return Place(
            id=generate_place_id(),
            name=name,
            address="",
            lat=float(lat),
            lng=float(lng),
            created_by=actor,
        )
    except ValueError:
        raise ValueError(f"bad coordinates in {raw!r}") from None


@cli.command()
@click.option("--host", default=None, help="Bind address (default from config).")
@click.option("--port", type=int, default=None, help="Listen port (default from config).")
def relay(host: str | None, port: int | None) -> None:
    """Run the development relay server."""
    from tripsync.sync.relay import SyncRelay

    config = effective_config()
    relay_config = config.get("relay", {})
    server = SyncRelay(
        host or relay_config.get("host", "127.0.0.1"),
        port if port is not None else relay_config.get("port", 9810),
    )
    click.echo(f"tripsync relay: {server.url}", err=True)

    try:
        asyncio.run(server.run_forever())
    except KeyboardInterrupt:
        click.echo("\ntripsync relay: stopped.", err=True)


@cli.command()
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--kind",
    type=click.Choice(sorted(OPERATION_KINDS)),
    default="document_update",
    show_default=True,
    help="Operation kind recorded with the write.",
)
@click.option("--url", default=None, help="Backend URL (default from config).")
@click.option("--actor", default=None, help="Actor id (default from config).")
@click.option("--json", "is_json", is_flag=True, help="Output as JSON.")
def push(plan_file: str, kind: str, url: str | None, actor: str | None, is_json: bool) -> None:
    """Write a plan document (stored JSON shape) to the backend."""
    config = effective_config(is_json)

    try:
        plan = document_to_plan(json.loads(Path(plan_file).read_text()))
    except (json.JSONDecodeError, DocumentFormatError) as e:
        output_error(f"Cannot read plan from {plan_file}: {e}", "BAD_DOCUMENT", is_json)
    if not validate_id(plan.id, "plan"):
        output_error(f"Not a plan id: {plan.id!r}", "BAD_DOCUMENT", is_json)

    backend_url = url or config["backend_url"]
    try:
        operation = asyncio.run(_push(backend_url, actor, plan, kind, config))
    except (PushError, BackendError) as e:
        output_error(str(e), "PUSH_FAILED", is_json)

    output_result(
        data=operation.to_dict(),
        human_message=f"Pushed {plan.id} as {operation.id}",
        is_json=is_json,
    )


async def _push(url: str, actor: str | None, plan: Plan, kind: str, config: dict) -> Operation:
    from tripsync.sync.websocket import WebSocketBackend

    async with WebSocketBackend(url) as backend:
        gateway = SyncGateway(backend, actor_id=actor, config=config)
        try:
            return await gateway.push(plan, kind)
        finally:
            gateway.close()


@cli.command()
@click.argument("plan_id")
@click.option("--url", default=None, help="Backend URL (default from config).")
@click.option("--actor", default=None, help="Actor id (default from config).")
@click.option("--count", type=int, default=None, help="Exit after this many remote changes.")
def watch(plan_id: str, url: str | None, actor: str | None, count: int | None) -> None:
    """Print remote changes to a plan as JSON lines."""
    config = effective_config()
    try:
        asyncio.run(_watch(url or config["backend_url"], actor, plan_id, count, config))
    except BackendError as e:
        raise click.ClickException(str(e)) from None
    except KeyboardInterrupt:
        click.echo("\ntripsync watch: stopped.", err=True)


async def _watch(
    url: str,
    actor: str | None,
    plan_id: str,
    count: int | None,
    config: dict,
) -> None:
    from tripsync.sync.websocket import WebSocketBackend

    done = asyncio.Event()
    seen = 0

    def on_change(plan: Plan) -> None:
        nonlocal seen
        click.echo(json.dumps(plan_to_document(plan), sort_keys=True))
        seen += 1
        if count is not None and seen >= count:
            done.set()

    def on_removed(document_id: str) -> None:
        click.echo(f"tripsync watch: {document_id} was removed", err=True)
        done.set()

    async with WebSocketBackend(url) as backend:
        gateway = SyncGateway(backend, actor_id=actor, config=config)
        gateway.subscribe(plan_id, on_change, on_removed)
        try:
            await done.wait()
        finally:
            gateway.close()
