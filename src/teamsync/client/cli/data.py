"""Bucket commands for TeamSync CLI.

Commands:
- pull: Print a bucket as JSON
- push: Replace a bucket from a JSON file or stdin
- watch: Print bucket changes as they arrive
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import sys
from typing import Any

import click

from teamsync.client.cache import LocalCache
from teamsync.client.cli.config import get_cache_path, get_client_id, require_login
from teamsync.client.controller import DEFAULT_POLL_INTERVAL
from teamsync.client.session import NoTeamError, SyncSession
from teamsync.core.fields import DataField, UnknownFieldError, parse_field
from teamsync.core.types import BucketState, EchoPolicy

FIELD_NAMES = ", ".join(f.value for f in DataField)


def _field_or_exit(name: str) -> DataField:
    try:
        return parse_field(name)
    except UnknownFieldError:
        click.echo(f"Error: Unknown field '{name}'. Valid fields: {FIELD_NAMES}", err=True)
        sys.exit(1)


def _open_session(realtime: bool, echo_policy: EchoPolicy) -> SyncSession:
    server_config, user = require_login()
    try:
        return SyncSession(
            server_config,
            LocalCache(get_cache_path()),
            user,
            client_id=get_client_id(),
            echo_policy=echo_policy,
            poll_interval=DEFAULT_POLL_INTERVAL if realtime else None,
            realtime=realtime,
        )
    except NoTeamError:
        click.echo("Error: You are not in a team. Run 'teamsync join-team'.", err=True)
        sys.exit(1)


@click.command()
@click.argument("field")
def pull(field: str) -> None:
    """Print the team's FIELD bucket as JSON.

    Falls back to the local cache when the server cannot be reached.
    """
    data_field = _field_or_exit(field)
    session = _open_session(realtime=False, echo_policy=EchoPolicy.USER)

    async def _pull() -> tuple[list[Any], BucketState]:
        async with session:
            bucket = await session.bucket(data_field)
            return bucket.data, bucket.state

    data, state = asyncio.run(_pull())
    if state == BucketState.FALLBACK:
        click.echo("Warning: server unreachable, showing cached data.", err=True)
    click.echo(json.dumps(data, indent=2))


@click.command()
@click.argument("field")
@click.argument("file", type=click.File("r"), default="-")
def push(field: str, file: Any) -> None:
    """Replace the team's FIELD bucket with the JSON array in FILE.

    Reads stdin when FILE is omitted.
    """
    data_field = _field_or_exit(field)
    try:
        payload = json.load(file)
    except json.JSONDecodeError as e:
        click.echo(f"Error: Invalid JSON: {e}", err=True)
        sys.exit(1)
    if not isinstance(payload, list):
        click.echo("Error: Payload must be a JSON array.", err=True)
        sys.exit(1)

    session = _open_session(realtime=False, echo_policy=EchoPolicy.USER)

    async def _push() -> tuple[bool, str | None]:
        async with session:
            bucket = await session.bucket(data_field)
            ok = await bucket.save(payload)
            return ok, bucket.error

    ok, error = asyncio.run(_push())
    if not ok:
        click.echo(f"Error: {error} (saved to local cache only)", err=True)
        sys.exit(1)
    click.echo(f"Saved {len(payload)} items to {data_field.value}.")


@click.command()
@click.argument("fields", nargs=-1)
@click.option(
    "--echo-policy",
    type=click.Choice([p.value for p in EchoPolicy]),
    default=EchoPolicy.USER.value,
    show_default=True,
    help="Which own updates to ignore: all of this user's, or this client's only.",
)
def watch(fields: tuple[str, ...], echo_policy: str) -> None:
    """Print changes to FIELDS (all buckets if omitted) until interrupted."""
    data_fields = [_field_or_exit(f) for f in fields] or list(DataField)
    session = _open_session(realtime=True, echo_policy=EchoPolicy(echo_policy))

    async def _watch() -> None:
        async with session:
            for data_field in data_fields:
                bucket = await session.bucket(data_field)
                click.echo(f"{data_field.value}: {len(bucket.data)} items ({bucket.state.value})")

                def _print(value: list[Any], name: str = data_field.value) -> None:
                    click.echo(f"{name}: {len(value)} items")

                bucket.on_change(_print)
            click.echo("Watching for changes (Ctrl+C to stop)...")
            await asyncio.Event().wait()

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_watch())
    click.echo("\nStopped.")
