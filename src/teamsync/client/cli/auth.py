"""Account commands for TeamSync CLI.

Commands:
- register: Create an account (and its personal team)
- login: Log in to a server
- logout: Revoke and forget the stored token
- join-team: Join a team by its code
- whoami: Show the logged in user
"""

from __future__ import annotations

import asyncio
import sys

import click
import httpx

from teamsync.client.api import (
    APIClient,
    APIError,
    AuthenticationError,
    AuthResult,
    NotFoundError,
)
from teamsync.client.cli.config import load_config, require_login, save_config
from teamsync.core.config import ServerConfig


def _store_auth(server: str, result: AuthResult) -> None:
    """Persist the token and user returned by register/login."""
    config = load_config()
    config["server_url"] = server.rstrip("/")
    config["token"] = result.token
    config["user"] = result.user.to_dict()
    save_config(config)


def _print_user(result: AuthResult) -> None:
    click.echo(f"User: {result.user.username} <{result.user.email}>")
    if result.user.team_name:
        click.echo(f"Team: {result.user.team_name}")


@click.command()
@click.option("--server", required=True, help="Server URL (e.g., http://localhost:8000).")
@click.option("--username", prompt=True, help="Display name.")
@click.option("--email", prompt=True, help="Email address (login).")
@click.option(
    "--password", prompt=True, hide_input=True, confirmation_prompt=True,
    help="Password.",
)
def register(server: str, username: str, email: str, password: str) -> None:
    """Create an account on a TeamSync server.

    A personal team is created for the new account.
    """

    async def _register() -> AuthResult:
        async with APIClient(ServerConfig(server_url=server)) as api:
            return await api.register(username, email, password)

    try:
        result = asyncio.run(_register())
    except APIError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except httpx.RequestError as e:
        click.echo(f"Error: Could not connect to server at {server}: {e}", err=True)
        sys.exit(1)

    _store_auth(server, result)
    click.echo("Account created successfully!")
    _print_user(result)


@click.command()
@click.option("--server", default=None, help="Server URL (default: last used).")
@click.option("--email", prompt=True, help="Email address.")
@click.option("--password", prompt=True, hide_input=True, help="Password.")
def login(server: str | None, email: str, password: str) -> None:
    """Log in to a TeamSync server."""
    server = server or load_config().get("server_url")
    if not server:
        click.echo("Error: No server configured. Use --server.", err=True)
        sys.exit(1)

    async def _login() -> AuthResult:
        async with APIClient(ServerConfig(server_url=server)) as api:
            return await api.login(email, password)

    try:
        result = asyncio.run(_login())
    except AuthenticationError:
        click.echo("Error: Invalid email or password.", err=True)
        sys.exit(1)
    except APIError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except httpx.RequestError as e:
        click.echo(f"Error: Could not connect to server at {server}: {e}", err=True)
        sys.exit(1)

    _store_auth(server, result)
    click.echo("Logged in successfully!")
    _print_user(result)


@click.command()
def logout() -> None:
    """Revoke the token on the server and forget it locally."""
    config = load_config()
    token = config.get("token")
    if not token:
        click.echo("Not logged in.")
        return

    async def _logout() -> None:
        server_config = ServerConfig(server_url=config["server_url"], token=token)
        async with APIClient(server_config) as api:
            await api.logout()

    if config.get("server_url"):
        try:
            asyncio.run(_logout())
        except AuthenticationError:
            pass  # already invalid on the server
        except (APIError, httpx.RequestError) as e:
            click.echo(f"Warning: Could not revoke token on server: {e}", err=True)

    config.pop("token", None)
    config.pop("user", None)
    save_config(config)
    click.echo("Logged out.")


@click.command("join-team")
@click.argument("code")
def join_team(code: str) -> None:
    """Join a team using its invitation CODE."""
    server_config, _ = require_login()

    async def _join() -> None:
        async with APIClient(server_config) as api:
            team = await api.join_team(code)
            click.echo(f"Joined team '{team.name}' ({team.code})")
            user = await api.me()
        config = load_config()
        config["user"] = user.to_dict()
        save_config(config)

    try:
        asyncio.run(_join())
    except NotFoundError:
        click.echo(f"Error: No team with code '{code}'.", err=True)
        sys.exit(1)
    except APIError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except httpx.RequestError as e:
        click.echo(f"Error: Request failed: {e}", err=True)
        sys.exit(1)


@click.command()
def whoami() -> None:
    """Show the logged in user and team."""
    server_config, user = require_login()
    click.echo(f"Server: {server_config.server_url}")
    click.echo(f"User: {user.username} <{user.email}>")
    click.echo(f"Team: {user.team_name or '-'} (id {user.team_id})")
