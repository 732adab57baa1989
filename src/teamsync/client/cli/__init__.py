"""Command-line interface for TeamSync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- register: Create an account
- login: Log in to a server
- logout: Revoke and forget the stored token
- join-team: Join a team by code
- whoami: Show the logged in user
- pull: Print a bucket as JSON
- push: Replace a bucket from JSON
- watch: Follow bucket changes in realtime
- server: Server administration commands
"""

from __future__ import annotations

import click

from teamsync.client.cli.auth import join_team, login, logout, register, whoami
from teamsync.client.cli.config import (
    get_cache_path,
    get_client_id,
    get_config_dir,
    get_config_file,
    load_config,
    save_config,
)
from teamsync.client.cli.data import pull, push, watch
from teamsync.client.cli.server import server


@click.group()
@click.version_option(package_name="teamsync")
def cli() -> None:
    """TeamSync - shared team documents, kept in sync."""


# Account commands
cli.add_command(register)
cli.add_command(login)
cli.add_command(logout)
cli.add_command(join_team)
cli.add_command(whoami)

# Bucket commands
cli.add_command(pull)
cli.add_command(push)
cli.add_command(watch)

# Server admin commands
cli.add_command(server)

__all__ = [
    "cli",
    "get_cache_path",
    "get_client_id",
    "get_config_dir",
    "get_config_file",
    "load_config",
    "save_config",
]
