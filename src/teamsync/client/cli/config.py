"""Configuration utilities for TeamSync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import sys
import uuid
from pathlib import Path
from typing import Any

import click

from teamsync.client.api import UserInfo
from teamsync.core.config import ServerConfig


def get_config_dir() -> Path:
    """Get the configuration directory for TeamSync.

    Returns:
        Path to ~/.teamsync or equivalent.
    """
    return Path.home() / ".teamsync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_cache_path() -> Path:
    """Get the path to the local cache database."""
    return get_config_dir() / "cache.db"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def require_login() -> tuple[ServerConfig, UserInfo]:
    """Load the stored session or exit with an error.

    Returns:
        Server configuration with token, and the stored user.
    """
    config = load_config()
    if not config.get("server_url") or not config.get("token") or not config.get("user"):
        click.echo("Error: Not logged in. Run 'teamsync login' first.", err=True)
        sys.exit(1)
    server_config = ServerConfig(
        server_url=config["server_url"],
        token=config["token"],
        verify_ssl=config.get("verify_ssl", True),
    )
    return server_config, UserInfo.from_dict(config["user"])


def get_client_id() -> str:
    """Get this installation's client ID, creating it on first use."""
    config = load_config()
    if not config.get("client_id"):
        config["client_id"] = uuid.uuid4().hex
        save_config(config)
    return str(config["client_id"])
