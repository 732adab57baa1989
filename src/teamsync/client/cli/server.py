"""Server administration commands for TeamSync CLI.

Commands:
- server run: Start the TeamSync server
- server purge-tokens: Delete expired and revoked auth tokens
"""

from __future__ import annotations

import sys
from pathlib import Path

import click


@click.group()
def server() -> None:
    """Server management commands.

    These commands are for server administrators to manage the TeamSync server.
    """


@server.command("run")
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address.")
@click.option("--port", "-p", type=int, default=8000, show_default=True, help="Bind port.")
def run_cmd(host: str, port: int) -> None:
    """Start the server.

    The database, log file and token lifetime are read from the
    TEAMSYNC_DB_PATH, TEAMSYNC_LOG_PATH and TEAMSYNC_TOKEN_TTL_HOURS
    environment variables.
    """
    import uvicorn

    uvicorn.run("teamsync.server.app:app_factory", factory=True, host=host, port=port)


@server.command("purge-tokens")
@click.option(
    "--db-path",
    type=click.Path(),
    default=None,
    help="Path to database file (default: TEAMSYNC_DB_PATH or ./teamsync.db).",
)
def purge_tokens_cmd(db_path: str | None) -> None:
    """Delete expired and revoked auth tokens.

    This command can be run manually or via cron for scheduled cleanup.
    """
    import os

    from teamsync.server.database import Database
    from teamsync.server.scheduler import purge_expired_tokens

    resolved_db_path = db_path or os.environ.get("TEAMSYNC_DB_PATH", "teamsync.db")

    db_file = Path(resolved_db_path)
    if not db_file.exists():
        click.echo(f"Error: Database not found: {db_file}", err=True)
        click.echo("Make sure the server has been run at least once.", err=True)
        sys.exit(1)

    click.echo(f"Database: {db_file}")

    db = Database(db_file)
    try:
        deleted = purge_expired_tokens(db)
        if deleted > 0:
            click.echo(f"Purged {deleted} tokens.")
        else:
            click.echo("No tokens to purge.")
    finally:
        db.close()
