"""FastAPI application for TeamSync server.

This module creates and configures the FastAPI application with:
- REST API for auth and synchronized team buckets
- WebSocket endpoint for team-scoped realtime updates

Usage:
    uvicorn teamsync.server.app:app_factory --factory --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path

from fastapi import FastAPI

from teamsync import __version__
from teamsync.server.api.router import router as api_router
from teamsync.server.database import Database
from teamsync.server.gateway import SyncGateway
from teamsync.server.scheduler import TokenPurgeScheduler
from teamsync.server.ws import TeamHub
from teamsync.server.ws import router as ws_router

# Configuration from environment variables with defaults
DB_PATH = Path(os.environ.get("TEAMSYNC_DB_PATH", "teamsync.db"))
LOG_PATH = Path(os.environ.get("TEAMSYNC_LOG_PATH", "teamsync-server.log"))
TOKEN_TTL = timedelta(hours=int(os.environ.get("TEAMSYNC_TOKEN_TTL_HOURS", "24")))
PURGE_HOUR = int(os.environ.get("TEAMSYNC_PURGE_HOUR", "3"))

logger = logging.getLogger(__name__)


def setup_logging(log_path: Path) -> None:
    """Configure logging to output to both file and stdout.

    Args:
        log_path: Path to the log file.
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(log_format)

    # Root logger for teamsync
    root_logger = logging.getLogger("teamsync")
    root_logger.setLevel(logging.INFO)

    # Stdout handler
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    # File handler
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Also capture uvicorn logs to file
    for uvicorn_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(uvicorn_name)
        uvicorn_logger.addHandler(file_handler)


def create_app(
    db: Database,
    hub: TeamHub | None = None,
    token_ttl: timedelta = TOKEN_TTL,
    scheduler: TokenPurgeScheduler | None = None,
) -> FastAPI:
    """Create FastAPI application with a custom database.

    This is primarily used for testing with isolated databases.

    Args:
        db: Database instance.
        hub: Optional TeamHub (a fresh one is created by default).
        token_ttl: Lifetime of issued auth tokens.
        scheduler: Optional maintenance scheduler started with the app.

    Returns:
        Configured FastAPI application.
    """
    hub = hub or TeamHub()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        # Startup
        db_path = getattr(db, "_db_path", "in-memory")
        logger.info("=" * 60)
        logger.info("TeamSync Server Starting")
        logger.info("=" * 60)
        logger.info("  Database:  %s", db_path)
        logger.info("  Token TTL: %s", token_ttl)
        logger.info("=" * 60)
        if scheduler:
            scheduler.start()

        yield

        # Shutdown
        if scheduler:
            scheduler.stop()
        logger.info("TeamSync Server shutting down")

    application = FastAPI(
        title="TeamSync Server",
        description="Team-scoped shared document synchronization",
        version=__version__,
        lifespan=lifespan,
    )

    application.state.db = db
    application.state.hub = hub
    application.state.gateway = SyncGateway(db, hub)
    application.state.token_ttl = token_ttl

    application.include_router(api_router)
    application.include_router(ws_router)

    return application


def app_factory() -> FastAPI:
    """Factory function for uvicorn --factory mode."""
    setup_logging(LOG_PATH)
    db = Database(DB_PATH)
    return create_app(
        db=db,
        scheduler=TokenPurgeScheduler(db, hour=PURGE_HOUR),
    )
