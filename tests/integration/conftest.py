"""Pytest fixtures for integration tests.

This module provides fixtures for end-to-end testing with a real server
running in a background thread and real HTTP/WebSocket clients.
"""

from __future__ import annotations

import socket
import threading
import time
from collections.abc import Generator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest
import uvicorn
from httpx import Client

from teamsync.client.api import UserInfo
from teamsync.server.app import create_app
from teamsync.server.database import Database


@dataclass
class TestServer:
    """Container for test server resources."""

    db: Database
    url: str
    server: UvicornTestServer

    def register(self, username: str, email: str, password: str = "secret") -> tuple[str, UserInfo]:
        """Register a user over HTTP and return (token, user)."""
        with Client(base_url=self.url) as client:
            response = client.post(
                "/api/auth/register",
                json={"username": username, "email": email, "password": password},
            )
            response.raise_for_status()
            data = response.json()
        return data["token"], UserInfo.from_dict(data["user"])

    def join(self, token: str, team_code: str) -> UserInfo:
        """Join a team over HTTP and return the updated user."""
        headers = {"Authorization": f"Bearer {token}"}
        with Client(base_url=self.url, headers=headers) as client:
            client.post("/api/auth/join-team", json={"team_code": team_code}).raise_for_status()
            response = client.get("/api/auth/me")
            response.raise_for_status()
            return UserInfo.from_dict(response.json()["user"])


class UvicornTestServer:
    """Uvicorn server running in a background thread for testing."""

    def __init__(self, app: Any, host: str = "127.0.0.1", port: int = 0) -> None:
        self.app = app
        self.host = host
        self.port = port
        self.server: uvicorn.Server | None = None
        self.thread: threading.Thread | None = None

    def start(self) -> int:
        """Start the server and return the port."""
        if not self.port:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                s.bind((self.host, 0))
                self.port = s.getsockname()[1]

        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="warning",
        )
        self.server = uvicorn.Server(config)

        self.thread = threading.Thread(target=self.server.run, daemon=True)
        self.thread.start()

        self._wait_for_ready()
        return self.port

    def _wait_for_ready(self, timeout: float = 5.0) -> None:
        """Wait for the server to be ready to accept connections."""
        start = time.time()
        while time.time() - start < timeout:
            try:
                with Client() as client:
                    response = client.get(f"http://{self.host}:{self.port}/api/health")
                    if response.status_code == 200:
                        return
            except Exception:
                pass
            time.sleep(0.1)
        raise RuntimeError("Server failed to start in time")

    def stop(self) -> None:
        """Stop the server and wait for the thread to end."""
        if self.server:
            self.server.should_exit = True
        if self.thread:
            self.thread.join(timeout=5.0)


@pytest.fixture
def test_server(tmp_path: Path) -> Generator[TestServer, None, None]:
    """Create and start a test server with a fresh database."""
    db = Database(tmp_path / "server" / "test.db")
    server = UvicornTestServer(create_app(db))
    port = server.start()

    yield TestServer(db=db, url=f"http://127.0.0.1:{port}", server=server)

    server.stop()
    db.close()
