"""Tests for CLI commands."""

from __future__ import annotations

import json
from collections.abc import Generator
from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
from click.testing import CliRunner
from pytest_httpx import HTTPXMock

from teamsync.client.cache import LocalCache
from teamsync.client.cli import cli
from teamsync.server.database import Database

USER = {
    "id": 7,
    "username": "alice",
    "email": "alice@example.com",
    "team_id": 3,
    "team_name": "alice's team",
    "role": "owner",
    "created_at": "2025-01-01T10:00:00+00:00",
}


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def config_dir(tmp_path: Path) -> Generator[Path, None, None]:
    """Point the CLI at a temporary config directory."""
    config = tmp_path / ".teamsync"
    with patch("teamsync.client.cli.config.get_config_dir", return_value=config):
        yield config


@pytest.fixture
def logged_in(config_dir: Path) -> Path:
    """Write a logged-in config."""
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "config.json").write_text(json.dumps({
        "server_url": "http://test",
        "token": "ts_token",
        "user": USER,
        "client_id": "client-1",
    }))
    return config_dir


def read_config(config_dir: Path) -> dict:
    """Read the stored CLI config."""
    return json.loads((config_dir / "config.json").read_text())


class TestRegisterCommand:
    """Tests for 'teamsync register' command."""

    def test_register_stores_token(
        self, runner: CliRunner, config_dir: Path, httpx_mock: HTTPXMock
    ) -> None:
        """Should save the server, token and user."""
        httpx_mock.add_response(
            method="POST",
            url="http://test/api/auth/register",
            status_code=201,
            json={"success": True, "token": "ts_new", "user": USER},
        )
        result = runner.invoke(cli, [
            "register", "--server", "http://test/",
            "--username", "alice", "--email", "alice@example.com",
            "--password", "pw",
        ])
        assert result.exit_code == 0, result.output
        assert "Account created" in result.output
        config = read_config(config_dir)
        assert config["server_url"] == "http://test"
        assert config["token"] == "ts_new"
        assert config["user"]["team_id"] == 3

    def test_register_duplicate_email(
        self, runner: CliRunner, config_dir: Path, httpx_mock: HTTPXMock
    ) -> None:
        """Should report server validation errors."""
        httpx_mock.add_response(
            method="POST",
            url="http://test/api/auth/register",
            status_code=400,
            json={"detail": "This email address is already registered"},
        )
        result = runner.invoke(cli, [
            "register", "--server", "http://test",
            "--username", "alice", "--email", "alice@example.com",
            "--password", "pw",
        ])
        assert result.exit_code == 1
        assert "already registered" in result.output


class TestLoginCommand:
    """Tests for 'teamsync login' and 'logout' commands."""

    def test_login_bad_credentials(
        self, runner: CliRunner, config_dir: Path, httpx_mock: HTTPXMock
    ) -> None:
        """Should fail on 401 and store nothing."""
        httpx_mock.add_response(
            method="POST", url="http://test/api/auth/login", status_code=401,
            json={"detail": "Invalid email or password"},
        )
        result = runner.invoke(cli, [
            "login", "--server", "http://test",
            "--email", "alice@example.com", "--password", "wrong",
        ])
        assert result.exit_code == 1
        assert not (config_dir / "config.json").exists()

    def test_login_unreachable(
        self, runner: CliRunner, config_dir: Path, httpx_mock: HTTPXMock
    ) -> None:
        """Should report connection failures."""
        httpx_mock.add_exception(httpx.ConnectError("refused"))
        result = runner.invoke(cli, [
            "login", "--server", "http://test",
            "--email", "alice@example.com", "--password", "pw",
        ])
        assert result.exit_code == 1
        assert "Could not connect" in result.output

    def test_logout(
        self, runner: CliRunner, logged_in: Path, httpx_mock: HTTPXMock
    ) -> None:
        """Should revoke the token on the server and keep the server URL."""
        httpx_mock.add_response(
            method="POST",
            url="http://test/api/auth/logout",
            match_headers={"Authorization": "Bearer ts_token"},
            json={"success": True},
        )
        result = runner.invoke(cli, ["logout"])
        assert result.exit_code == 0
        assert "Logged out" in result.output
        assert len(httpx_mock.get_requests()) == 1
        config = read_config(logged_in)
        assert "token" not in config
        assert config["server_url"] == "http://test"

    def test_logout_server_unreachable(
        self, runner: CliRunner, logged_in: Path, httpx_mock: HTTPXMock
    ) -> None:
        """The token is forgotten locally even if revocation fails."""
        httpx_mock.add_exception(httpx.ConnectError("refused"))
        result = runner.invoke(cli, ["logout"])
        assert result.exit_code == 0
        assert "Could not revoke token" in result.output
        assert "token" not in read_config(logged_in)

    def test_whoami_requires_login(self, runner: CliRunner, config_dir: Path) -> None:
        """Should fail when not logged in."""
        result = runner.invoke(cli, ["whoami"])
        assert result.exit_code == 1
        assert "Not logged in" in result.output

    def test_whoami(self, runner: CliRunner, logged_in: Path) -> None:
        """Should show the stored user."""
        result = runner.invoke(cli, ["whoami"])
        assert result.exit_code == 0
        assert "alice@example.com" in result.output
        assert "alice's team" in result.output


class TestJoinTeamCommand:
    """Tests for 'teamsync join-team' command."""

    def test_join_team_updates_user(
        self, runner: CliRunner, logged_in: Path, httpx_mock: HTTPXMock
    ) -> None:
        """Should join and refresh the stored user."""
        httpx_mock.add_response(
            method="POST",
            url="http://test/api/auth/join-team",
            json={
                "success": True,
                "message": "Joined team",
                "team": {"id": 9, "name": "Sales", "code": "ABCD1234"},
            },
        )
        httpx_mock.add_response(
            method="GET",
            url="http://test/api/auth/me",
            json={"success": True, "user": {**USER, "team_id": 9, "team_name": "Sales"}},
        )
        result = runner.invoke(cli, ["join-team", "abcd1234"])
        assert result.exit_code == 0, result.output
        assert "Sales" in result.output
        assert read_config(logged_in)["user"]["team_id"] == 9

    def test_join_team_unknown_code(
        self, runner: CliRunner, logged_in: Path, httpx_mock: HTTPXMock
    ) -> None:
        """Should fail for unknown codes."""
        httpx_mock.add_response(
            method="POST", url="http://test/api/auth/join-team", status_code=404,
            json={"detail": "Team not found"},
        )
        result = runner.invoke(cli, ["join-team", "NOPE"])
        assert result.exit_code == 1
        assert "No team" in result.output


class TestDataCommands:
    """Tests for 'teamsync pull' and 'push' commands."""

    def test_pull(
        self, runner: CliRunner, logged_in: Path, httpx_mock: HTTPXMock
    ) -> None:
        """Should print the bucket as JSON."""
        httpx_mock.add_response(
            method="GET",
            url="http://test/api/data/tasks",
            json={"data": [{"id": 1}]},
        )
        result = runner.invoke(cli, ["pull", "tasks"])
        assert result.exit_code == 0, result.output
        assert '"id": 1' in result.output

    def test_pull_falls_back_to_cache(
        self, runner: CliRunner, logged_in: Path, httpx_mock: HTTPXMock
    ) -> None:
        """Should print cached data when the server is unreachable."""
        cache = LocalCache(logged_in / "cache.db")
        cache.set("3", "tasks", [{"id": "cached"}])
        cache.close()
        httpx_mock.add_exception(httpx.ConnectError("refused"))

        result = runner.invoke(cli, ["pull", "tasks"])
        assert result.exit_code == 0, result.output
        assert "cached" in result.output

    def test_pull_unknown_field(self, runner: CliRunner, logged_in: Path) -> None:
        """Should reject unknown fields before any request."""
        result = runner.invoke(cli, ["pull", "passwords"])
        assert result.exit_code == 1
        assert "Unknown field" in result.output

    def test_push_from_stdin(
        self, runner: CliRunner, logged_in: Path, httpx_mock: HTTPXMock
    ) -> None:
        """Should send the array with the stored client ID."""
        httpx_mock.add_response(
            method="GET", url="http://test/api/data/leads", json={"data": []}
        )
        httpx_mock.add_response(
            method="POST",
            url="http://test/api/data/leads",
            match_headers={"X-Client-Id": "client-1"},
            json={"success": True},
        )
        result = runner.invoke(cli, ["push", "leads"], input='[{"id": "l1"}]')
        assert result.exit_code == 0, result.output
        assert "Saved 1 items" in result.output

        post = httpx_mock.get_requests(method="POST")[0]
        assert json.loads(post.content) == [{"id": "l1"}]

    def test_push_rejects_non_array(self, runner: CliRunner, logged_in: Path) -> None:
        """Should only accept JSON arrays."""
        result = runner.invoke(cli, ["push", "leads"], input='{"id": 1}')
        assert result.exit_code == 1
        assert "JSON array" in result.output

    def test_push_server_down_keeps_cache(
        self, runner: CliRunner, logged_in: Path, httpx_mock: HTTPXMock
    ) -> None:
        """A failed push still updates the local cache."""
        httpx_mock.add_exception(httpx.ConnectError("refused"))
        httpx_mock.add_exception(httpx.ConnectError("refused"))
        result = runner.invoke(cli, ["push", "tasks"], input="[1]")
        assert result.exit_code == 1

        cache = LocalCache(logged_in / "cache.db")
        try:
            assert cache.get("3", "tasks") == [1]
        finally:
            cache.close()


class TestServerCommands:
    """Tests for 'teamsync server' commands."""

    def test_purge_tokens(self, runner: CliRunner, tmp_path: Path) -> None:
        """Should delete expired tokens."""
        db_path = tmp_path / "server.db"
        db = Database(db_path)
        user = db.create_user("alice", "alice@example.com", "hash")
        db.create_token(user.id, expires_in=timedelta(seconds=-1))
        db.close()

        result = runner.invoke(cli, ["server", "purge-tokens", "--db-path", str(db_path)])
        assert result.exit_code == 0, result.output
        assert "Purged 1 tokens" in result.output

    def test_purge_tokens_missing_db(self, runner: CliRunner, tmp_path: Path) -> None:
        """Should fail when the database does not exist."""
        result = runner.invoke(
            cli, ["server", "purge-tokens", "--db-path", str(tmp_path / "nope.db")]
        )
        assert result.exit_code == 1

    def test_run_uses_app_factory(self, runner: CliRunner) -> None:
        """Should start uvicorn on the app factory."""
        with patch("uvicorn.run") as mock_run:
            result = runner.invoke(cli, ["server", "run", "--port", "9000"])
        assert result.exit_code == 0
        mock_run.assert_called_once_with(
            "teamsync.server.app:app_factory", factory=True, host="127.0.0.1", port=9000
        )
