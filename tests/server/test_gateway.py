"""Tests for the sync gateway."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from teamsync.core.fields import DataField, UnknownFieldError
from teamsync.server.database import Database
from teamsync.server.gateway import InvalidPayloadError, SyncGateway


@pytest.fixture
def db(tmp_path: Path) -> Generator[Database, None, None]:
    """Create a test database."""
    database = Database(tmp_path / "test.db")
    yield database
    database.close()


@pytest.fixture
def hub() -> MagicMock:
    """Create a mock TeamHub."""
    mock = MagicMock()
    mock.broadcast = AsyncMock(return_value=1)
    return mock


@pytest.fixture
def gateway(db: Database, hub: MagicMock) -> SyncGateway:
    """Create a gateway over the test database."""
    return SyncGateway(db, hub)


class TestHandleWrite:
    """Tests for SyncGateway.handle_write."""

    @pytest.mark.asyncio
    async def test_persists_then_broadcasts(
        self, gateway: SyncGateway, db: Database, hub: MagicMock
    ) -> None:
        """Should store the payload and broadcast it to the team."""
        team = db.create_team("Sales")

        message = await gateway.handle_write(
            team.id, "tasks", [{"id": 1}], origin_user_id=5, origin_client_id="c1"
        )

        assert db.read_bucket(team.id, DataField.TASKS) == [{"id": 1}]
        assert message.field is DataField.TASKS
        hub.broadcast.assert_awaited_once()
        team_id, sent = hub.broadcast.await_args.args
        assert team_id == team.id
        assert sent["type"] == "data-updated"
        assert sent["payload"] == [{"id": 1}]
        assert sent["origin_user_id"] == 5
        assert sent["origin_client_id"] == "c1"

    @pytest.mark.asyncio
    async def test_unknown_field(
        self, gateway: SyncGateway, db: Database, hub: MagicMock
    ) -> None:
        """Should reject unknown fields without writing or broadcasting."""
        team = db.create_team("Sales")
        with pytest.raises(UnknownFieldError):
            await gateway.handle_write(team.id, "secrets", [], origin_user_id=1)
        hub.broadcast.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_array_payload(
        self, gateway: SyncGateway, db: Database, hub: MagicMock
    ) -> None:
        """Should reject payloads that are not lists."""
        team = db.create_team("Sales")
        with pytest.raises(InvalidPayloadError):
            await gateway.handle_write(team.id, "tasks", {"a": 1}, origin_user_id=1)
        assert db.read_bucket(team.id, DataField.TASKS) == []
        hub.broadcast.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_broadcast_when_store_fails(self, hub: MagicMock) -> None:
        """A failed store write is not broadcast."""
        db = MagicMock()
        db.upsert_field.side_effect = RuntimeError("disk full")
        gateway = SyncGateway(db, hub)
        with pytest.raises(RuntimeError):
            await gateway.handle_write(1, "tasks", [1], origin_user_id=1)
        hub.broadcast.assert_not_awaited()


class TestHandleRead:
    """Tests for SyncGateway reads."""

    @pytest.mark.asyncio
    async def test_read_without_team(self, gateway: SyncGateway) -> None:
        """Users without a team read empty buckets."""
        assert await gateway.handle_read(None, "tasks") == []

    @pytest.mark.asyncio
    async def test_read_unknown_field(self, gateway: SyncGateway) -> None:
        """Unknown fields are rejected even without a team."""
        with pytest.raises(UnknownFieldError):
            await gateway.handle_read(None, "secrets")

    @pytest.mark.asyncio
    async def test_read_all_without_team(self, gateway: SyncGateway) -> None:
        """Aggregate read without a team is all empty."""
        result = await gateway.handle_read_all(None)
        assert result["tasks"] == []
        assert len(result) == 6
