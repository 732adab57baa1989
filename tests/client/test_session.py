"""Tests for the client sync session."""

from __future__ import annotations

from collections.abc import Generator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from pytest_httpx import HTTPXMock

from teamsync.client.api import UserInfo
from teamsync.client.cache import LocalCache
from teamsync.client.session import NoTeamError, SyncSession
from teamsync.core.config import ServerConfig
from teamsync.core.fields import DataField
from teamsync.core.types import BucketState


@pytest.fixture
def cache() -> Generator[LocalCache, None, None]:
    """Create an in-memory cache."""
    c = LocalCache(":memory:")
    yield c
    c.close()


def make_user(team_id: int | None = 5) -> UserInfo:
    """Create a user belonging to a team."""
    return UserInfo(
        id=7,
        username="alice",
        email="alice@example.com",
        team_id=team_id,
        team_name="alice's team",
        role="owner",
    )


def make_session(cache: LocalCache, **kwargs: Any) -> SyncSession:
    """Create a session without background polling."""
    config = ServerConfig(server_url="http://test", token="ts_token")
    kwargs.setdefault("realtime", False)
    return SyncSession(config, cache, make_user(), poll_interval=None, **kwargs)


class TestSyncSession:
    """Tests for SyncSession class."""

    def test_requires_team(self, cache: LocalCache) -> None:
        """Users without team cannot open a session."""
        config = ServerConfig(server_url="http://test", token="ts_token")
        with pytest.raises(NoTeamError):
            SyncSession(config, cache, make_user(team_id=None))

    def test_generates_client_id(self, cache: LocalCache) -> None:
        """Each session gets its own client ID unless given one."""
        first = make_session(cache)
        second = make_session(cache)
        assert first.client_id != second.client_id
        assert make_session(cache, client_id="fixed").client_id == "fixed"

    @pytest.mark.asyncio
    async def test_bucket_is_shared(
        self, cache: LocalCache, httpx_mock: HTTPXMock
    ) -> None:
        """bucket() returns one started controller per field."""
        httpx_mock.add_response(
            method="GET", url="http://test/api/data/tasks", json={"data": [1]}
        )
        async with make_session(cache) as session:
            first = await session.bucket(DataField.TASKS)
            second = await session.bucket("tasksData")
            assert first is second
            assert first.state == BucketState.READY
            assert first.data == [1]

    @pytest.mark.asyncio
    async def test_writes_carry_client_id(
        self, cache: LocalCache, httpx_mock: HTTPXMock
    ) -> None:
        """Writes from a session identify its client."""
        httpx_mock.add_response(
            method="GET", url="http://test/api/data/sales", json={"data": []}
        )
        httpx_mock.add_response(
            method="POST",
            url="http://test/api/data/sales",
            match_headers={"X-Client-Id": "client-9"},
            json={"success": True},
        )
        async with make_session(cache, client_id="client-9") as session:
            bucket = await session.bucket(DataField.SALES)
            assert await bucket.save([{"amount": 1}]) is True

    @pytest.mark.asyncio
    async def test_refresh_all(self, cache: LocalCache, httpx_mock: HTTPXMock) -> None:
        """Should reload every open bucket."""
        for value in ([1], [2]):
            httpx_mock.add_response(
                method="GET", url="http://test/api/data/tasks", json={"data": value}
            )
        async with make_session(cache) as session:
            await session.bucket(DataField.TASKS)
            result = await session.refresh_all()
        assert result == {DataField.TASKS: [2]}

    @pytest.mark.asyncio
    async def test_realtime_channel_lifecycle(self, cache: LocalCache) -> None:
        """The channel starts on the user's team and stops on close."""
        session = make_session(cache, realtime=True)
        assert session.channel is not None
        channel = MagicMock()
        channel.start = AsyncMock()
        channel.stop = AsyncMock()
        session._channel = channel

        await session.start()
        channel.start.assert_awaited_once_with(5)

        await session.close()
        channel.stop.assert_awaited_once()
