"""Client sync session.

This module provides:
- SyncSession: application root owning the HTTP client, the realtime
  channel and one BucketController per field

A session is created once after authentication and closed on logout or
shutdown. Every bucket obtained from it shares the same channel and cache.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from teamsync.client.api import APIClient
from teamsync.client.channel import ChannelConfig, Connector, RealtimeChannel
from teamsync.client.controller import DEFAULT_POLL_INTERVAL, BucketController
from teamsync.core.fields import DataField, parse_field
from teamsync.core.types import EchoPolicy

if TYPE_CHECKING:
    import httpx

    from teamsync.client.api import UserInfo
    from teamsync.client.cache import LocalCache
    from teamsync.core.config import ServerConfig

logger = logging.getLogger(__name__)


class NoTeamError(RuntimeError):
    """The user does not belong to a team yet."""


class SyncSession:
    """Owns the client-side sync components for one authenticated user.

    Usage:
        async with SyncSession(config, cache, user) as session:
            tasks = await session.bucket(DataField.TASKS)
            await tasks.save([...])
    """

    def __init__(
        self,
        config: ServerConfig,
        cache: LocalCache,
        user: UserInfo,
        client_id: str | None = None,
        channel_config: ChannelConfig | None = None,
        echo_policy: EchoPolicy = EchoPolicy.USER,
        poll_interval: float | None = DEFAULT_POLL_INTERVAL,
        realtime: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
        connector: Connector | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            config: Server configuration with URL and token.
            cache: Local cache shared by all buckets.
            user: Authenticated user.
            client_id: Client instance ID (generated if None).
            channel_config: Reconnection and heartbeat settings.
            echo_policy: How own writes are recognized in broadcasts.
            poll_interval: Seconds between background reloads (None disables).
            realtime: Open the realtime channel.
            transport: Optional HTTP transport (testing).
            connector: Optional WebSocket connector (testing).
        """
        if user.team_id is None:
            raise NoTeamError(f"User {user.username} has no team")

        self._user = user
        self._team_id: int = user.team_id
        self._cache = cache
        self._client_id = client_id or uuid.uuid4().hex
        self._echo_policy = echo_policy
        self._poll_interval = poll_interval

        self._api = APIClient(config, client_id=self._client_id, transport=transport)
        self._channel: RealtimeChannel | None = None
        if realtime:
            self._channel = RealtimeChannel(
                config,
                client_id=self._client_id,
                channel_config=channel_config,
                connector=connector,
            )

        self._buckets: dict[DataField, BucketController] = {}
        self._started = False

    @property
    def client_id(self) -> str:
        """Client instance ID."""
        return self._client_id

    @property
    def team_id(self) -> int:
        """Team this session syncs."""
        return self._team_id

    @property
    def user(self) -> UserInfo:
        """Authenticated user."""
        return self._user

    @property
    def api(self) -> APIClient:
        """HTTP client."""
        return self._api

    @property
    def channel(self) -> RealtimeChannel | None:
        """Realtime channel, if enabled."""
        return self._channel

    async def start(self) -> None:
        """Open the realtime channel on the user's team."""
        if self._started:
            return
        self._started = True
        if self._channel is not None:
            await self._channel.start(self._team_id)
        logger.info(
            "Sync session started for %s (team %d, client %s)",
            self._user.username, self._team_id, self._client_id,
        )

    async def bucket(self, field: DataField | str) -> BucketController:
        """Get the controller for a field, starting it on first use.

        Args:
            field: Bucket name or DataField.

        Returns:
            The single controller for this field.
        """
        field = parse_field(field)
        controller = self._buckets.get(field)
        if controller is None:
            controller = BucketController(
                field=field,
                api=self._api,
                cache=self._cache,
                team_id=self._team_id,
                user_id=self._user.id,
                client_id=self._client_id,
                channel=self._channel,
                echo_policy=self._echo_policy,
                poll_interval=self._poll_interval,
            )
            self._buckets[field] = controller
            await controller.start()
        return controller

    async def refresh_all(self) -> dict[DataField, list[Any]]:
        """Reload every open bucket from the server."""
        return {field: await c.refresh() for field, c in self._buckets.items()}

    async def close(self) -> None:
        """Stop all controllers, the channel and the HTTP client."""
        for controller in self._buckets.values():
            await controller.stop()
        self._buckets.clear()
        if self._channel is not None:
            await self._channel.stop()
        await self._api.close()
        self._started = False
        logger.info("Sync session closed")

    async def __aenter__(self) -> SyncSession:
        """Context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        """Context manager exit."""
        await self.close()
