"""Realtime channel client.

This module provides:
- RealtimeChannel: WebSocket connection manager that joins the team room,
  dispatches data-updated broadcasts to subscribers and reconnects with
  capped exponential backoff

Architecture:
    Server (TeamHub) ─push─► RealtimeChannel ─► subscribers (BucketController)
                                   │
                       (on every (re)connect: join-team)

One channel is owned by the application root (SyncSession) and shared by
all bucket controllers. Delivery is best-effort: broadcasts sent while
disconnected are lost and are recovered by the controllers' polling.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import ssl
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import websockets
from websockets.exceptions import WebSocketException

from teamsync.core import messages
from teamsync.core.fields import DataField, UnknownFieldError
from teamsync.core.messages import SyncMessage
from teamsync.core.types import ChannelState

if TYPE_CHECKING:
    from websockets.asyncio.client import ClientConnection

    from teamsync.core.config import ServerConfig

logger = logging.getLogger(__name__)

MessageCallback = Callable[[SyncMessage], None]
Connector = Callable[..., Awaitable[Any]]


@dataclass
class ChannelConfig:
    """Configuration for RealtimeChannel.

    Attributes:
        heartbeat_interval: Seconds between heartbeats.
        reconnect_min_delay: Delay before the first reconnection attempt.
        reconnect_max_delay: Maximum delay between reconnection attempts.
        reconnect_backoff: Multiplier for backoff.
        open_timeout: Seconds allowed for the opening handshake.
    """

    heartbeat_interval: float = 15.0
    reconnect_min_delay: float = 1.0
    reconnect_max_delay: float = 5.0
    reconnect_backoff: float = 2.0
    open_timeout: float = 10.0


class RealtimeChannel:
    """Team-scoped realtime connection with automatic reconnection.

    Usage:
        channel = RealtimeChannel(server_config, client_id="...")
        unsubscribe = channel.subscribe(on_message, field=DataField.TASKS)
        await channel.start(team_id)
        ...
        await channel.stop()
    """

    def __init__(
        self,
        config: ServerConfig,
        client_id: str | None = None,
        channel_config: ChannelConfig | None = None,
        connector: Connector | None = None,
    ) -> None:
        """Initialize the channel.

        Args:
            config: Server configuration with URL, token, and settings.
            client_id: Client instance ID announced when joining.
            channel_config: Reconnection and heartbeat settings.
            connector: Coroutine function opening a connection
                (defaults to websockets.connect).
        """
        self._config = config
        self._client_id = client_id
        self._channel_config = channel_config or ChannelConfig()
        self._connector: Connector = connector or websockets.connect

        self._ws: ClientConnection | None = None
        self._state = ChannelState.DISCONNECTED
        self._team_id: int | None = None
        self._joined_team_id: int | None = None
        self._task: asyncio.Task[None] | None = None
        self._reconnect_delay = self._channel_config.reconnect_min_delay

        self._subscribers: list[tuple[DataField | None, MessageCallback]] = []
        self._on_connected: Callable[[], None] | None = None
        self._on_disconnected: Callable[[], None] | None = None

    @property
    def connected(self) -> bool:
        """Check if currently connected."""
        return self._state == ChannelState.CONNECTED

    @property
    def joined(self) -> bool:
        """Check if the server acknowledged joining the current team."""
        return self.connected and self._joined_team_id == self._team_id

    @property
    def state(self) -> ChannelState:
        """Current connection state."""
        return self._state

    @property
    def team_id(self) -> int | None:
        """Team room this channel joins."""
        return self._team_id

    @property
    def running(self) -> bool:
        """Check if the connection loop is active."""
        return self._task is not None and not self._task.done()

    @property
    def ws_url(self) -> str:
        """Get the WebSocket URL."""
        return self._config.ws_url

    @property
    def reconnect_delay(self) -> float:
        """Delay before the next reconnection attempt."""
        return self._reconnect_delay

    def set_callbacks(
        self,
        on_connected: Callable[[], None] | None = None,
        on_disconnected: Callable[[], None] | None = None,
    ) -> None:
        """Set connection callbacks.

        Args:
            on_connected: Called after each (re)connect and join.
            on_disconnected: Called when the connection is lost.
        """
        self._on_connected = on_connected
        self._on_disconnected = on_disconnected

    def subscribe(
        self,
        callback: MessageCallback,
        field: DataField | None = None,
    ) -> Callable[[], None]:
        """Register a callback for data-updated broadcasts.

        Args:
            callback: Called with each SyncMessage.
            field: Only deliver messages for this field (all if None).

        Returns:
            Function that removes the subscription.
        """
        entry = (field, callback)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._subscribers.remove(entry)

        return unsubscribe

    async def start(self, team_id: int) -> None:
        """Start the connection loop for a team.

        Args:
            team_id: Team room to join on every connection.
        """
        self._team_id = team_id
        if self.running:
            logger.warning("RealtimeChannel already running")
            return
        self._task = asyncio.create_task(
            self._connection_loop(), name="RealtimeChannel"
        )
        logger.info("RealtimeChannel started for team %d", team_id)

    async def stop(self) -> None:
        """Stop the channel. No callbacks are invoked afterwards."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._close_connection()
        logger.info("RealtimeChannel stopped")

    async def join(self, team_id: int) -> None:
        """Switch to another team room.

        The new team is joined immediately if connected, and on every
        later reconnect.
        """
        self._team_id = team_id
        if self.connected:
            await self._send_join()

    async def publish(self, field: DataField, payload: list[Any]) -> bool:
        """Send a write over the channel instead of HTTP.

        Args:
            field: Bucket to replace.
            payload: New full value.

        Returns:
            True if the message was handed to the socket.
        """
        if not self.connected or self._ws is None or self._team_id is None:
            logger.warning("Cannot publish %s: channel not connected", field.value)
            return False
        message = {
            "type": messages.DATA_UPDATE,
            "team_id": self._team_id,
            "field": field.value,
            "payload": payload,
            "client_id": self._client_id,
        }
        try:
            await self._ws.send(json.dumps(message))
        except WebSocketException as e:
            logger.warning("Failed to publish %s: %s", field.value, e)
            return False
        return True

    async def _connection_loop(self) -> None:
        """Main connection loop with automatic reconnection."""
        was_connected = False

        while True:
            try:
                await self._connect()
                was_connected = True
                self._reconnect_delay = self._channel_config.reconnect_min_delay
                await self._run_connected()

            except WebSocketException as e:
                if was_connected:
                    logger.warning("RealtimeChannel disconnected: %s", e)
                logger.debug("WebSocket error: %s", e)
            except (ConnectionRefusedError, OSError, TimeoutError) as e:
                if was_connected:
                    logger.warning("RealtimeChannel connection lost")
                logger.debug("Connection error: %s", e)
            except Exception as e:
                logger.warning("RealtimeChannel error: %s", e)
                logger.debug("Full traceback:", exc_info=True)

            await self._close_connection()
            if was_connected and self._on_disconnected:
                self._on_disconnected()
            was_connected = False

            logger.info(
                "RealtimeChannel reconnecting in %.1fs...", self._reconnect_delay
            )
            await asyncio.sleep(self._reconnect_delay)

            # Increase delay for next attempt
            self._reconnect_delay = min(
                self._reconnect_delay * self._channel_config.reconnect_backoff,
                self._channel_config.reconnect_max_delay,
            )

    async def _connect(self) -> None:
        """Establish WebSocket connection and join the team room."""
        self._state = ChannelState.CONNECTING

        ssl_context: ssl.SSLContext | None = None
        if self.ws_url.startswith("wss://"):
            ssl_context = ssl.create_default_context()
            if not self._config.verify_ssl:
                ssl_context.check_hostname = False
                ssl_context.verify_mode = ssl.CERT_NONE

        kwargs: dict[str, Any] = {"open_timeout": self._channel_config.open_timeout}
        if ssl_context is not None:
            kwargs["ssl"] = ssl_context
        self._ws = await self._connector(self.ws_url, **kwargs)
        self._state = ChannelState.CONNECTED
        logger.info("RealtimeChannel connected")

        # Room membership does not survive a reconnect
        await self._send_join()

        if self._on_connected:
            self._on_connected()

    async def _send_join(self) -> None:
        """Send join-team for the current team."""
        if self._ws is None or self._team_id is None:
            return
        await self._ws.send(json.dumps({
            "type": messages.JOIN_TEAM,
            "team_id": self._team_id,
            "client_id": self._client_id,
        }))
        logger.debug("Sent join-team for team %d", self._team_id)

    async def _run_connected(self) -> None:
        """Run while connected - send heartbeats and handle messages."""
        heartbeat_task = asyncio.create_task(self._heartbeat_loop())

        try:
            while self._ws is not None:
                try:
                    message = await self._ws.recv()
                except websockets.ConnectionClosed:
                    logger.info("Connection closed by server")
                    break
                if isinstance(message, bytes):
                    message = message.decode("utf-8")
                self._handle_message(message)
        finally:
            heartbeat_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await heartbeat_task

    async def _heartbeat_loop(self) -> None:
        """Send periodic heartbeats."""
        while self.connected:
            await asyncio.sleep(self._channel_config.heartbeat_interval)
            if self.connected and self._ws:
                try:
                    await self._ws.send(json.dumps({"type": messages.HEARTBEAT}))
                except WebSocketException:
                    break

    def _handle_message(self, message: str) -> None:
        """Handle incoming message from server.

        Args:
            message: Raw message string.
        """
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            logger.warning("Invalid message received: %s", message[:100])
            return

        msg_type = data.get("type") if isinstance(data, dict) else None

        if msg_type == messages.DATA_UPDATED:
            try:
                sync_message = SyncMessage.from_message(data)
            except (KeyError, TypeError, ValueError, UnknownFieldError) as e:
                logger.warning("Invalid data-updated message: %s", e)
                return
            self._dispatch(sync_message)
        elif msg_type == messages.JOINED:
            self._joined_team_id = data.get("team_id")
            logger.debug("Joined team %s", self._joined_team_id)
        elif msg_type == messages.ERROR:
            logger.warning("Server error on realtime channel: %s", data.get("message"))
        else:
            logger.debug("Ignoring message type: %s", msg_type)

    def _dispatch(self, message: SyncMessage) -> None:
        """Deliver a broadcast to matching subscribers."""
        for field, callback in list(self._subscribers):
            if field is not None and field != message.field:
                continue
            try:
                callback(message)
            except Exception:
                logger.exception("Subscriber failed for %s", message.field.value)

    async def _close_connection(self) -> None:
        """Close the WebSocket connection."""
        ws, self._ws = self._ws, None
        self._joined_team_id = None
        if ws is not None:
            with contextlib.suppress(WebSocketException, OSError):
                await ws.close()
        self._state = ChannelState.DISCONNECTED
