"""Per-bucket sync controller.

This module provides:
- BucketController: holds the local value of one team bucket and keeps it
  in sync with the server

Behaviour:
    load()    server value wins, even when empty; on failure fall back to
              the local cache, then to an empty list.
    save()    optimistic: local state and cache are updated before the
              write is sent; a failed write is logged, never rolled back.
    messages  broadcasts from the realtime channel are applied as-is
              (last message wins) unless they are echoes of our own writes.
    polling   load() runs every poll_interval seconds while started,
              whatever the channel state, to recover missed broadcasts.

States:
    UNINITIALIZED -> LOADING -> READY     (server read succeeded)
                             -> FALLBACK  (server read failed)
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import httpx

from teamsync.client.api import APIError
from teamsync.core.types import BucketState, EchoPolicy

if TYPE_CHECKING:
    from teamsync.client.api import APIClient
    from teamsync.client.cache import LocalCache
    from teamsync.client.channel import RealtimeChannel
    from teamsync.core.fields import DataField
    from teamsync.core.messages import SyncMessage

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 10.0

# Errors treated as "server unreachable or refused": handled, not raised
REQUEST_ERRORS: tuple[type[Exception], ...] = (APIError, httpx.HTTPError, OSError)

ChangeCallback = Callable[[list[Any]], None]


class BucketController:
    """Keeps one team bucket in sync for the UI.

    Usage:
        controller = BucketController(
            field=DataField.TASKS,
            api=api_client,
            cache=local_cache,
            team_id=user.team_id,
            user_id=user.id,
            client_id=session_client_id,
            channel=channel,
        )
        await controller.start()
        controller.data            # current value
        await controller.save([...])
        await controller.stop()
    """

    def __init__(
        self,
        field: DataField,
        api: APIClient,
        cache: LocalCache,
        team_id: int,
        user_id: int,
        client_id: str | None = None,
        channel: RealtimeChannel | None = None,
        echo_policy: EchoPolicy = EchoPolicy.USER,
        poll_interval: float | None = DEFAULT_POLL_INTERVAL,
    ) -> None:
        """Initialize the controller.

        Args:
            field: Bucket this controller manages.
            api: HTTP client.
            cache: Local cache shared by the session.
            team_id: Team owning the bucket.
            user_id: Current user (for echo filtering).
            client_id: Current client instance (for echo filtering).
            channel: Realtime channel to subscribe to, if any.
            echo_policy: How own writes are recognized in broadcasts.
            poll_interval: Seconds between background reloads (None disables).
        """
        self._field = field
        self._api = api
        self._cache = cache
        self._team_id = team_id
        self._user_id = user_id
        self._client_id = client_id
        self._channel = channel
        self._echo_policy = echo_policy
        self._poll_interval = poll_interval

        self._data: list[Any] = []
        self._state = BucketState.UNINITIALIZED
        self._error: str | None = None

        self._listeners: list[ChangeCallback] = []
        self._unsubscribe: Callable[[], None] | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._pending_writes: set[asyncio.Task[bool]] = set()

    @property
    def field(self) -> DataField:
        """Bucket managed by this controller."""
        return self._field

    @property
    def data(self) -> list[Any]:
        """Current local value."""
        return self._data

    @property
    def state(self) -> BucketState:
        """Current lifecycle state."""
        return self._state

    @property
    def error(self) -> str | None:
        """Last load/save error message, cleared by the next success."""
        return self._error

    @property
    def started(self) -> bool:
        """Check if subscribed and polling."""
        return self._unsubscribe is not None or self._poll_task is not None

    @property
    def _cache_scope(self) -> str:
        return str(self._team_id)

    def on_change(self, callback: ChangeCallback) -> Callable[[], None]:
        """Register a callback invoked with the new value after each change.

        Returns:
            Function that removes the callback.
        """
        self._listeners.append(callback)

        def remove() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(callback)

        return remove

    # === Lifecycle ===

    async def start(self) -> None:
        """Subscribe to the channel, load once and start polling."""
        if self.started:
            return
        if self._channel is not None:
            self._unsubscribe = self._channel.subscribe(
                self.handle_message, field=self._field
            )
        await self.load()
        if self._poll_interval:
            self._poll_task = asyncio.create_task(
                self._poll_loop(), name=f"poll-{self._field.value}"
            )

    async def stop(self) -> None:
        """Unsubscribe, stop polling and wait for in-flight writes."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        task, self._poll_task = self._poll_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._pending_writes:
            await asyncio.gather(*self._pending_writes, return_exceptions=True)

    async def _poll_loop(self) -> None:
        """Reload from the server at a fixed interval."""
        assert self._poll_interval
        while True:
            await asyncio.sleep(self._poll_interval)
            logger.debug("Polling %s", self._field.value)
            try:
                await self.load()
            except Exception:
                logger.exception("Poll of %s failed", self._field.value)

    # === Operations ===

    async def load(self) -> list[Any]:
        """Load the bucket from the server, falling back to the cache.

        Never raises for request failures.

        Returns:
            The resulting local value.
        """
        self._state = BucketState.LOADING
        try:
            value = await self._api.get_data(self._field)
        except REQUEST_ERRORS as e:
            logger.warning("Failed to load %s from server: %s", self._field.value, e)
            self._error = f"Failed to load {self._field.value}: {e}"
            cached = self._cache.get(self._cache_scope, self._field.value)
            self._set_local(cached if isinstance(cached, list) else [], cache=False)
            self._state = BucketState.FALLBACK
            return self._data

        # Server is authoritative, including an empty result
        self._error = None
        self._set_local(value)
        self._state = BucketState.READY
        return self._data

    async def refresh(self) -> list[Any]:
        """Manually reload from the server."""
        return await self.load()

    async def save(self, new_value: list[Any]) -> bool:
        """Apply a new value locally and send it to the server.

        Local state and cache change before the first suspension point.
        A failed write keeps the local value.

        Args:
            new_value: New full value of the bucket.

        Returns:
            True if the server accepted the write.
        """
        self._set_local(new_value)
        return await self._send(new_value)

    def set_data(self, new_value: list[Any]) -> asyncio.Task[bool]:
        """Apply a new value locally now and schedule the server write.

        Must be called from within a running event loop.

        Returns:
            Task resolving to True if the server accepted the write.
        """
        self._set_local(new_value)
        task = asyncio.create_task(self._send(new_value))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)
        return task

    async def _send(self, value: list[Any]) -> bool:
        """Send a write to the server and record any failure."""
        try:
            await self._api.save_data(self._field, value)
        except REQUEST_ERRORS as e:
            logger.error(
                "Failed to save %s to server (kept locally): %s", self._field.value, e
            )
            self._error = f"Failed to save {self._field.value}: {e}"
            return False
        self._error = None
        return True

    def is_echo(self, message: SyncMessage) -> bool:
        """Check whether a broadcast originated from this client's writes."""
        if self._echo_policy == EchoPolicy.CLIENT:
            return (
                self._client_id is not None
                and message.origin_client_id == self._client_id
            )
        return message.origin_user_id == self._user_id

    def handle_message(self, message: SyncMessage) -> bool:
        """Apply a broadcast from the realtime channel.

        Args:
            message: Received SyncMessage.

        Returns:
            True if the message changed local state.
        """
        if message.field != self._field or message.team_id != self._team_id:
            return False
        if self.is_echo(message):
            logger.debug("Ignoring own update for %s", self._field.value)
            return False
        self._set_local(message.payload)
        logger.info(
            "Applied %s update from user %s (%d items)",
            self._field.value, message.origin_user_id, len(message.payload),
        )
        return True

    def _set_local(self, value: list[Any], cache: bool = True) -> None:
        """Replace local state (and cache) and notify listeners."""
        self._data = copy.deepcopy(list(value))
        if cache:
            self._cache.set(self._cache_scope, self._field.value, self._data)
        for callback in list(self._listeners):
            try:
                callback(self._data)
            except Exception:
                logger.exception("Change listener failed for %s", self._field.value)
