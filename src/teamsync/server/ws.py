"""WebSocket hub for team-scoped realtime broadcasts.

This module provides:
- TeamHub: Room membership table (team_id -> connections) and broadcasting
- WebSocket endpoint clients use to join their team and push updates

Architecture:
    Client ──ws──► TeamHub.join(team) ◄── SyncGateway.broadcast(team)
                        │
                 (in-memory rooms)

Room membership does not survive a reconnect: a client must send
"join-team" again on every new connection.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool
from starlette.websockets import WebSocketState

from teamsync.core import messages
from teamsync.core.fields import UnknownFieldError
from teamsync.server.gateway import InvalidPayloadError

if TYPE_CHECKING:
    from teamsync.server.database import Database
    from teamsync.server.gateway import SyncGateway

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Connection:
    """A connected realtime client.

    Attributes:
        websocket: The WebSocket connection.
        user_id: Authenticated user.
        client_id: Client instance identifier sent at join time.
        team_id: Room currently joined, if any.
    """

    websocket: WebSocket
    user_id: int
    client_id: str | None = None
    team_id: int | None = None


class TeamHub:
    """Central hub for team rooms and broadcasting.

    Thread-safe for use with asyncio.
    """

    def __init__(self) -> None:
        """Initialize the hub."""
        self._connections: set[Connection] = set()
        self._rooms: dict[int, set[Connection]] = {}
        self._lock = asyncio.Lock()

    async def connect(
        self,
        websocket: WebSocket,
        user_id: int,
        client_id: str | None = None,
    ) -> Connection:
        """Accept and register a connection. It joins no room yet.

        Args:
            websocket: The WebSocket connection.
            user_id: Authenticated user ID.
            client_id: Optional client instance identifier.

        Returns:
            The registered Connection.
        """
        await websocket.accept()
        connection = Connection(websocket=websocket, user_id=user_id, client_id=client_id)
        async with self._lock:
            self._connections.add(connection)
        logger.info("Realtime client connected: user_id=%d", user_id)
        return connection

    async def join(self, connection: Connection, team_id: int) -> None:
        """Move a connection into a team room, leaving any previous room.

        Args:
            connection: Registered connection.
            team_id: Team to join.
        """
        async with self._lock:
            self._leave_room(connection)
            connection.team_id = team_id
            self._rooms.setdefault(team_id, set()).add(connection)
        logger.info("User %d joined team %d", connection.user_id, team_id)

    async def disconnect(self, connection: Connection) -> None:
        """Forget a connection and remove it from its room.

        Args:
            connection: Connection that went away.
        """
        async with self._lock:
            self._leave_room(connection)
            self._connections.discard(connection)
        logger.info("Realtime client disconnected: user_id=%d", connection.user_id)

    def _leave_room(self, connection: Connection) -> None:
        """Remove a connection from its room. Caller holds the lock."""
        if connection.team_id is None:
            return
        room = self._rooms.get(connection.team_id)
        if room is not None:
            room.discard(connection)
            if not room:
                del self._rooms[connection.team_id]
        connection.team_id = None

    async def room_size(self, team_id: int) -> int:
        """Number of connections joined to a team."""
        async with self._lock:
            return len(self._rooms.get(team_id, ()))

    async def broadcast(self, team_id: int, message: dict[str, Any]) -> int:
        """Send a message to every connection joined to a team.

        The sender's own connections are included; clients filter their
        own echoes.

        Args:
            team_id: Target team.
            message: JSON-serializable message.

        Returns:
            Number of connections the message was sent to.
        """
        text = json.dumps(message)
        delivered = 0
        async with self._lock:
            disconnected = []
            for connection in self._rooms.get(team_id, ()):
                ws = connection.websocket
                try:
                    if ws.client_state == WebSocketState.CONNECTED:
                        await ws.send_text(text)
                        delivered += 1
                except Exception:
                    disconnected.append(connection)

            # Clean up disconnected
            for connection in disconnected:
                self._leave_room(connection)
                self._connections.discard(connection)

        logger.debug(
            "Broadcast %s to team %d (%d connections)",
            message.get("type"), team_id, delivered,
        )
        return delivered


async def _send_json(websocket: WebSocket, message: dict[str, Any]) -> None:
    """Send a message, ignoring a socket that is already gone."""
    with contextlib.suppress(Exception):
        await websocket.send_text(json.dumps(message))


async def _error(websocket: WebSocket, message: str) -> None:
    await _send_json(websocket, {"type": messages.ERROR, "message": message})


async def handle_client_message(
    connection: Connection,
    data: dict[str, Any],
    hub: TeamHub,
    gateway: SyncGateway,
    db: Database,
) -> None:
    """Handle one message received from a realtime client.

    Args:
        connection: Sender.
        data: Decoded message.
        hub: Team hub.
        gateway: Sync gateway for writes.
        db: Database for membership checks.
    """
    msg_type = data.get("type")
    ws = connection.websocket

    if msg_type == messages.JOIN_TEAM:
        team_id = data.get("team_id")
        if not isinstance(team_id, int):
            await _error(ws, "join-team requires an integer team_id")
            return
        allowed = await run_in_threadpool(db.is_team_member, connection.user_id, team_id)
        if not allowed:
            await _error(ws, f"Not a member of team {team_id}")
            return
        if data.get("client_id"):
            connection.client_id = str(data["client_id"])
        await hub.join(connection, team_id)
        await _send_json(ws, {"type": messages.JOINED, "team_id": team_id})

    elif msg_type == messages.DATA_UPDATE:
        team_id = data.get("team_id", connection.team_id)
        if not isinstance(team_id, int):
            await _error(ws, "data-update requires a team_id")
            return
        allowed = await run_in_threadpool(db.is_team_member, connection.user_id, team_id)
        if not allowed:
            await _error(ws, f"Not a member of team {team_id}")
            return
        try:
            await gateway.handle_write(
                team_id=team_id,
                field_name=str(data.get("field", "")),
                payload=data.get("payload"),
                origin_user_id=connection.user_id,
                origin_client_id=data.get("client_id") or connection.client_id,
            )
        except (UnknownFieldError, InvalidPayloadError) as e:
            await _error(ws, str(e))
        except Exception:
            logger.exception("Realtime data update failed for team %d", team_id)
            await _error(ws, "Failed to save data")

    elif msg_type == messages.HEARTBEAT:
        pass

    else:
        logger.warning(
            "Unknown message type from user %d: %s", connection.user_id, msg_type
        )


# WebSocket router
router = APIRouter(tags=["websocket"])


@router.websocket("/ws/{token}")
async def websocket_endpoint(websocket: WebSocket, token: str) -> None:
    """WebSocket endpoint for realtime clients.

    Clients connect with their auth token, then send "join-team".
    See teamsync.core.messages for the message format.

    Args:
        websocket: The WebSocket connection.
        token: Authentication token.
    """
    db: Database = websocket.app.state.db
    hub: TeamHub = websocket.app.state.hub
    gateway: SyncGateway = websocket.app.state.gateway

    # Validate token
    auth_token = db.validate_token(token)
    if not auth_token:
        await websocket.close(code=4001, reason="Invalid token")
        return

    connection = await hub.connect(websocket, auth_token.user_id)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except ValueError:
                await _error(websocket, "Messages must be valid JSON")
                continue
            if not isinstance(data, dict):
                await _error(websocket, "Messages must be JSON objects")
                continue
            await handle_client_message(connection, data, hub, gateway, db)
    except WebSocketDisconnect:
        await hub.disconnect(connection)
    except Exception as e:
        logger.exception("Error in realtime WebSocket: %s", e)
        await hub.disconnect(connection)
