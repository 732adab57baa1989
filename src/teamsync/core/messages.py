"""Realtime channel message format.

Messages are JSON objects with a "type" key:

    client -> server:
        {"type": "join-team", "team_id": 1, "client_id": "..."}
        {"type": "data-update", "team_id": 1, "field": "tasks", "payload": [...]}
        {"type": "heartbeat"}

    server -> client:
        {"type": "joined", "team_id": 1}
        {"type": "data-updated", "team_id": 1, "field": "tasks", "payload": [...],
         "origin_user_id": 7, "origin_client_id": "...", "timestamp": "..."}
        {"type": "error", "message": "..."}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from teamsync.core.fields import DataField, parse_field

JOIN_TEAM = "join-team"
JOINED = "joined"
DATA_UPDATE = "data-update"
DATA_UPDATED = "data-updated"
HEARTBEAT = "heartbeat"
ERROR = "error"


@dataclass
class SyncMessage:
    """A bucket change in transit over the realtime channel.

    Never persisted. Applying the same message twice is harmless because
    the payload replaces the whole bucket.

    Attributes:
        team_id: Team the bucket belongs to.
        field: Bucket that changed.
        payload: New full value of the bucket.
        origin_user_id: User who made the write.
        origin_client_id: Client instance that made the write, if known.
        timestamp: When the gateway accepted the write.
    """

    team_id: int
    field: DataField
    payload: list[Any]
    origin_user_id: int | None = None
    origin_client_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_message(self) -> dict[str, Any]:
        """Convert to a data-updated channel message."""
        return {
            "type": DATA_UPDATED,
            "team_id": self.team_id,
            "field": self.field.value,
            "payload": self.payload,
            "origin_user_id": self.origin_user_id,
            "origin_client_id": self.origin_client_id,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_message(cls, data: dict[str, Any]) -> SyncMessage:
        """Create from a data-updated channel message.

        Raises:
            KeyError: If a required key is missing.
            UnknownFieldError: If the field is not recognized.
        """
        timestamp = data.get("timestamp")
        return cls(
            team_id=data["team_id"],
            field=parse_field(data["field"]),
            payload=data["payload"],
            origin_user_id=data.get("origin_user_id"),
            origin_client_id=data.get("origin_client_id"),
            timestamp=(
                datetime.fromisoformat(timestamp) if timestamp else datetime.now(UTC)
            ),
        )
