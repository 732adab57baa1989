"""Sync gateway: persist bucket writes and fan them out to the team.

A write is validated, stored with a single upsert, then broadcast to
every connection joined to the team. Nothing is broadcast if the store
write fails.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from starlette.concurrency import run_in_threadpool

from teamsync.core.fields import AGGREGATE_FIELDS, DataField, parse_field
from teamsync.core.messages import SyncMessage

if TYPE_CHECKING:
    from teamsync.server.database import Database
    from teamsync.server.ws import TeamHub

logger = logging.getLogger(__name__)


class InvalidPayloadError(ValueError):
    """Raised when a bucket payload is not a JSON array."""


class SyncGateway:
    """Bridge between write requests, the store and the team hub."""

    def __init__(self, db: Database, hub: TeamHub) -> None:
        """Initialize the gateway.

        Args:
            db: Persistent store.
            hub: Team hub used for broadcasting.
        """
        self._db = db
        self._hub = hub

    async def handle_write(
        self,
        team_id: int,
        field_name: str | DataField,
        payload: Any,
        origin_user_id: int | None,
        origin_client_id: str | None = None,
    ) -> SyncMessage:
        """Replace a bucket and broadcast the change.

        Args:
            team_id: Team owning the bucket.
            field_name: Field name or legacy alias.
            payload: New full value (must be a list).
            origin_user_id: User who made the write.
            origin_client_id: Client instance that made the write.

        Returns:
            The broadcast SyncMessage.

        Raises:
            UnknownFieldError: If the field is not recognized.
            InvalidPayloadError: If the payload is not a list.
        """
        field = parse_field(field_name)
        if not isinstance(payload, list):
            raise InvalidPayloadError(
                f"Payload for '{field.value}' must be a JSON array"
            )

        await run_in_threadpool(self._db.upsert_field, team_id, field, payload)

        message = SyncMessage(
            team_id=team_id,
            field=field,
            payload=payload,
            origin_user_id=origin_user_id,
            origin_client_id=origin_client_id,
            timestamp=datetime.now(UTC),
        )
        delivered = await self._hub.broadcast(team_id, message.to_message())
        logger.info(
            "Saved %s for team %d (%d items, user=%s, %d receivers)",
            field.value, team_id, len(payload), origin_user_id, delivered,
        )
        return message

    async def handle_read(
        self, team_id: int | None, field_name: str | DataField
    ) -> list[Any]:
        """Read a bucket.

        Args:
            team_id: Team ID, or None when the user has no team yet.
            field_name: Field name or legacy alias.

        Returns:
            Stored array; empty when the team has no team or no data.

        Raises:
            UnknownFieldError: If the field is not recognized.
        """
        field = parse_field(field_name)
        if team_id is None:
            return []
        return await run_in_threadpool(self._db.read_bucket, team_id, field)

    async def handle_read_all(self, team_id: int | None) -> dict[str, list[Any]]:
        """Read the aggregate subset of buckets.

        Args:
            team_id: Team ID, or None when the user has no team yet.

        Returns:
            Mapping of field name to stored array for AGGREGATE_FIELDS.
        """
        if team_id is None:
            return {field.value: [] for field in AGGREGATE_FIELDS}
        return await run_in_threadpool(self._db.read_fields, team_id, AGGREGATE_FIELDS)
