"""Synchronized bucket API routes.

Reads default to an empty array when the team has no data yet. Writes
replace the whole bucket and are broadcast to the team's realtime
connections, including the writer's own.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Header, HTTPException, status

from teamsync.core.fields import UnknownFieldError
from teamsync.server.api.deps import get_current_user, get_gateway
from teamsync.server.gateway import InvalidPayloadError, SyncGateway
from teamsync.server.models import User
from teamsync.server.schemas import AllDataResponse, BucketResponse, WriteResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/data", tags=["data"])


@router.get("/all", response_model=AllDataResponse)
async def get_all_data(
    gateway: SyncGateway = Depends(get_gateway),
    user: User = Depends(get_current_user),
) -> AllDataResponse:
    """Read the aggregate subset of buckets for the user's team."""
    return AllDataResponse(data=await gateway.handle_read_all(user.team_id))


@router.get("/{field_name}", response_model=BucketResponse)
async def get_data(
    field_name: str,
    gateway: SyncGateway = Depends(get_gateway),
    user: User = Depends(get_current_user),
) -> BucketResponse:
    """Read one bucket of the user's team."""
    try:
        data = await gateway.handle_read(user.team_id, field_name)
    except UnknownFieldError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    return BucketResponse(data=data)


@router.post("/{field_name}", response_model=WriteResponse)
async def save_data(
    field_name: str,
    payload: list[Any] = Body(...),
    client_id: str | None = Header(default=None, alias="X-Client-Id"),
    gateway: SyncGateway = Depends(get_gateway),
    user: User = Depends(get_current_user),
) -> WriteResponse:
    """Replace one bucket of the user's team and broadcast the change."""
    if user.team_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User is not a member of any team",
        )
    try:
        await gateway.handle_write(
            team_id=user.team_id,
            field_name=field_name,
            payload=payload,
            origin_user_id=user.id,
            origin_client_id=client_id,
        )
    except (UnknownFieldError, InvalidPayloadError) as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    return WriteResponse()
