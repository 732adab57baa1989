"""Client module - HTTP API, realtime channel, local cache and bucket sync."""

from teamsync.client.api import (
    APIClient,
    APIError,
    AuthenticationError,
    NotFoundError,
    TeamInfo,
    UserInfo,
    ValidationError,
)
from teamsync.client.cache import LocalCache
from teamsync.client.channel import ChannelConfig, RealtimeChannel
from teamsync.client.controller import BucketController
from teamsync.client.session import NoTeamError, SyncSession

__all__ = [
    # API
    "APIClient",
    "APIError",
    "AuthenticationError",
    "NotFoundError",
    "TeamInfo",
    "UserInfo",
    "ValidationError",
    # Cache
    "LocalCache",
    # Realtime
    "ChannelConfig",
    "RealtimeChannel",
    # Sync
    "BucketController",
    "NoTeamError",
    "SyncSession",
]
