"""Core module - Shared fields, messages, config and types."""

from teamsync.core.config import ServerConfig
from teamsync.core.fields import (
    AGGREGATE_FIELDS,
    LEGACY_ALIASES,
    DataField,
    UnknownFieldError,
    parse_field,
)
from teamsync.core.messages import SyncMessage
from teamsync.core.types import BucketState, ChannelState, EchoPolicy

__all__ = [
    # Config
    "ServerConfig",
    # Fields
    "AGGREGATE_FIELDS",
    "DataField",
    "LEGACY_ALIASES",
    "UnknownFieldError",
    "parse_field",
    # Messages
    "SyncMessage",
    # Types
    "BucketState",
    "ChannelState",
    "EchoPolicy",
]
