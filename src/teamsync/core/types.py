"""Shared types for teamsync.

This module defines enums used by the client sync components.
"""

from __future__ import annotations

from enum import Enum


class BucketState(str, Enum):
    """Lifecycle state of a client-side bucket controller."""

    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"  # Last load came from the server
    FALLBACK = "fallback"  # Last load failed; value comes from the local cache


class ChannelState(str, Enum):
    """Connection state of the realtime channel."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class EchoPolicy(str, Enum):
    """How a controller recognizes broadcasts of its own writes.

    USER drops every message whose origin user is the current user, which
    also hides writes made by the same user in another session until the
    next poll. CLIENT drops only messages from this client instance.
    """

    USER = "user"
    CLIENT = "client"
