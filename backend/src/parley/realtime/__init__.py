"""Realtime fan-out of conversation events over websockets."""

from .connection import Connection, ConnectionState  # noqa: F401
from .events import Event, EventKind, encode_frame  # noqa: F401
from .hub import (  # noqa: F401
    HubStats,
    HubUnavailableError,
    RealtimeHub,
    get_hub,
    shutdown_realtime,
    startup_realtime,
)
from .router import (  # noqa: F401
    ConversationNotFoundError,
    EventRouter,
    MembershipResolver,
    RecipientResolutionError,
)

__all__ = [
    "Connection",
    "ConnectionState",
    "Event",
    "EventKind",
    "encode_frame",
    "RealtimeHub",
    "HubStats",
    "HubUnavailableError",
    "get_hub",
    "startup_realtime",
    "shutdown_realtime",
    "EventRouter",
    "MembershipResolver",
    "RecipientResolutionError",
    "ConversationNotFoundError",
]
