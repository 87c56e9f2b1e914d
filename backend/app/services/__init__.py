"""Application service helpers."""

from .membership import SqlMembershipResolver
from .realtime import event_router, get_event_router

__all__ = ["SqlMembershipResolver", "event_router", "get_event_router"]
