"""Application wiring between the HTTP layer and the realtime hub."""

from __future__ import annotations

from parley.realtime import EventRouter, get_hub

from .membership import SqlMembershipResolver

event_router = EventRouter(get_hub(), SqlMembershipResolver())


def get_event_router() -> EventRouter:
    return event_router
