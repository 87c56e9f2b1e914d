"""Metric definitions for the realtime fan-out hub."""

from __future__ import annotations

from .registry import registry


realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of websocket connections currently registered with the hub.",
)

realtime_events_total = registry.counter(
    "realtime_events_total",
    "Events processed by the hub control loop.",
    label_names=("kind", "outcome"),
)

realtime_deliveries_total = registry.counter(
    "realtime_deliveries_total",
    "Frames placed on connection outbound queues.",
    label_names=("kind",),
)

realtime_disconnects_total = registry.counter(
    "realtime_disconnects_total",
    "Connections removed from the hub, by cause.",
    label_names=("reason",),
)

realtime_events_dropped_total = registry.counter(
    "realtime_events_dropped_total",
    "Events discarded before reaching the hub control loop.",
    label_names=("kind", "reason"),
)


REALTIME_METRICS = (
    realtime_connections,
    realtime_events_total,
    realtime_deliveries_total,
    realtime_disconnects_total,
    realtime_events_dropped_total,
)
