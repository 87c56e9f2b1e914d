"""Realtime metrics and the Prometheus text registry serving them."""

from . import metrics, registry
from .metrics import REALTIME_METRICS
from .registry import PROMETHEUS_CONTENT_TYPE

__all__ = ["PROMETHEUS_CONTENT_TYPE", "REALTIME_METRICS", "metrics", "registry"]
