"""
Ingestion Layer - Live telemetry, on-demand reads, and device staleness.

This module provides:
    - ParameterSnapshot: One timestamped set of device readings
    - TelemetryWebSocket: Resilient push feed with per-device subscriptions
    - LatestDataClient: REST fetch of a device's latest snapshot
    - Staleness helpers: is_offline, time_since_offline, last_timestamp
    - DeviceStatusTracker: Last-seen bookkeeping per device

Parameter names are canonicalized here, once, so downstream rule tables
see a single spelling per quantity ("pH", "BOD", "temperature", ...).
"""

from .models import (
    PARAMETER_ALIASES,
    ParameterSnapshot,
    canonical_parameter_name,
    parse_timestamp,
)
from .staleness import (
    DEFAULT_OFFLINE_THRESHOLD_MINUTES,
    DeviceStatus,
    DeviceStatusTracker,
    is_offline,
    last_timestamp,
    time_since_offline,
)
from .telemetry import (
    ErrorCallback,
    FeedState,
    SnapshotCallback,
    TelemetrySource,
    TelemetryWebSocket,
    Unsubscribe,
)
from .client import LatestDataClient

__all__ = [
    # Models
    "ParameterSnapshot",
    "PARAMETER_ALIASES",
    "canonical_parameter_name",
    "parse_timestamp",
    # Staleness
    "DEFAULT_OFFLINE_THRESHOLD_MINUTES",
    "DeviceStatus",
    "DeviceStatusTracker",
    "is_offline",
    "last_timestamp",
    "time_since_offline",
    # Telemetry
    "TelemetrySource",
    "TelemetryWebSocket",
    "FeedState",
    "SnapshotCallback",
    "ErrorCallback",
    "Unsubscribe",
    # REST
    "LatestDataClient",
]
