"""
Alerting Layer - Notification feed and multi-channel delivery.

This module provides:
    - NotificationFeed: In-process, newest-first feed with subscribers
    - Notification / NotificationLevel: Feed entries
    - AlertDispatcher: Feed + best-effort fan-out for critical notifications
    - NotificationGateway: aiohttp client for push/email/SMS/WhatsApp endpoints
    - Channel: External delivery channels

Fan-out Guarantees:
    - Runs in the background; callers never wait on a gateway
    - Each channel is isolated; one failure never blocks the others
    - Failures are logged, never retried, never surfaced to telemetry
    - Preference lookup failures fall back to all channels enabled
"""

from .notifications import (
    FeedCallback,
    Notification,
    NotificationFeed,
    NotificationLevel,
)
from .gateways import (
    Channel,
    GatewayResult,
    NotificationGateway,
    build_payload,
)
from .dispatcher import (
    AlertDispatcher,
    ChannelGateway,
    PreferenceStore,
    enabled_channels,
)

__all__ = [
    # Feed
    "Notification",
    "NotificationFeed",
    "NotificationLevel",
    "FeedCallback",
    # Gateways
    "Channel",
    "GatewayResult",
    "NotificationGateway",
    "build_payload",
    # Dispatcher
    "AlertDispatcher",
    "ChannelGateway",
    "PreferenceStore",
    "enabled_channels",
]
