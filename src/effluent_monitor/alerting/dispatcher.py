"""
Alert Dispatcher - in-app feed plus best-effort multi-channel fan-out.

Every notification lands in the in-process feed. Critical notifications are
additionally fanned out to the external gateways the target user has
enabled. Fan-out runs as a background task: the caller never waits on a
gateway, and a failing channel never stops the other channels.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Set

from effluent_monitor.storage.models import NotificationPreferences

from .gateways import Channel, GatewayResult
from .notifications import (
    FeedCallback,
    Notification,
    NotificationFeed,
    NotificationLevel,
)

logger = logging.getLogger(__name__)


class PreferenceStore(Protocol):
    async def get_preferences(self, user_id: str) -> NotificationPreferences:
        ...


class ChannelGateway(Protocol):
    async def send(self, channel: Channel, notification: Notification) -> GatewayResult:
        ...


@dataclass
class AlertRecord:
    """Tracks when an external fan-out was last issued for a key."""

    key: str
    last_sent: float  # Unix timestamp
    count: int = 1


def enabled_channels(preferences: NotificationPreferences) -> List[Channel]:
    """Channels switched on in a preference set, in fan-out order."""
    flags = [
        (Channel.PUSH, preferences.push_enabled),
        (Channel.EMAIL, preferences.email_enabled),
        (Channel.SMS, preferences.sms_enabled),
        (Channel.WHATSAPP, preferences.whatsapp_enabled),
    ]
    return [channel for channel, enabled in flags if enabled]


class AlertDispatcher:
    """
    Routes notifications to the in-app feed and external channels.

    Usage:
        dispatcher = AlertDispatcher(
            feed=NotificationFeed(),
            gateway=NotificationGateway("https://app.example"),
            preferences=UserRepository(db),
        )

        dispatcher.add_notification(
            title="Critical Fault Detected",
            message="2 critical issue(s) found in device WW-001",
            level=NotificationLevel.CRITICAL,
            device_id="WW-001",
            user_id="user-42",
        )

        await dispatcher.drain()  # on shutdown
    """

    def __init__(
        self,
        feed: Optional[NotificationFeed] = None,
        gateway: Optional[ChannelGateway] = None,
        preferences: Optional[PreferenceStore] = None,
        channel_timeout: float = 15.0,
        dedup_cooldown_seconds: float = 0.0,
    ) -> None:
        """
        Args:
            feed: In-process feed (a fresh one is created if omitted)
            gateway: External gateway client; None disables fan-out
            preferences: User preference store; None means all channels
            channel_timeout: Upper bound for a single channel call
            dedup_cooldown_seconds: Suppress repeat fan-out of the same
                (device, title) within this window. 0 disables.
        """
        self._feed = feed or NotificationFeed()
        self._gateway = gateway
        self._preferences = preferences
        self._channel_timeout = channel_timeout
        self._dedup_cooldown = dedup_cooldown_seconds

        self._pending: Set[asyncio.Task] = set()
        self._sent_alerts: Dict[str, AlertRecord] = {}

    @property
    def feed(self) -> NotificationFeed:
        return self._feed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # =========================================================================
    # Feed operations
    # =========================================================================

    def add_notification(
        self,
        title: str,
        message: str,
        level: NotificationLevel,
        device_id: str,
        user_id: Optional[str] = None,
    ) -> Notification:
        """
        Store a notification and, if critical, schedule external fan-out.

        Returns the stored notification immediately; fan-out happens in the
        background.
        """
        notification = self._feed.add(title, message, level, device_id)

        if notification.level == NotificationLevel.CRITICAL:
            self._schedule_fan_out(notification, user_id)

        return notification

    def subscribe(self, callback: FeedCallback) -> Callable[[], None]:
        return self._feed.subscribe(callback)

    def mark_as_read(self, notification_id: str) -> bool:
        return self._feed.mark_as_read(notification_id)

    def mark_all_as_read(self) -> None:
        self._feed.mark_all_as_read()

    def get_notifications(self) -> List[Notification]:
        return self._feed.get_notifications()

    def get_unread_count(self) -> int:
        return self._feed.get_unread_count()

    # =========================================================================
    # External fan-out
    # =========================================================================

    def _schedule_fan_out(self, notification: Notification, user_id: Optional[str]) -> None:
        if self._gateway is None:
            logger.debug("No gateway configured, skipping external fan-out")
            return

        dedup_key = f"{notification.device_id}:{notification.title}"
        if self._dedup_cooldown > 0:
            if not self._should_send(dedup_key, self._dedup_cooldown):
                logger.debug(f"Deduplicated fan-out: {dedup_key}")
                return
            self._record_sent(dedup_key)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                f"No running event loop, external fan-out skipped for {notification.id}"
            )
            return

        task = loop.create_task(
            self.fan_out(notification, user_id),
            name=f"fan_out_{notification.id[:8]}",
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def fan_out(
        self,
        notification: Notification,
        user_id: Optional[str] = None,
    ) -> Dict[Channel, bool]:
        """
        Send a notification through every channel the user has enabled.

        Channels are called concurrently. Each failure is logged and
        isolated; nothing is retried.

        Returns:
            Channel -> delivered flag for each attempted channel
        """
        if self._gateway is None:
            return {}

        preferences = await self._load_preferences(user_id)
        channels = enabled_channels(preferences)

        if not channels:
            logger.info(f"All channels disabled for user {user_id}, nothing to send")
            return {}

        results = await asyncio.gather(
            *(self._send_channel(channel, notification) for channel in channels)
        )
        outcome = dict(zip(channels, results))

        delivered = [c.value for c, ok in outcome.items() if ok]
        failed = [c.value for c, ok in outcome.items() if not ok]
        logger.info(
            f"Fan-out for device {notification.device_id}: "
            f"delivered={delivered} failed={failed}"
        )
        return outcome

    async def _load_preferences(self, user_id: Optional[str]) -> NotificationPreferences:
        if self._preferences is None or not user_id:
            return NotificationPreferences()

        try:
            return await self._preferences.get_preferences(user_id)
        except Exception as e:
            logger.error(
                f"Error fetching notification preferences for {user_id}: {e}; "
                f"defaulting to all channels"
            )
            return NotificationPreferences()

    async def _send_channel(self, channel: Channel, notification: Notification) -> bool:
        try:
            await asyncio.wait_for(
                self._gateway.send(channel, notification),
                timeout=self._channel_timeout,
            )
            return True
        except asyncio.TimeoutError:
            logger.error(f"{channel.value} notification timed out after {self._channel_timeout}s")
            return False
        except Exception as e:
            logger.error(f"Error sending {channel.value} notification: {e}")
            return False

    async def drain(self) -> None:
        """Wait for every in-flight fan-out to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # =========================================================================
    # Deduplication
    # =========================================================================

    def _should_send(self, key: str, cooldown: float) -> bool:
        record = self._sent_alerts.get(key)
        if record is None:
            return True
        return (time.time() - record.last_sent) >= cooldown

    def _record_sent(self, key: str) -> None:
        now = time.time()
        record = self._sent_alerts.get(key)
        if record:
            record.last_sent = now
            record.count += 1
        else:
            self._sent_alerts[key] = AlertRecord(key=key, last_sent=now)

    def clear_dedup_cache(self) -> None:
        self._sent_alerts.clear()

    def get_alert_stats(self) -> Dict[str, int]:
        return {
            "unique_alerts": len(self._sent_alerts),
            "total_sent": sum(r.count for r in self._sent_alerts.values()),
            "in_flight": len(self._pending),
        }
