"""
In-process notification feed.

Backs the UI bell icon: a newest-first list of notifications with read
flags and synchronous change callbacks. Construct one per application (or
per test); there is no module-level instance.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    """Notification urgency."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class Notification:
    """A single feed entry. Only ``read`` ever changes after creation."""

    id: str
    title: str
    message: str
    level: NotificationLevel
    device_id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    read: bool = False


FeedCallback = Callable[[List[Notification]], None]


class NotificationFeed:
    """
    Newest-first notification feed with publish/subscribe.

    Subscribers receive a copy of the full list after every change. A
    subscriber that raises is logged and does not affect the others.

    Usage:
        feed = NotificationFeed(max_notifications=100)
        unsubscribe = feed.subscribe(lambda items: render(items))

        feed.add("High pH", "Device WW-001 ...", NotificationLevel.CRITICAL, "WW-001")
        feed.mark_all_as_read()
        unsubscribe()
    """

    DEFAULT_MAX_NOTIFICATIONS = 100

    def __init__(self, max_notifications: int = DEFAULT_MAX_NOTIFICATIONS) -> None:
        self._max_notifications = max_notifications
        self._notifications: List[Notification] = []
        self._subscribers: List[FeedCallback] = []

    def add(
        self,
        title: str,
        message: str,
        level: NotificationLevel,
        device_id: str,
    ) -> Notification:
        """Create a notification, prepend it, and notify subscribers."""
        notification = Notification(
            id=uuid.uuid4().hex,
            title=title,
            message=message,
            level=NotificationLevel(level),
            device_id=device_id,
        )

        self._notifications.insert(0, notification)
        if len(self._notifications) > self._max_notifications:
            dropped = len(self._notifications) - self._max_notifications
            del self._notifications[self._max_notifications:]
            logger.debug(f"Notification feed full, dropped {dropped} oldest")

        self._notify_subscribers()
        return replace(notification)

    def get_notifications(self) -> List[Notification]:
        """Copies of all notifications, newest first."""
        return [replace(n) for n in self._notifications]

    def get(self, notification_id: str) -> Optional[Notification]:
        for n in self._notifications:
            if n.id == notification_id:
                return replace(n)
        return None

    def get_unread_count(self) -> int:
        return sum(1 for n in self._notifications if not n.read)

    def mark_as_read(self, notification_id: str) -> bool:
        """Mark one notification read. Returns False if the id is unknown."""
        for n in self._notifications:
            if n.id == notification_id:
                n.read = True
                self._notify_subscribers()
                return True
        return False

    def mark_all_as_read(self) -> None:
        for n in self._notifications:
            n.read = True
        self._notify_subscribers()

    def subscribe(self, callback: FeedCallback) -> Callable[[], None]:
        """Register a change callback. The returned unsubscribe is idempotent."""
        self._subscribers.append(callback)
        subscribed = True

        def unsubscribe() -> None:
            nonlocal subscribed
            if subscribed:
                subscribed = False
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _notify_subscribers(self) -> None:
        snapshot = self.get_notifications()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(f"Notification subscriber failed: {e}")
