"""
Device staleness tracking.

A device is offline when its most recent reading is older than the
freshness window (10 minutes by default). A device that has never reported
is offline. Staleness only flags data; it never blocks diagnosis.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_OFFLINE_THRESHOLD_MINUTES = 10.0


def _utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_offline(
    last_timestamp: Optional[datetime],
    threshold_minutes: float = DEFAULT_OFFLINE_THRESHOLD_MINUTES,
    now: Optional[datetime] = None,
) -> bool:
    """
    Check whether a device is offline.

    Args:
        last_timestamp: Timestamp of the last reading, None if never seen
        threshold_minutes: Minutes without data before a device is offline
        now: Reference time (defaults to current UTC time)

    Returns:
        True if no reading exists or the reading is older than the threshold
    """
    if last_timestamp is None:
        return True

    now = _utc(now) if now else datetime.now(timezone.utc)
    age_minutes = (now - _utc(last_timestamp)).total_seconds() / 60.0
    return age_minutes > threshold_minutes


def time_since_offline(
    offline_since: Optional[datetime],
    now: Optional[datetime] = None,
) -> str:
    """Humanize how long ago a device went offline ("3 hours ago")."""
    if offline_since is None:
        return "Unknown"

    now = _utc(now) if now else datetime.now(timezone.utc)
    minutes = int((now - _utc(offline_since)).total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days} day{'s' if days > 1 else ''} ago"
    if hours > 0:
        return f"{hours} hour{'s' if hours > 1 else ''} ago"
    if minutes > 0:
        return f"{minutes} minute{'s' if minutes > 1 else ''} ago"
    return "Just now"


def _reading_time(reading: Any) -> Optional[datetime]:
    if isinstance(reading, datetime):
        return reading
    if isinstance(reading, dict):
        return reading.get("timestamp")
    return getattr(reading, "timestamp", None)


def last_timestamp(readings: Optional[Iterable[Any]]) -> Optional[datetime]:
    """
    Most recent timestamp in a list of readings.

    Readings may be datetimes, objects with a ``timestamp`` attribute, or
    dicts with a "timestamp" key. Returns None for an empty list.
    """
    if not readings:
        return None

    times = [_utc(t) for t in (_reading_time(r) for r in readings) if t is not None]
    return max(times) if times else None


@dataclass(frozen=True)
class DeviceStatus:
    """Reachability of a single device."""

    device_id: str
    online: bool
    last_seen: Optional[datetime]
    offline_since: Optional[datetime] = None

    @property
    def offline_for(self) -> str:
        return time_since_offline(self.offline_since) if not self.online else ""


class DeviceStatusTracker:
    """
    Remembers the latest reading time per device.

    The device goes offline at ``last_seen + threshold``; that instant is
    reported as ``offline_since``.

    Usage:
        tracker = DeviceStatusTracker(threshold_minutes=10)
        tracker.record("dev-1", snapshot.timestamp)
        tracker.status("dev-1").online
    """

    def __init__(self, threshold_minutes: float = DEFAULT_OFFLINE_THRESHOLD_MINUTES) -> None:
        self._threshold_minutes = threshold_minutes
        self._last_seen: Dict[str, datetime] = {}

    @property
    def threshold_minutes(self) -> float:
        return self._threshold_minutes

    def record(self, device_id: str, timestamp: datetime) -> None:
        """Record a reading, ignoring timestamps older than what is already known."""
        timestamp = _utc(timestamp)
        current = self._last_seen.get(device_id)
        if current is None or timestamp > current:
            self._last_seen[device_id] = timestamp

    def forget(self, device_id: str) -> None:
        self._last_seen.pop(device_id, None)

    def last_seen(self, device_id: str) -> Optional[datetime]:
        return self._last_seen.get(device_id)

    def is_offline(self, device_id: str, now: Optional[datetime] = None) -> bool:
        return is_offline(self._last_seen.get(device_id), self._threshold_minutes, now)

    def status(self, device_id: str, now: Optional[datetime] = None) -> DeviceStatus:
        seen = self._last_seen.get(device_id)
        offline = is_offline(seen, self._threshold_minutes, now)
        offline_since = None
        if offline and seen is not None:
            offline_since = seen + timedelta(minutes=self._threshold_minutes)
        return DeviceStatus(
            device_id=device_id,
            online=not offline,
            last_seen=seen,
            offline_since=offline_since,
        )

    def offline_devices(self, now: Optional[datetime] = None) -> List[str]:
        return [d for d in self._last_seen if self.is_offline(d, now)]
