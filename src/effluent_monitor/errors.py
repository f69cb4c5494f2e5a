"""
Exception hierarchy shared across layers.
"""
from __future__ import annotations

from typing import Optional


class EffluentMonitorError(Exception):
    """Base exception for effluent monitor errors."""
    pass


class TelemetryError(EffluentMonitorError):
    """Telemetry feed or payload error."""
    pass


class LatestDataError(EffluentMonitorError):
    """Fetching a device's latest snapshot failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GatewayError(EffluentMonitorError):
    """An outbound notification channel rejected or failed a delivery."""

    def __init__(
        self,
        message: str,
        channel: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.channel = channel
        self.status_code = status_code
