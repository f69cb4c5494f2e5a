"""
Test fixtures for the ingestion layer.

IMPORTANT: All network access must be mocked.
Never open a real WebSocket or HTTP connection in tests.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from effluent_monitor.ingestion.models import ParameterSnapshot
from effluent_monitor.ingestion.staleness import DeviceStatusTracker
from effluent_monitor.ingestion.telemetry import TelemetryWebSocket


# =============================================================================
# Time Fixtures
# =============================================================================


@pytest.fixture
def now():
    """Current time in UTC."""
    return datetime.now(timezone.utc)


@pytest.fixture
def minutes_ago(now):
    """Factory: datetime N minutes before now."""
    def _minutes_ago(minutes: float) -> datetime:
        return now - timedelta(minutes=minutes)
    return _minutes_ago


# =============================================================================
# Model Fixtures
# =============================================================================


@pytest.fixture
def sample_snapshot(now):
    """A snapshot with every core parameter inside its operating range."""
    return ParameterSnapshot(
        device_id="WW-001",
        parameters={
            "pH": 7.4,
            "temperature": 48.0,
            "TSS": 120.0,
            "COD": 300.0,
            "BOD": 90.0,
            "hardness": 180.0,
        },
        timestamp=now,
    )


@pytest.fixture
def tracker():
    return DeviceStatusTracker(threshold_minutes=10)


# =============================================================================
# Telemetry Fixtures
# =============================================================================


@pytest.fixture
def feed():
    """Telemetry feed that is never connected."""
    return TelemetryWebSocket("wss://telemetry.test/ws")


@pytest.fixture
def connected_feed(feed):
    """Telemetry feed with a mocked, connected socket."""
    from effluent_monitor.ingestion.telemetry import FeedState

    feed._ws = MagicMock()
    feed._ws.send = AsyncMock()
    feed._state = FeedState.CONNECTED
    return feed


# =============================================================================
# HTTP Fixtures
# =============================================================================


def make_response(status: int = 200, json_data=None, text: str = ""):
    """Mock aiohttp response usable as an async context manager."""
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=json_data)
    response.text = AsyncMock(return_value=text)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    return context


@pytest.fixture
def response_factory():
    return make_response


@pytest.fixture
def mock_session():
    """Mock aiohttp.ClientSession."""
    session = MagicMock()
    session.close = AsyncMock()
    return session
