"""
Alerting test fixtures.

Gateways and preference stores are mocks; no test sends a real notification.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from effluent_monitor.alerting import (
    AlertDispatcher,
    Channel,
    GatewayResult,
    NotificationFeed,
    NotificationLevel,
)
from effluent_monitor.storage.models import NotificationPreferences


@pytest.fixture
def feed():
    return NotificationFeed(max_notifications=100)


@pytest.fixture
def mock_gateway():
    """Gateway whose every channel succeeds."""
    gateway = MagicMock()

    async def send(channel, notification):
        return GatewayResult(channel=channel, recipients=1)

    gateway.send = AsyncMock(side_effect=send)
    return gateway


@pytest.fixture
def sms_only_preferences():
    store = MagicMock()
    store.get_preferences = AsyncMock(return_value=NotificationPreferences(
        push_enabled=False,
        email_enabled=False,
        sms_enabled=True,
        whatsapp_enabled=False,
    ))
    return store


@pytest.fixture
def failing_preferences():
    store = MagicMock()
    store.get_preferences = AsyncMock(side_effect=RuntimeError("users table unavailable"))
    return store


@pytest.fixture
def dispatcher(feed, mock_gateway):
    return AlertDispatcher(feed=feed, gateway=mock_gateway, channel_timeout=1.0)


@pytest.fixture
def critical_kwargs():
    return {
        "title": "Critical Fault Detected",
        "message": "2 critical issue(s) found in device Dye House 1",
        "level": NotificationLevel.CRITICAL,
        "device_id": "WW-001",
        "user_id": "user-42",
    }


def channels_called(gateway) -> list:
    """Channels passed to gateway.send, in call order."""
    return [c[0][0] for c in gateway.send.call_args_list]


@pytest.fixture
def called_channels():
    return channels_called


@pytest.fixture
def all_channels():
    return [Channel.PUSH, Channel.EMAIL, Channel.SMS, Channel.WHATSAPP]
