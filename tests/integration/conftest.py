"""
Integration test fixtures.

The telemetry feed is a real TelemetryWebSocket that never connects;
tests inject raw messages through its message handler.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest

from effluent_monitor.alerting import GatewayResult
from effluent_monitor.ingestion import TelemetryWebSocket
from effluent_monitor.storage.models import DeviceRecord, NotificationPreferences


@pytest.fixture
def telemetry_feed():
    return TelemetryWebSocket("wss://telemetry.test/ws")


@pytest.fixture
def gateway():
    gateway = MagicMock()

    async def send(channel, notification):
        return GatewayResult(channel=channel, recipients=1)

    gateway.send = AsyncMock(side_effect=send)
    return gateway


@pytest.fixture
def preference_store():
    store = MagicMock()
    store.get_preferences = AsyncMock(return_value=NotificationPreferences())
    return store


@pytest.fixture
def audit_log():
    log = MagicMock()
    log.append = AsyncMock(return_value=1)
    return log


@pytest.fixture
def device_directory():
    records = {
        "WW-001": DeviceRecord(device_id="WW-001", owner_id="user-42", name="Dye House 1"),
        "WW-002": DeviceRecord(device_id="WW-002", owner_id="user-42", name="Rinse Line"),
    }
    directory = MagicMock()
    directory.get_device = AsyncMock(side_effect=lambda device_id: records.get(device_id))
    directory.list_for_owner = AsyncMock(return_value=list(records.values()))
    return directory
