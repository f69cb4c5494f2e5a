"""
Monitoring layer test fixtures.

FakeTelemetry stands in for the WebSocket feed: tests push snapshots and
errors by hand and inspect the live subscriptions.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List
from unittest.mock import AsyncMock, MagicMock

import pytest

from effluent_monitor.alerting import AlertDispatcher, NotificationFeed
from effluent_monitor.ingestion.models import ParameterSnapshot
from effluent_monitor.monitoring import MonitoringOrchestrator, OrchestratorConfig
from effluent_monitor.storage.models import DeviceRecord


class FakeTelemetry:
    """In-memory TelemetrySource."""

    def __init__(self) -> None:
        self.subscriptions: Dict[str, List[tuple]] = {}
        self.subscribe_calls = 0
        self.is_connected = True
        self.last_message_time = datetime.now(timezone.utc)

    async def subscribe(self, device_id, on_update, on_error):
        self.subscribe_calls += 1
        entry = (on_update, on_error)
        self.subscriptions.setdefault(device_id, []).append(entry)

        async def unsubscribe():
            subs = self.subscriptions.get(device_id, [])
            if entry in subs:
                subs.remove(entry)
            if not subs:
                self.subscriptions.pop(device_id, None)

        return unsubscribe

    def active_count(self, device_id: str) -> int:
        return len(self.subscriptions.get(device_id, []))

    async def push(self, snapshot: ParameterSnapshot) -> None:
        for on_update, _ in list(self.subscriptions.get(snapshot.device_id, [])):
            await on_update(snapshot)

    async def fail(self, device_id: str, error: Exception) -> None:
        for _, on_error in list(self.subscriptions.get(device_id, [])):
            await on_error(error)


@pytest.fixture
def telemetry():
    return FakeTelemetry()


@pytest.fixture
def feed():
    return NotificationFeed()


@pytest.fixture
def dispatcher(feed):
    """Feed-only dispatcher (no external gateway)."""
    return AlertDispatcher(feed=feed)


@pytest.fixture
def audit_log():
    log = MagicMock()
    log.append = AsyncMock(return_value=1)
    return log


@pytest.fixture
def devices():
    directory = MagicMock()
    records = {
        "WW-001": DeviceRecord(device_id="WW-001", owner_id="user-42", name="Dye House 1"),
        "WW-002": DeviceRecord(device_id="WW-002", owner_id="user-42", name="Rinse Line"),
    }
    directory.get_device = AsyncMock(side_effect=lambda device_id: records.get(device_id))
    directory.list_for_owner = AsyncMock(return_value=list(records.values()))
    return directory


@pytest.fixture
def orchestrator(telemetry, dispatcher, audit_log, devices):
    return MonitoringOrchestrator(
        telemetry=telemetry,
        dispatcher=dispatcher,
        audit_log=audit_log,
        devices=devices,
        config=OrchestratorConfig(audit_log_timeout_seconds=0.5),
    )


@pytest.fixture
def snapshot():
    """Factory for snapshots; age_minutes moves the timestamp into the past."""
    def _make(parameters, device_id="WW-001", age_minutes=0.0):
        return ParameterSnapshot(
            device_id=device_id,
            parameters=parameters,
            timestamp=datetime.now(timezone.utc) - timedelta(minutes=age_minutes),
        )
    return _make


@pytest.fixture
def settle(orchestrator):
    """Wait until each session's queue has been fully processed."""
    async def _settle(*device_ids) -> None:
        for device_id in device_ids:
            session = orchestrator.session(device_id)
            if session is not None:
                await session.queue.join()
    return _settle
