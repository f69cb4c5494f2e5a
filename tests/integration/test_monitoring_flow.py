"""
End-to-end monitoring flow.

Real TelemetryWebSocket message handling, orchestrator, diagnosis, feed and
dispatcher; only the socket, the database and the HTTP gateways are mocked.
"""
import json
from unittest.mock import AsyncMock

import pytest

from effluent_monitor.alerting import AlertDispatcher, Channel, NotificationFeed
from effluent_monitor.errors import GatewayError
from effluent_monitor.monitoring import MonitoringOrchestrator
from effluent_monitor.storage.models import NotificationPreferences


@pytest.fixture
def system(telemetry_feed, gateway, preference_store, audit_log, device_directory):
    feed = NotificationFeed()
    dispatcher = AlertDispatcher(feed=feed, gateway=gateway, preferences=preference_store)
    orchestrator = MonitoringOrchestrator(
        telemetry=telemetry_feed,
        dispatcher=dispatcher,
        audit_log=audit_log,
        devices=device_directory,
    )
    return feed, dispatcher, orchestrator


async def deliver(feed_ws, orchestrator, device_id, payload):
    """Push a raw telemetry message and wait for its cycle to finish."""
    await feed_ws._handle_message(json.dumps({"device_id": device_id, **payload}))
    await orchestrator.session(device_id).queue.join()


class TestMonitoringFlow:
    """Telemetry in, audit + notification + fan-out out."""

    @pytest.mark.asyncio
    async def test_unusual_reading_reaches_sms(
        self, system, telemetry_feed, gateway, preference_store, audit_log,
    ):
        feed, dispatcher, orchestrator = system
        preference_store.get_preferences.return_value = NotificationPreferences(
            push_enabled=False, email_enabled=False, sms_enabled=True, whatsapp_enabled=False,
        )

        await orchestrator.start_monitoring_all_devices("user-42")
        await deliver(telemetry_feed, orchestrator, "WW-001", {"PH": 10.4, "Temperature": 50})
        await dispatcher.drain()

        # Audit
        entry = audit_log.append.call_args[0][0]
        assert entry.parameters["pH"] == 10.4
        assert entry.unusual_conditions == ["pH (10.4) above critical maximum"]

        # Feed
        notifications = feed.get_notifications()
        assert len(notifications) == 1
        assert notifications[0].title == "URGENT: Unusual Conditions Detected"
        assert "Dye House 1" in notifications[0].message

        # Fan-out
        assert [c[0][0] for c in gateway.send.call_args_list] == [Channel.SMS]
        preference_store.get_preferences.assert_called_once_with("user-42")

        await orchestrator.stop_all_monitoring()

    @pytest.mark.asyncio
    async def test_gateway_failure_does_not_affect_monitoring(
        self, system, telemetry_feed, gateway, audit_log,
    ):
        feed, dispatcher, orchestrator = system
        gateway.send = AsyncMock(side_effect=GatewayError("gateway down", status_code=503))

        await orchestrator.start_automated_monitoring("WW-001", "user-42")
        await deliver(telemetry_feed, orchestrator, "WW-001", {"TSS": 245})
        await dispatcher.drain()
        await deliver(telemetry_feed, orchestrator, "WW-001", {"TSS": 120})

        assert gateway.send.call_count == 4
        assert audit_log.append.call_count == 2
        assert orchestrator.is_active("WW-001")
        assert len(feed.get_notifications()) == 1

        await orchestrator.stop_all_monitoring()

    @pytest.mark.asyncio
    async def test_error_event_keeps_subscription(
        self, system, telemetry_feed, audit_log,
    ):
        feed, dispatcher, orchestrator = system

        await orchestrator.start("WW-001", "user-42")
        await telemetry_feed._handle_message(json.dumps({
            "type": "error", "device_id": "WW-001", "message": "sensor offline",
        }))

        assert orchestrator.session("WW-001").telemetry_errors == 1
        assert telemetry_feed.subscribed_devices == {"WW-001"}

        await deliver(telemetry_feed, orchestrator, "WW-001", {"pH": 7.2})
        assert audit_log.append.call_count == 1

        await orchestrator.stop_all_monitoring()

    @pytest.mark.asyncio
    async def test_stop_unsubscribes_from_feed(self, system, telemetry_feed, audit_log):
        feed, dispatcher, orchestrator = system

        await orchestrator.start("WW-001", "user-42")
        await orchestrator.stop("WW-001")

        assert telemetry_feed.subscribed_devices == set()

        # Messages for a stopped device go nowhere
        await telemetry_feed._handle_message(json.dumps({"device_id": "WW-001", "pH": 2.0}))
        audit_log.append.assert_not_called()
        assert feed.get_notifications() == []

    @pytest.mark.asyncio
    async def test_devices_are_isolated(self, system, telemetry_feed, audit_log):
        feed, dispatcher, orchestrator = system

        await orchestrator.start_all("user-42")
        await deliver(telemetry_feed, orchestrator, "WW-002", {"pH": 10.8})
        await deliver(telemetry_feed, orchestrator, "WW-001", {"pH": 7.0})
        await dispatcher.drain()

        notifications = feed.get_notifications()
        assert [n.device_id for n in notifications] == ["WW-002"]
        assert "Rinse Line" in notifications[0].message

        await orchestrator.stop_all()
