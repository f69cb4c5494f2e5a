"""
Tests for outbound notification gateways.

These tests verify:
- Channel-specific payload shapes
- Endpoint URLs per channel
- Non-2xx, failed bodies and transport errors become GatewayError
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from effluent_monitor.alerting import (
    Channel,
    Notification,
    NotificationGateway,
    NotificationLevel,
    build_payload,
)
from effluent_monitor.errors import GatewayError


@pytest.fixture
def notification():
    return Notification(
        id="abc123",
        title="URGENT: Unusual Conditions Detected",
        message="Device Dye House 1 has 1 parameters outside safe limits: pH (10.1) above critical maximum",
        level=NotificationLevel.CRITICAL,
        device_id="WW-001",
    )


def make_response(status=200, json_data=None, text=""):
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=json_data)
    response.text = AsyncMock(return_value=text)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    return context


@pytest.fixture
def session():
    session = MagicMock()
    session.close = AsyncMock()
    return session


@pytest.fixture
def gateway(session):
    return NotificationGateway("https://app.test", session=session)


class TestPayloads:
    """Tests for build_payload."""

    def test_push(self, notification):
        assert build_payload(Channel.PUSH, notification) == {
            "title": notification.title,
            "body": notification.message,
            "deviceId": "WW-001",
            "level": "critical",
        }

    def test_email(self, notification):
        payload = build_payload(Channel.EMAIL, notification)

        assert payload["subject"] == notification.title
        assert payload["text"] == notification.message
        assert payload["deviceId"] == "WW-001"

    @pytest.mark.parametrize("channel", [Channel.SMS, Channel.WHATSAPP])
    def test_text_channels_single_message(self, channel, notification):
        payload = build_payload(channel, notification)

        assert payload["message"] == f"{notification.title}: {notification.message}"
        assert "title" not in payload


class TestSend:
    """Tests for NotificationGateway.send."""

    @pytest.mark.asyncio
    async def test_posts_to_channel_endpoint(self, gateway, session, notification):
        session.post.return_value = make_response(200, {"success": True, "recipients": 2})

        result = await gateway.send(Channel.SMS, notification)

        assert result.channel == Channel.SMS
        assert result.recipients == 2
        url = session.post.call_args[0][0]
        assert url == "https://app.test/api/notifications/sms"
        assert session.post.call_args[1]["json"]["deviceId"] == "WW-001"

    @pytest.mark.asyncio
    async def test_path_override(self, session, notification):
        gateway = NotificationGateway(
            "https://app.test/",
            session=session,
            paths={Channel.WHATSAPP: "/hooks/wa"},
        )
        session.post.return_value = make_response(200, {"success": True})

        await gateway.send(Channel.WHATSAPP, notification)

        assert session.post.call_args[0][0] == "https://app.test/hooks/wa"

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self, gateway, session, notification):
        session.post.return_value = make_response(502, text="bad gateway")

        with pytest.raises(GatewayError) as exc_info:
            await gateway.send(Channel.EMAIL, notification)

        assert exc_info.value.status_code == 502
        assert exc_info.value.channel == "email"

    @pytest.mark.asyncio
    async def test_unsuccessful_body_raises(self, gateway, session, notification):
        session.post.return_value = make_response(200, {"success": False, "error": "no phone"})

        with pytest.raises(GatewayError, match="no phone"):
            await gateway.send(Channel.SMS, notification)

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, gateway, session, notification):
        session.post.side_effect = aiohttp.ClientConnectionError("refused")

        with pytest.raises(GatewayError):
            await gateway.send(Channel.PUSH, notification)

    @pytest.mark.asyncio
    async def test_timeout_raises(self, gateway, session, notification):
        session.post.side_effect = asyncio.TimeoutError()

        with pytest.raises(GatewayError, match="timed out"):
            await gateway.send(Channel.PUSH, notification)

    @pytest.mark.asyncio
    async def test_injected_session_not_closed(self, gateway, session):
        await gateway.close()

        session.close.assert_not_called()
