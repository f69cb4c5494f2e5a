"""
Outbound notification gateways.

One HTTP endpoint per channel. Each accepts a JSON payload and answers
``{"success": true, "recipients": N}``. Anything else is a GatewayError.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import aiohttp

from effluent_monitor.errors import GatewayError

from .notifications import Notification

logger = logging.getLogger(__name__)


class Channel(str, Enum):
    """External delivery channel."""
    PUSH = "push"
    EMAIL = "email"
    SMS = "sms"
    WHATSAPP = "whatsapp"


DEFAULT_PATHS: Dict[Channel, str] = {
    Channel.PUSH: "/api/notifications/push",
    Channel.EMAIL: "/api/notifications/email",
    Channel.SMS: "/api/notifications/sms",
    Channel.WHATSAPP: "/api/notifications/whatsapp",
}


@dataclass(frozen=True)
class GatewayResult:
    """Successful delivery acknowledgement."""

    channel: Channel
    recipients: Optional[int] = None


def build_payload(channel: Channel, notification: Notification) -> Dict[str, Any]:
    """
    Channel-appropriate request body.

    push:      title + body
    email:     subject + text
    sms/chat:  single "title: message" string
    """
    common = {
        "deviceId": notification.device_id,
        "level": notification.level.value,
    }

    if channel == Channel.PUSH:
        return {"title": notification.title, "body": notification.message, **common}

    if channel == Channel.EMAIL:
        return {"subject": notification.title, "text": notification.message, **common}

    return {"message": f"{notification.title}: {notification.message}", **common}


class NotificationGateway:
    """
    Async HTTP client for the notification endpoints.

    No retries: delivery is best-effort and a failed call is reported to the
    caller as GatewayError.

    Usage:
        async with NotificationGateway("https://app.example") as gateway:
            result = await gateway.send(Channel.SMS, notification)
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
        paths: Optional[Dict[Channel, str]] = None,
    ):
        """
        Args:
            base_url: Root URL of the gateway service
            session: Optional aiohttp session (created lazily if not provided)
            timeout: Total request timeout in seconds
            paths: Per-channel path overrides
        """
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._paths = {**DEFAULT_PATHS, **(paths or {})}

    async def __aenter__(self) -> "NotificationGateway":
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    def url_for(self, channel: Channel) -> str:
        return f"{self._base_url}{self._paths[channel]}"

    async def send(self, channel: Channel, notification: Notification) -> GatewayResult:
        """
        Deliver a notification through one channel.

        Raises:
            GatewayError: non-2xx status, unsuccessful body, timeout or transport error
        """
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

        payload = build_payload(channel, notification)
        url = self.url_for(channel)

        try:
            async with self._session.post(url, json=payload) as response:
                if not 200 <= response.status < 300:
                    text = await response.text()
                    raise GatewayError(
                        f"{channel.value} gateway returned {response.status}: {text[:200]}",
                        channel=channel.value,
                        status_code=response.status,
                    )

                try:
                    body = await response.json()
                except (aiohttp.ContentTypeError, ValueError):
                    body = {}

        except asyncio.CancelledError:
            raise

        except asyncio.TimeoutError:
            raise GatewayError(f"{channel.value} gateway timed out", channel=channel.value)

        except aiohttp.ClientError as e:
            raise GatewayError(f"{channel.value} gateway unreachable: {e}", channel=channel.value)

        if isinstance(body, dict) and body.get("success") is False:
            raise GatewayError(
                f"{channel.value} gateway reported failure: {body.get('error', 'unknown')}",
                channel=channel.value,
                status_code=response.status,
            )

        recipients = body.get("recipients") if isinstance(body, dict) else None
        logger.info(f"{channel.value} notification delivered (recipients={recipients})")
        return GatewayResult(channel=channel, recipients=recipients)
