"""
WebSocket telemetry feed for live device parameter snapshots.

Features:
    - Auto-reconnect with exponential backoff
    - Heartbeat monitoring (detect stale connections)
    - Per-device subscriptions that persist across reconnects
    - Transport errors reported to subscribers without dropping them

Subscribers register per device and get back an async unsubscribe callable:

    unsubscribe = await feed.subscribe("dev-1", on_update, on_error)
    ...
    await unsubscribe()
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Protocol

import websockets
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedError,
    ConnectionClosedOK,
)

from effluent_monitor.errors import TelemetryError

from .models import ParameterSnapshot

logger = logging.getLogger(__name__)


class FeedState(str, Enum):
    """WebSocket connection state."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    STOPPING = "stopping"


# Type aliases for callbacks
SnapshotCallback = Callable[[ParameterSnapshot], Awaitable[None]]
ErrorCallback = Callable[[Exception], Awaitable[None]]
Unsubscribe = Callable[[], Awaitable[None]]


class TelemetrySource(Protocol):
    """Anything that can push live snapshots for a device."""

    async def subscribe(
        self,
        device_id: str,
        on_update: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        ...


@dataclass(eq=False)
class _Subscription:
    device_id: str
    on_update: SnapshotCallback
    on_error: ErrorCallback


class TelemetryWebSocket:
    """
    Resilient WebSocket client for device telemetry.

    One connection multiplexes every subscribed device. Messages look like:

        {"event_type": "snapshot", "device_id": "dev-1",
         "timestamp": 1718000000, "parameters": {"PH": 7.2, "TSS": 140}}

    Arrays of such events are accepted as well.

    Usage:
        feed = TelemetryWebSocket(url="wss://telemetry.example/ws")
        await feed.start()
        unsubscribe = await feed.subscribe("dev-1", on_update, on_error)
        ...
        await feed.stop()
    """

    def __init__(
        self,
        url: str,
        heartbeat_timeout: float = 120.0,
        initial_reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 60.0,
        reconnect_multiplier: float = 2.0,
    ):
        """
        Initialize the telemetry feed.

        Args:
            url: WebSocket endpoint of the telemetry service
            heartbeat_timeout: Seconds without message before reconnect
            initial_reconnect_delay: Initial delay before reconnect attempt
            max_reconnect_delay: Maximum delay between reconnect attempts
            reconnect_multiplier: Multiplier for exponential backoff
        """
        self._url = url
        self._heartbeat_timeout = heartbeat_timeout
        self._initial_reconnect_delay = initial_reconnect_delay
        self._max_reconnect_delay = max_reconnect_delay
        self._reconnect_multiplier = reconnect_multiplier

        self._state = FeedState.DISCONNECTED
        self._ws = None
        self._subscriptions: Dict[str, List[_Subscription]] = {}

        self._current_reconnect_delay = initial_reconnect_delay
        self._reconnect_count = 0

        self._receive_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

        self._last_message_time: Optional[datetime] = None

    @property
    def state(self) -> FeedState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == FeedState.CONNECTED

    @property
    def subscribed_devices(self) -> set[str]:
        return set(self._subscriptions)

    @property
    def reconnect_count(self) -> int:
        return self._reconnect_count

    @property
    def last_message_time(self) -> Optional[datetime]:
        """UTC time of the last received message."""
        return self._last_message_time

    def _set_state(self, state: FeedState) -> None:
        if self._state != state:
            logger.info(f"Telemetry feed state: {self._state.value} -> {state.value}")
            self._state = state

    async def start(self) -> None:
        """Connect and start receiving. Reconnects automatically until stop()."""
        if self._state != FeedState.DISCONNECTED:
            logger.warning(f"Cannot start: already in state {self._state.value}")
            return

        self._stop_event.clear()
        await self._connect()

    async def stop(self) -> None:
        """Close the connection and cancel the receive loop."""
        if self._state == FeedState.DISCONNECTED:
            return

        logger.info("Stopping telemetry feed...")
        self._set_state(FeedState.STOPPING)
        self._stop_event.set()

        if self._receive_task:
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
            self._receive_task = None

        if self._ws:
            try:
                await self._ws.close()
            except Exception as e:
                logger.warning(f"Error closing telemetry socket: {e}")
            self._ws = None

        self._set_state(FeedState.DISCONNECTED)
        logger.info("Telemetry feed stopped")

    # =========================================================================
    # Subscriptions
    # =========================================================================

    async def subscribe(
        self,
        device_id: str,
        on_update: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        """
        Subscribe to live snapshots for a device.

        Returns an async callable that removes this subscription. Calling it
        more than once is harmless.
        """
        subscription = _Subscription(device_id, on_update, on_error)
        first_for_device = device_id not in self._subscriptions
        self._subscriptions.setdefault(device_id, []).append(subscription)

        if first_for_device and self.is_connected:
            await self._send({"type": "subscribe", "device_ids": [device_id]})

        async def unsubscribe() -> None:
            await self._remove(subscription)

        return unsubscribe

    async def _remove(self, subscription: _Subscription) -> None:
        subs = self._subscriptions.get(subscription.device_id)
        if not subs or subscription not in subs:
            return

        subs.remove(subscription)
        if not subs:
            del self._subscriptions[subscription.device_id]
            if self.is_connected:
                await self._send({"type": "unsubscribe", "device_ids": [subscription.device_id]})

    async def _send(self, message: dict) -> None:
        if not self._ws:
            return
        try:
            await self._ws.send(json.dumps(message))
            logger.debug(f"Sent {message['type']} for {len(message['device_ids'])} devices")
        except Exception as e:
            logger.error(f"Failed to send {message['type']}: {e}")

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def _connect(self) -> None:
        self._set_state(FeedState.CONNECTING)

        try:
            self._ws = await websockets.connect(
                self._url,
                ping_interval=20,
                ping_timeout=10,
                close_timeout=5,
            )

            self._last_message_time = datetime.now(timezone.utc)
            self._current_reconnect_delay = self._initial_reconnect_delay

            self._set_state(FeedState.CONNECTED)
            logger.info(f"Connected to {self._url}")

            if self._subscriptions:
                await self._send({"type": "subscribe", "device_ids": sorted(self._subscriptions)})

            self._receive_task = asyncio.create_task(self._receive_loop())

        except Exception as e:
            logger.error(f"Failed to connect to telemetry feed: {e}")
            await self._broadcast_error(TelemetryError(f"Connection failed: {e}"))
            self._receive_task = asyncio.create_task(self._schedule_reconnect())

    async def _receive_loop(self) -> None:
        try:
            while not self._stop_event.is_set() and self._ws:
                try:
                    message = await asyncio.wait_for(
                        self._ws.recv(),
                        timeout=self._heartbeat_timeout,
                    )
                    self._last_message_time = datetime.now(timezone.utc)
                    await self._handle_message(message)

                except asyncio.TimeoutError:
                    logger.warning(
                        f"No telemetry in {self._heartbeat_timeout}s, reconnecting..."
                    )
                    if self._ws:
                        try:
                            await self._ws.close()
                        except Exception as close_err:
                            logger.debug(f"Error closing stale socket: {close_err}")
                        self._ws = None
                    break

                except ConnectionClosedOK:
                    logger.info("Telemetry socket closed normally")
                    break

                except ConnectionClosedError as e:
                    logger.warning(f"Telemetry socket closed with error: {e}")
                    await self._broadcast_error(TelemetryError(f"Connection lost: {e}"))
                    break

                except ConnectionClosed as e:
                    logger.warning(f"Telemetry connection closed: {e}")
                    break

        except asyncio.CancelledError:
            logger.debug("Receive loop cancelled")
            raise

        except Exception as e:
            logger.error(f"Error in telemetry receive loop: {e}")
            await self._broadcast_error(TelemetryError(str(e)))

        if not self._stop_event.is_set():
            await self._schedule_reconnect()

    async def _schedule_reconnect(self) -> None:
        """Reconnect with exponential backoff."""
        if self._stop_event.is_set():
            return

        self._reconnect_count += 1
        self._set_state(FeedState.RECONNECTING)

        delay = self._current_reconnect_delay
        logger.info(f"Reconnecting in {delay:.1f}s (attempt #{self._reconnect_count})...")

        await asyncio.sleep(delay)

        self._current_reconnect_delay = min(
            self._current_reconnect_delay * self._reconnect_multiplier,
            self._max_reconnect_delay,
        )

        if not self._stop_event.is_set():
            await self._connect()

    # =========================================================================
    # Message handling
    # =========================================================================

    async def _handle_message(self, raw_message: str) -> None:
        """Parse and route a telemetry message."""
        if not raw_message or not str(raw_message).strip():
            logger.debug("Received empty message (heartbeat)")
            return

        try:
            data = json.loads(raw_message)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse telemetry message: {e}")
            return

        events = data if isinstance(data, list) else [data]
        for event in events:
            if isinstance(event, dict):
                await self._handle_event(event)

    async def _handle_event(self, data: dict) -> None:
        msg_type = data.get("event_type") or data.get("type")

        if msg_type == "error":
            device_id = data.get("device_id")
            error = TelemetryError(data.get("message") or "Telemetry error")
            logger.error(f"Telemetry error message: {data}")
            if device_id:
                await self._notify_error(device_id, error)
            else:
                await self._broadcast_error(error)
            return

        if msg_type in ("subscribed", "unsubscribed", "pong"):
            logger.debug(f"Telemetry ack: {data}")
            return

        device_id = data.get("device_id") or data.get("deviceId")
        if not device_id:
            logger.debug(f"Telemetry message without device_id: {str(data)[:200]}")
            return

        subs = self._subscriptions.get(device_id)
        if not subs:
            return

        try:
            snapshot = ParameterSnapshot.from_payload(
                device_id, data, received_at=self._last_message_time
            )
        except Exception as e:
            logger.error(f"Bad snapshot payload for {device_id}: {e}")
            await self._notify_error(device_id, TelemetryError(str(e)))
            return

        for sub in list(subs):
            try:
                await sub.on_update(snapshot)
            except Exception as e:
                logger.error(f"Error in snapshot callback for {device_id}: {e}")

    async def _notify_error(self, device_id: str, error: Exception) -> None:
        for sub in list(self._subscriptions.get(device_id, [])):
            try:
                await sub.on_error(error)
            except Exception as e:
                logger.error(f"Error in telemetry error callback for {device_id}: {e}")

    async def _broadcast_error(self, error: Exception) -> None:
        for device_id in list(self._subscriptions):
            await self._notify_error(device_id, error)
