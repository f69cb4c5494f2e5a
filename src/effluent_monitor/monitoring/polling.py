"""
PollingFallback - Periodic check_now() for devices the push feed has gone quiet on.

A device is polled only when neither a push update nor the session start
happened within the last poll interval, so a healthy push feed costs no
REST traffic.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .orchestrator import MonitoringOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class PollingConfig:
    """Configuration for the polling fallback."""

    poll_interval_seconds: float = 600  # 10 minutes
    enabled: bool = True


class PollingFallback:
    """
    Background loop that forces evaluation of quiet devices.

    Usage:
        polling = PollingFallback(orchestrator, PollingConfig(poll_interval_seconds=300))
        await polling.start()
        # ... service runs ...
        await polling.stop()
    """

    def __init__(
        self,
        orchestrator: "MonitoringOrchestrator",
        config: Optional[PollingConfig] = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._config = config or PollingConfig()

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._polls = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def polls(self) -> int:
        """Total check_now() calls issued."""
        return self._polls

    async def start(self) -> None:
        if not self._config.enabled:
            logger.info("Polling fallback disabled via config")
            return

        if self._running:
            logger.warning("PollingFallback already running")
            return

        self._running = True
        self._stop_event.clear()
        self._task = asyncio.create_task(self._poll_loop(), name="polling_fallback")
        logger.info(
            f"Started polling fallback (interval={self._config.poll_interval_seconds}s)"
        )

    async def stop(self) -> None:
        if not self._running:
            return

        self._running = False
        self._stop_event.set()

        if self._task and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("Polling fallback stopped")

    async def _poll_loop(self) -> None:
        interval = self._config.poll_interval_seconds

        while self._running:
            try:
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(),
                        timeout=interval,
                    )
                    break  # Stop requested
                except asyncio.TimeoutError:
                    pass

                if not self._running:
                    break

                polled = await self.poll_once()
                if polled:
                    logger.info(f"Polling fallback: checked {polled} quiet device(s)")

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in polling fallback: {e}")
                await asyncio.sleep(5)

    def quiet_devices(self, now: Optional[datetime] = None) -> List[str]:
        """Active devices with no push update (or start) within the poll interval."""
        now = now or datetime.now(timezone.utc)
        quiet = []
        for session in self._orchestrator.registry.sessions():
            if not session.active:
                continue
            last_activity = session.last_update_at or session.started_at
            if (now - last_activity).total_seconds() >= self._config.poll_interval_seconds:
                quiet.append(session.device_id)
        return quiet

    async def poll_once(self, now: Optional[datetime] = None) -> int:
        """
        Run check_now() for every quiet device.

        Returns:
            Number of devices polled
        """
        polled = 0
        for device_id in self.quiet_devices(now):
            try:
                await self._orchestrator.check_now(device_id)
                polled += 1
                self._polls += 1
            except Exception as e:
                logger.error(f"Polling check failed for {device_id}: {e}")
        return polled
