"""
Health Checker for component health monitoring.

Monitors the database, the telemetry push feed, and monitored device staleness.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, List, Optional

from effluent_monitor.ingestion.staleness import time_since_offline

if TYPE_CHECKING:
    from effluent_monitor.storage import Database

    from .orchestrator import MonitoringOrchestrator

logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    """Health status levels."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    WARNING = "warning"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    """Health check result for a single component."""

    component: str
    status: HealthStatus
    message: str
    latency_ms: Optional[float] = None


@dataclass
class AggregateHealth:
    """Overall system health."""

    status: HealthStatus
    components: List[ComponentHealth] = field(default_factory=list)
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class HealthChecker:
    """
    Checks health of system components.

    Monitors:
    - Database connectivity
    - Telemetry connection and message staleness
    - Monitored devices that have gone offline

    Usage:
        checker = HealthChecker(db, telemetry_feed, orchestrator)
        overall = await checker.check_all()
    """

    def __init__(
        self,
        db: Optional["Database"] = None,
        telemetry: Optional[Any] = None,
        orchestrator: Optional["MonitoringOrchestrator"] = None,
        message_staleness_threshold: float = 300.0,  # 5 minutes
    ) -> None:
        """
        Args:
            db: Database connection to check
            telemetry: Telemetry feed exposing is_connected / last_message_time
            orchestrator: Orchestrator whose sessions are checked for staleness
            message_staleness_threshold: Seconds without messages to consider stale
        """
        self.db = db
        self._telemetry = telemetry
        self._orchestrator = orchestrator
        self._message_staleness_threshold = message_staleness_threshold

    async def check_database(self) -> ComponentHealth:
        start_time = time.time()

        try:
            if self.db is None:
                return ComponentHealth(
                    component="database",
                    status=HealthStatus.WARNING,
                    message="No database connection configured",
                )

            await self.db.execute("SELECT 1")

            return ComponentHealth(
                component="database",
                status=HealthStatus.HEALTHY,
                message="Database is accessible",
                latency_ms=(time.time() - start_time) * 1000,
            )

        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return ComponentHealth(
                component="database",
                status=HealthStatus.UNHEALTHY,
                message=f"Database error: {str(e)}",
                latency_ms=(time.time() - start_time) * 1000,
            )

    async def check_telemetry(self) -> ComponentHealth:
        """Check the push feed connection and message staleness."""
        if self._telemetry is None:
            return ComponentHealth(
                component="telemetry",
                status=HealthStatus.WARNING,
                message="No telemetry feed configured",
            )

        is_connected = getattr(self._telemetry, "is_connected", False)
        if not is_connected:
            return ComponentHealth(
                component="telemetry",
                status=HealthStatus.UNHEALTHY,
                message="Telemetry feed is disconnected",
            )

        last_message_time = getattr(self._telemetry, "last_message_time", None)
        if last_message_time:
            now = datetime.now(timezone.utc)
            if isinstance(last_message_time, datetime):
                age_seconds = (now - last_message_time).total_seconds()
            else:
                age_seconds = now.timestamp() - last_message_time

            if age_seconds > self._message_staleness_threshold:
                return ComponentHealth(
                    component="telemetry",
                    status=HealthStatus.DEGRADED,
                    message=f"Telemetry messages are stale ({age_seconds:.0f}s old)",
                )

        return ComponentHealth(
            component="telemetry",
            status=HealthStatus.HEALTHY,
            message="Telemetry feed is connected and receiving messages",
        )

    async def check_devices(self) -> ComponentHealth:
        """Report monitored devices whose latest reading is stale."""
        if self._orchestrator is None:
            return ComponentHealth(
                component="devices",
                status=HealthStatus.WARNING,
                message="No orchestrator configured",
            )

        tracker = self._orchestrator.status_tracker
        active = self._orchestrator.active_devices()
        if not active:
            return ComponentHealth(
                component="devices",
                status=HealthStatus.HEALTHY,
                message="No devices under monitoring",
            )

        offline = []
        for device_id in active:
            status = tracker.status(device_id)
            if not status.online:
                offline.append(f"{device_id} (offline {time_since_offline(status.offline_since)})")

        if offline:
            return ComponentHealth(
                component="devices",
                status=HealthStatus.DEGRADED,
                message=f"{len(offline)}/{len(active)} devices offline: {', '.join(offline)}",
            )

        return ComponentHealth(
            component="devices",
            status=HealthStatus.HEALTHY,
            message=f"All {len(active)} monitored devices reporting",
        )

    async def check_all(self, timeout: float = 5.0) -> AggregateHealth:
        """
        Check all components with timeout.

        Args:
            timeout: Maximum time for all checks in seconds
        """
        components = []

        checks = [
            ("database", self.check_database),
            ("telemetry", self.check_telemetry),
            ("devices", self.check_devices),
        ]

        for name, check_func in checks:
            try:
                result = await asyncio.wait_for(
                    check_func(),
                    timeout=timeout / len(checks),
                )
                components.append(result)
            except asyncio.TimeoutError:
                components.append(ComponentHealth(
                    component=name,
                    status=HealthStatus.UNHEALTHY,
                    message=f"{name} check timed out",
                ))
            except Exception as e:
                components.append(ComponentHealth(
                    component=name,
                    status=HealthStatus.UNHEALTHY,
                    message=f"{name} check failed: {str(e)}",
                ))

        return AggregateHealth(
            status=self._calculate_overall_status(components),
            components=components,
        )

    def _calculate_overall_status(
        self,
        components: List[ComponentHealth],
    ) -> HealthStatus:
        """Calculate overall status from component statuses."""
        statuses = [c.status for c in components]

        if HealthStatus.UNHEALTHY in statuses:
            return HealthStatus.UNHEALTHY

        if HealthStatus.DEGRADED in statuses or HealthStatus.WARNING in statuses:
            return HealthStatus.DEGRADED

        return HealthStatus.HEALTHY
