"""
MonitoringOrchestrator - Owns one live telemetry subscription per device.

Per snapshot:
    1. Fill missing core parameters with defaults
    2. Diagnose against operating thresholds
    3. Check critical ("unusual condition") thresholds
    4. Append an audit record (failures logged, never fatal)
    5. Raise at most one critical notification for the cycle

Sessions:
    - start() on an active device is a no-op (no duplicate subscriptions)
    - stop() on an inactive device is a no-op
    - Nothing but stop() ends a session; telemetry, audit and dispatch
      errors are logged and the subscription stays open
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Protocol, Tuple

from effluent_monitor.alerting import AlertDispatcher, Notification, NotificationLevel
from effluent_monitor.diagnosis import (
    PARAMETER_DEFAULTS,
    DiagnosisResult,
    check_unusual_conditions,
    diagnose,
)
from effluent_monitor.ingestion.models import ParameterSnapshot
from effluent_monitor.ingestion.staleness import (
    DEFAULT_OFFLINE_THRESHOLD_MINUTES,
    DeviceStatusTracker,
    is_offline,
)
from effluent_monitor.ingestion.telemetry import TelemetrySource
from effluent_monitor.storage.models import DeviceRecord, MonitoringLogEntry

from .registry import MonitoringSession, SessionRegistry

logger = logging.getLogger(__name__)


class AuditLogSink(Protocol):
    async def append(self, entry: MonitoringLogEntry) -> object:
        ...


class DeviceDirectory(Protocol):
    async def get_device(self, device_id: str) -> Optional[DeviceRecord]:
        ...

    async def list_for_owner(self, owner_id: str) -> List[DeviceRecord]:
        ...


class LatestSnapshotSource(Protocol):
    async def fetch_latest(self, device_id: str) -> Optional[ParameterSnapshot]:
        ...


@dataclass
class OrchestratorConfig:
    """Configuration for the monitoring orchestrator."""

    offline_threshold_minutes: float = DEFAULT_OFFLINE_THRESHOLD_MINUTES
    audit_log_timeout_seconds: float = 10.0
    parameter_defaults: Mapping[str, float] = field(
        default_factory=lambda: dict(PARAMETER_DEFAULTS)
    )


@dataclass
class CycleResult:
    """What one evaluation cycle saw and did."""

    device_id: str
    owner_id: str
    snapshot: ParameterSnapshot
    diagnosis: DiagnosisResult
    unusual_conditions: List[str]
    offline: bool
    notification: Optional[Notification] = None
    repeat: bool = False

    @property
    def has_issues(self) -> bool:
        return self.diagnosis.has_fault or bool(self.unusual_conditions)

    @property
    def audit_severity(self) -> str:
        if self.diagnosis.has_fault:
            return self.diagnosis.severity.value
        if self.unusual_conditions:
            return "critical"
        return "normal"

    def to_log_entry(self) -> MonitoringLogEntry:
        return MonitoringLogEntry(
            device_id=self.device_id,
            owner_id=self.owner_id,
            parameters=self.snapshot.as_dict(),
            diagnosis=self.diagnosis.to_dict(),
            unusual_conditions=list(self.unusual_conditions),
            has_issues=self.has_issues,
            severity=self.audit_severity,
            offline=self.offline,
            timestamp=datetime.now(timezone.utc),
        )


def _same_reading(
    previous: Optional[ParameterSnapshot],
    snapshot: ParameterSnapshot,
) -> bool:
    if previous is None:
        return False
    return (
        previous.timestamp == snapshot.timestamp
        and previous.as_dict() == snapshot.as_dict()
    )


def compose_alert(
    device_name: str,
    diagnosis: DiagnosisResult,
    unusual_conditions: List[str],
) -> Optional[Tuple[str, str]]:
    """
    Title and message for a cycle, or None if no alert is warranted.

    Unusual conditions take precedence over high-severity faults; a cycle
    produces at most one alert.
    """
    if unusual_conditions:
        return (
            "URGENT: Unusual Conditions Detected",
            f"Device {device_name} has {len(unusual_conditions)} parameters outside "
            f"safe limits: {', '.join(unusual_conditions)}",
        )

    if diagnosis.has_fault and diagnosis.severity.value == "high":
        return (
            "Critical Fault Detected",
            f"{len(diagnosis.faults)} critical issue(s) found in device {device_name}",
        )

    return None


class MonitoringOrchestrator:
    """
    Runs automated monitoring for a set of devices.

    Usage:
        orchestrator = MonitoringOrchestrator(
            telemetry=feed,
            dispatcher=dispatcher,
            audit_log=MonitoringLogRepository(db),
            devices=DeviceRepository(db),
        )

        await orchestrator.start_monitoring_all_devices("user-42")
        result = await orchestrator.check_now("WW-001")
        await orchestrator.stop_all_monitoring()
    """

    def __init__(
        self,
        telemetry: TelemetrySource,
        dispatcher: AlertDispatcher,
        audit_log: Optional[AuditLogSink] = None,
        devices: Optional[DeviceDirectory] = None,
        registry: Optional[SessionRegistry] = None,
        config: Optional[OrchestratorConfig] = None,
        status_tracker: Optional[DeviceStatusTracker] = None,
        latest_source: Optional[LatestSnapshotSource] = None,
    ) -> None:
        """
        Args:
            telemetry: Push source of live snapshots
            dispatcher: Alert dispatcher (feed + fan-out)
            audit_log: Append-only sink for cycle records
            devices: Device directory for names and owner listings
            registry: Session registry (a private one is created if omitted)
            config: Orchestrator configuration
            status_tracker: Shared last-seen tracker
            latest_source: On-demand snapshot source for check_now()
        """
        self._telemetry = telemetry
        self._dispatcher = dispatcher
        self._audit_log = audit_log
        self._devices = devices
        self._registry = registry or SessionRegistry()
        self._config = config or OrchestratorConfig()
        self._status = status_tracker or DeviceStatusTracker(
            self._config.offline_threshold_minutes
        )
        self._latest_source = latest_source

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def status_tracker(self) -> DeviceStatusTracker:
        return self._status

    def is_active(self, device_id: str) -> bool:
        return self._registry.is_active(device_id)

    def active_devices(self) -> List[str]:
        return self._registry.device_ids()

    def session(self, device_id: str) -> Optional[MonitoringSession]:
        return self._registry.get(device_id)

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    async def start(
        self,
        device_id: str,
        owner_id: str,
        device_name: Optional[str] = None,
    ) -> bool:
        """
        Start monitoring a device.

        Returns:
            True if a new session was started, False if already active or
            the subscription could not be established
        """
        async with self._registry.lock:
            if self._registry.is_active(device_id):
                logger.info(f"Monitoring already active for device {device_id}")
                return False

            session = MonitoringSession(
                device_id=device_id,
                owner_id=owner_id,
                device_name=device_name,
            )

            try:
                session.unsubscribe = await self._telemetry.subscribe(
                    device_id,
                    self._make_update_handler(session),
                    self._make_error_handler(session),
                )
            except Exception as e:
                logger.error(f"Failed to subscribe to telemetry for {device_id}: {e}")
                return False

            session.worker = asyncio.create_task(
                self._session_worker(session),
                name=f"monitor_{device_id}",
            )
            self._registry.add(session)

        logger.info(f"Started automated monitoring for device {device_id}")
        return True

    async def stop(self, device_id: str) -> bool:
        """
        Stop monitoring a device.

        Notifications already handed to the dispatcher still go out.

        Returns:
            True if a session was stopped, False if none was active
        """
        async with self._registry.lock:
            session = self._registry.remove(device_id)
            if session is None:
                logger.info(f"No active monitoring for device {device_id}")
                return False

            session.active = False

            if session.unsubscribe:
                try:
                    await session.unsubscribe()
                except Exception as e:
                    logger.warning(f"Error unsubscribing telemetry for {device_id}: {e}")

            if session.worker and not session.worker.done():
                session.worker.cancel()
                await asyncio.gather(session.worker, return_exceptions=True)

        logger.info(f"Stopped automated monitoring for device {device_id}")
        return True

    async def start_all(self, owner_id: str) -> int:
        """Start monitoring every device the owner has. Returns sessions started."""
        if self._devices is None:
            logger.warning("No device directory configured, cannot list devices")
            return 0

        try:
            devices = await self._devices.list_for_owner(owner_id)
        except Exception as e:
            logger.error(f"Error listing devices for {owner_id}: {e}")
            return 0

        started = 0
        for device in devices:
            if await self.start(device.device_id, owner_id, device_name=device.name):
                started += 1

        logger.info(
            f"Started monitoring all devices for user {owner_id} "
            f"({started}/{len(devices)} new sessions)"
        )
        return started

    async def stop_all(self) -> int:
        """Stop every session. Returns sessions stopped."""
        stopped = 0
        for device_id in self._registry.device_ids():
            if await self.stop(device_id):
                stopped += 1
        logger.info(f"Stopped all monitoring sessions ({stopped})")
        return stopped

    # Entry points used by the rest of the application
    start_automated_monitoring = start
    stop_automated_monitoring = stop
    start_monitoring_all_devices = start_all
    stop_all_monitoring = stop_all

    # =========================================================================
    # Telemetry handling
    # =========================================================================

    def _make_update_handler(self, session: MonitoringSession):
        async def on_update(snapshot: ParameterSnapshot) -> None:
            if not session.active:
                return
            session.last_update_at = datetime.now(timezone.utc)
            self._status.record(session.device_id, snapshot.timestamp)
            session.queue.put_nowait(snapshot)

        return on_update

    def _make_error_handler(self, session: MonitoringSession):
        async def on_error(error: Exception) -> None:
            session.telemetry_errors += 1
            logger.error(f"Error monitoring device {session.device_id}: {error}")

        return on_error

    async def _session_worker(self, session: MonitoringSession) -> None:
        """Drain the session queue in delivery order until cancelled."""
        while True:
            snapshot = await session.queue.get()
            try:
                await self._run_cycle(session, snapshot)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Monitoring cycle failed for {session.device_id}: {e}")
            finally:
                session.queue.task_done()

    async def check_now(self, device_id: str) -> Optional[CycleResult]:
        """
        Force one evaluation cycle for an active device.

        Uses a freshly fetched snapshot when a latest-data source is
        configured, otherwise the last pushed snapshot.
        """
        session = self._registry.get(device_id)
        if session is None or not session.active:
            logger.info(f"check_now ignored: device {device_id} is not monitored")
            return None

        snapshot: Optional[ParameterSnapshot] = None
        if self._latest_source is not None:
            try:
                snapshot = await self._latest_source.fetch_latest(device_id)
            except Exception as e:
                logger.warning(f"Latest-data fetch failed for {device_id}: {e}")

        if snapshot is not None:
            self._status.record(device_id, snapshot.timestamp)
        else:
            snapshot = session.last_snapshot

        if snapshot is None:
            logger.info(f"check_now: no data available for device {device_id}")
            return None

        return await self._run_cycle(session, snapshot)

    # =========================================================================
    # Evaluation cycle
    # =========================================================================

    async def _run_cycle(
        self,
        session: MonitoringSession,
        snapshot: ParameterSnapshot,
    ) -> CycleResult:
        async with session.cycle_lock:
            repeat = _same_reading(session.last_snapshot, snapshot)
            session.last_snapshot = snapshot
            session.cycles += 1

            result = self.evaluate(session.device_id, session.owner_id, snapshot)
            result.repeat = repeat

            if result.offline:
                logger.warning(
                    f"Device {session.device_id} data is stale "
                    f"({snapshot.age_seconds / 60:.0f} min old), evaluating last known values"
                )

            await self._write_audit(result)

            # A reading that was already evaluated has already alerted
            if repeat:
                logger.debug(f"No new data for device {session.device_id}, alert suppressed")
                return result

            alert = compose_alert(
                await self._device_name(session),
                result.diagnosis,
                result.unusual_conditions,
            )
            if alert:
                title, message = alert
                try:
                    result.notification = self._dispatcher.add_notification(
                        title=title,
                        message=message,
                        level=NotificationLevel.CRITICAL,
                        device_id=session.device_id,
                        user_id=session.owner_id,
                    )
                    logger.info(f"Automated alert raised for device {session.device_id}: {title}")
                except Exception as e:
                    logger.error(f"Error sending automated alert for {session.device_id}: {e}")

            return result

    def evaluate(
        self,
        device_id: str,
        owner_id: str,
        snapshot: ParameterSnapshot,
    ) -> CycleResult:
        """Normalize and run both diagnosis passes. No side effects."""
        normalized = snapshot.with_defaults(self._config.parameter_defaults)
        return CycleResult(
            device_id=device_id,
            owner_id=owner_id,
            snapshot=normalized,
            diagnosis=diagnose(normalized),
            unusual_conditions=check_unusual_conditions(normalized),
            offline=is_offline(snapshot.timestamp, self._config.offline_threshold_minutes),
        )

    async def _write_audit(self, result: CycleResult) -> None:
        if self._audit_log is None:
            return

        try:
            await asyncio.wait_for(
                self._audit_log.append(result.to_log_entry()),
                timeout=self._config.audit_log_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(f"Audit log write timed out for {result.device_id}")
        except Exception as e:
            logger.error(f"Error logging monitoring result for {result.device_id}: {e}")

    async def _device_name(self, session: MonitoringSession) -> str:
        if session.device_name or self._devices is None:
            return session.display_name

        try:
            device = await asyncio.wait_for(
                self._devices.get_device(session.device_id),
                timeout=self._config.audit_log_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(f"Device lookup timed out for {session.device_id}")
            return session.display_name
        except Exception as e:
            logger.error(f"Error fetching device details for {session.device_id}: {e}")
            return session.display_name

        if device and device.name:
            session.device_name = device.name
        return session.display_name

    def get_stats(self) -> Dict[str, int]:
        sessions = self._registry.sessions()
        return {
            "active_sessions": len(sessions),
            "cycles": sum(s.cycles for s in sessions),
            "telemetry_errors": sum(s.telemetry_errors for s in sessions),
            "offline_devices": sum(1 for s in sessions if self._status.is_offline(s.device_id)),
        }
