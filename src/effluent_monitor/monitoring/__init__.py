"""
Monitoring Layer - Per-device sessions, evaluation cycles, and health.

This module provides:
    - MonitoringOrchestrator: start/stop sessions, run diagnosis per snapshot
    - SessionRegistry / MonitoringSession: the active-session bookkeeping
    - PollingFallback: periodic check_now() for quiet devices
    - HealthChecker: database, telemetry and device staleness checks

Alerting Rules:
    - At most one alert per evaluation cycle
    - Unusual conditions take precedence over high-severity faults
    - Medium/low faults are audited but never alerted
"""

from .registry import MonitoringSession, SessionRegistry
from .orchestrator import (
    AuditLogSink,
    CycleResult,
    DeviceDirectory,
    LatestSnapshotSource,
    MonitoringOrchestrator,
    OrchestratorConfig,
    compose_alert,
)
from .polling import PollingConfig, PollingFallback
from .health_checker import (
    AggregateHealth,
    ComponentHealth,
    HealthChecker,
    HealthStatus,
)

__all__ = [
    # Orchestrator
    "MonitoringOrchestrator",
    "OrchestratorConfig",
    "CycleResult",
    "compose_alert",
    "AuditLogSink",
    "DeviceDirectory",
    "LatestSnapshotSource",
    # Sessions
    "MonitoringSession",
    "SessionRegistry",
    # Polling
    "PollingConfig",
    "PollingFallback",
    # Health
    "HealthChecker",
    "HealthStatus",
    "ComponentHealth",
    "AggregateHealth",
]
