"""
Registry of active monitoring sessions.

The registry is the only shared mutable state between device sessions.
Start/stop transitions must hold ``registry.lock`` for their whole duration
so at most one subscription ever exists per device.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from effluent_monitor.ingestion.models import ParameterSnapshot
from effluent_monitor.ingestion.telemetry import Unsubscribe


@dataclass(eq=False)
class MonitoringSession:
    """
    The live subscription to one device's telemetry.

    Snapshots are queued in delivery order and drained by a dedicated
    worker task; ``cycle_lock`` serializes that worker with check_now().
    """

    device_id: str
    owner_id: str
    device_name: Optional[str] = None
    active: bool = True
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_update_at: Optional[datetime] = None
    last_snapshot: Optional[ParameterSnapshot] = None
    cycles: int = 0
    telemetry_errors: int = 0

    unsubscribe: Optional[Unsubscribe] = None
    worker: Optional[asyncio.Task] = None
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    cycle_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def display_name(self) -> str:
        return self.device_name or self.device_id


class SessionRegistry:
    """
    Device id -> active MonitoringSession.

    Usage:
        async with registry.lock:
            if not registry.is_active(device_id):
                registry.add(session)
    """

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self._sessions: Dict[str, MonitoringSession] = {}

    def is_active(self, device_id: str) -> bool:
        session = self._sessions.get(device_id)
        return session is not None and session.active

    def get(self, device_id: str) -> Optional[MonitoringSession]:
        return self._sessions.get(device_id)

    def add(self, session: MonitoringSession) -> None:
        if session.device_id in self._sessions:
            raise ValueError(f"Session already registered for {session.device_id}")
        self._sessions[session.device_id] = session

    def remove(self, device_id: str) -> Optional[MonitoringSession]:
        return self._sessions.pop(device_id, None)

    def device_ids(self) -> List[str]:
        return list(self._sessions)

    def sessions(self) -> List[MonitoringSession]:
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._sessions
