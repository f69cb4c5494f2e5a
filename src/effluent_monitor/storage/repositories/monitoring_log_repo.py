"""
Monitoring log repository - append-only audit trail of evaluation cycles.
"""
from __future__ import annotations

from typing import Optional

from effluent_monitor.storage.models import MonitoringLogEntry
from effluent_monitor.storage.repositories.base import BaseRepository


class MonitoringLogRepository(BaseRepository[MonitoringLogEntry]):
    """Repository for monitoring_logs. Rows are never updated."""

    table_name = "monitoring_logs"
    model_class = MonitoringLogEntry

    async def append(self, entry: MonitoringLogEntry) -> Optional[int]:
        """Insert an audit record. Returns the new row id."""
        query = """
            INSERT INTO monitoring_logs
            (device_id, owner_id, parameters, diagnosis, unusual_conditions,
             has_issues, severity, offline, timestamp)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            RETURNING id
        """
        return await self.db.fetchval(
            query,
            entry.device_id,
            entry.owner_id,
            entry.parameters,
            entry.diagnosis,
            entry.unusual_conditions,
            entry.has_issues,
            entry.severity,
            entry.offline,
            entry.timestamp,
        )

