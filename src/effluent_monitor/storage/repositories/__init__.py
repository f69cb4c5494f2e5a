"""
Repository exports.
"""
from effluent_monitor.storage.repositories.base import BaseRepository
from effluent_monitor.storage.repositories.device_repo import (
    DeviceRepository,
    UserRepository,
)
from effluent_monitor.storage.repositories.monitoring_log_repo import (
    MonitoringLogRepository,
)

__all__ = [
    "BaseRepository",
    "DeviceRepository",
    "UserRepository",
    "MonitoringLogRepository",
]
