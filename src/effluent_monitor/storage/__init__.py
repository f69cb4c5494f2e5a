"""
Storage Layer - Async PostgreSQL database and repositories.

Built on asyncpg; records are pydantic models.

Public API:
    Database, DatabaseConfig - Connection pool management
    SCHEMA_SQL - DDL for monitoring tables

    Models:
        MonitoringLogEntry - Append-only audit record per evaluation cycle
        DeviceRecord, UserRecord - Records owned by the surrounding app
        NotificationPreferences - Per-user channel switches

    Repositories:
        MonitoringLogRepository - Audit log sink
        DeviceRepository - Device directory
        UserRepository - Preference store
"""
from effluent_monitor.storage.database import Database, DatabaseConfig
from effluent_monitor.storage.schema import SCHEMA_SQL
from effluent_monitor.storage.models import (
    DeviceRecord,
    MonitoringLogEntry,
    NotificationPreferences,
    UserRecord,
)
from effluent_monitor.storage.repositories import (
    BaseRepository,
    DeviceRepository,
    MonitoringLogRepository,
    UserRepository,
)

__all__ = [
    # Database
    "Database",
    "DatabaseConfig",
    "SCHEMA_SQL",
    # Models
    "DeviceRecord",
    "MonitoringLogEntry",
    "NotificationPreferences",
    "UserRecord",
    # Repositories
    "BaseRepository",
    "DeviceRepository",
    "MonitoringLogRepository",
    "UserRepository",
]
