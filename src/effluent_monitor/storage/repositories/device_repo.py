"""
Device and user repositories.

Both tables belong to the surrounding application; this subsystem only
reads them.
"""
from __future__ import annotations

from typing import Optional

from effluent_monitor.storage.models import (
    DeviceRecord,
    NotificationPreferences,
    UserRecord,
)
from effluent_monitor.storage.repositories.base import BaseRepository


class DeviceRepository(BaseRepository[DeviceRecord]):
    """Read access to devices."""

    table_name = "devices"
    id_column = "device_id"
    model_class = DeviceRecord

    async def get_device(self, device_id: str) -> Optional[DeviceRecord]:
        return await self.get_by_id(device_id)

    async def list_for_owner(self, owner_id: str) -> list[DeviceRecord]:
        query = "SELECT * FROM devices WHERE owner_id = $1 ORDER BY device_id"
        records = await self.db.fetch(query, owner_id)
        return self._records_to_models(records)


class UserRepository(BaseRepository[UserRecord]):
    """Read access to users and their notification preferences."""

    table_name = "users"
    id_column = "user_id"
    model_class = UserRecord

    async def get_preferences(self, user_id: str) -> NotificationPreferences:
        """
        Channel preferences for a user.

        Unknown users and users without a stored document get the
        all-enabled default. Database errors propagate to the caller.
        """
        query = "SELECT notification_preferences FROM users WHERE user_id = $1"
        document = await self.db.fetchval(query, user_id)
        return NotificationPreferences.from_document(document)
