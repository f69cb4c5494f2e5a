"""
Pydantic models matching the monitoring tables (see storage/schema.py).

MonitoringLogEntry is append-only: one row per evaluation cycle.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class NotificationPreferences(BaseModel):
    """Per-user channel switches. Unknown users get everything enabled."""

    model_config = ConfigDict(frozen=True)

    push_enabled: bool = True
    email_enabled: bool = True
    sms_enabled: bool = True
    whatsapp_enabled: bool = True

    @classmethod
    def from_document(cls, data: Optional[Dict[str, Any]]) -> "NotificationPreferences":
        """
        Build from a stored preferences document.

        Accepts both snake_case and the camelCase keys written by the web
        app ("pushEnabled"). Missing keys default to enabled.
        """
        if not data:
            return cls()

        def flag(snake: str, camel: str) -> bool:
            value = data.get(snake, data.get(camel))
            return True if value is None else bool(value)

        return cls(
            push_enabled=flag("push_enabled", "pushEnabled"),
            email_enabled=flag("email_enabled", "emailEnabled"),
            sms_enabled=flag("sms_enabled", "smsEnabled"),
            whatsapp_enabled=flag("whatsapp_enabled", "whatsappEnabled"),
        )


class DeviceRecord(BaseModel):
    """A monitored device."""

    device_id: str
    owner_id: str
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.device_id


class UserRecord(BaseModel):
    """A user with notification preferences."""

    user_id: str
    email: Optional[str] = None
    notification_preferences: Optional[Dict[str, Any]] = None


class MonitoringLogEntry(BaseModel):
    """Immutable audit record for one evaluation cycle."""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    device_id: str
    owner_id: str
    parameters: Dict[str, float]
    diagnosis: Dict[str, Any]
    unusual_conditions: List[str] = Field(default_factory=list)
    has_issues: bool
    severity: str  # "low" | "medium" | "high" | "critical" | "normal"
    offline: bool = False
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
