"""
Data models for the ingestion layer.

These models represent:
- Parameter snapshots pushed by the telemetry feed
- Canonical parameter naming

Note on parameter casing:
    Devices report the same quantity under different spellings
    ("PH", "ph", "pH", "Temperature", "Flow"). Names are canonicalized
    exactly once, when a payload is turned into a ParameterSnapshot, so every
    rule table downstream is keyed by a single spelling.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)


# Lower-cased / de-punctuated alias -> canonical parameter name
PARAMETER_ALIASES: dict[str, str] = {
    "ph": "pH",
    "bod": "BOD",
    "cod": "COD",
    "tss": "TSS",
    "flow": "flow",
    "flowrate": "flow",
    "temperature": "temperature",
    "temp": "temperature",
    "hardness": "hardness",
    "do": "dissolved_oxygen",
    "dissolvedoxygen": "dissolved_oxygen",
    "conductivity": "conductivity",
    "turbidity": "turbidity",
}

# Payload keys that are metadata, never parameters
METADATA_KEYS = frozenset({
    "device_id", "deviceid", "id", "timestamp", "ts", "time",
    "event_type", "type", "parameters", "owner_id", "userid",
})


def canonical_parameter_name(name: str) -> str:
    """
    Map a reported parameter name onto its canonical spelling.

    Unknown names are returned stripped but otherwise unchanged so they
    still travel through the audit log.
    """
    stripped = name.strip()
    key = stripped.lower().replace("_", "").replace(" ", "").replace("-", "")
    return PARAMETER_ALIASES.get(key, stripped)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a telemetry timestamp.

    Accepts datetimes, Unix seconds, Unix milliseconds and ISO-8601 strings.
    Naive values are treated as UTC. Returns None if unparseable.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = float(value)
        # Realtime stores commonly emit milliseconds
        if seconds > 1e11:
            seconds /= 1000.0
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            logger.debug(f"Out-of-range timestamp: {value!r}")
            return None

    if isinstance(value, str):
        text = value.strip()
        try:
            return parse_timestamp(float(text))
        except ValueError:
            pass
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Unparseable timestamp: {value!r}")
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    return None


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    # NaN and inf compare false against every threshold
    return number if math.isfinite(number) else None


@dataclass(frozen=True)
class ParameterSnapshot:
    """
    One timestamped set of parameter readings for a device.

    Immutable once read: parameters are exposed as a read-only mapping.

    Attributes:
        device_id: Device the readings belong to
        parameters: Canonical parameter name -> numeric value
        timestamp: When the readings were captured (UTC)
    """
    device_id: str
    parameters: Mapping[str, float]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))

    def get(self, name: str, default: Optional[float] = None) -> Optional[float]:
        return self.parameters.get(name, default)

    def as_dict(self) -> dict[str, float]:
        return dict(self.parameters)

    @property
    def age_seconds(self) -> float:
        """Seconds since this snapshot was captured."""
        now = datetime.now(timezone.utc)
        return (now - self.timestamp).total_seconds()

    def with_defaults(self, defaults: Mapping[str, float]) -> "ParameterSnapshot":
        """Return a copy with any parameter missing from this snapshot filled in."""
        merged = dict(defaults)
        merged.update(self.parameters)
        return ParameterSnapshot(
            device_id=self.device_id,
            parameters=merged,
            timestamp=self.timestamp,
        )

    @classmethod
    def from_payload(
        cls,
        device_id: str,
        payload: Mapping[str, Any],
        received_at: Optional[datetime] = None,
    ) -> "ParameterSnapshot":
        """
        Build a snapshot from a raw telemetry payload.

        The payload may carry readings flat ({"PH": 7.1, "TSS": 120, ...}) or
        nested under "parameters". Non-numeric values are dropped.
        """
        raw = payload.get("parameters")
        if not isinstance(raw, Mapping):
            raw = {k: v for k, v in payload.items() if k.lower() not in METADATA_KEYS}

        parameters: dict[str, float] = {}
        for name, value in raw.items():
            number = _to_float(value)
            if number is None:
                logger.debug(f"Dropping non-numeric reading {name}={value!r} for {device_id}")
                continue
            parameters[canonical_parameter_name(str(name))] = number

        timestamp = (
            parse_timestamp(payload.get("timestamp"))
            or parse_timestamp(payload.get("ts"))
            or received_at
            or datetime.now(timezone.utc)
        )

        return cls(device_id=device_id, parameters=parameters, timestamp=timestamp)
