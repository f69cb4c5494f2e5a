"""
Storage layer test fixtures.

Repositories are exercised against a mocked Database; no test needs a
running PostgreSQL.
"""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from effluent_monitor.storage.models import MonitoringLogEntry


@pytest.fixture
def mock_db():
    """Mock database for unit tests."""
    db = MagicMock()
    db.execute = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.fetchrow = AsyncMock(return_value=None)
    db.fetchval = AsyncMock(return_value=None)
    return db


@pytest.fixture
def log_entry():
    return MonitoringLogEntry(
        device_id="WW-001",
        owner_id="user-42",
        parameters={"pH": 9.2, "TSS": 120.0},
        diagnosis={"has_fault": True, "severity": "medium", "faults": [], "recommendations": []},
        unusual_conditions=[],
        has_issues=True,
        severity="medium",
        offline=False,
        timestamp=datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
    )

