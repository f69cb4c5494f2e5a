"""
Diagnosis test fixtures.

Readings are plain dicts unless a test needs a full ParameterSnapshot.
"""
from datetime import datetime, timezone

import pytest

from effluent_monitor.ingestion.models import ParameterSnapshot


@pytest.fixture
def healthy_readings():
    """Every core parameter inside its operating range."""
    return {
        "pH": 7.5,
        "temperature": 50.0,
        "TSS": 150.0,
        "COD": 350.0,
        "BOD": 100.0,
        "hardness": 200.0,
    }


@pytest.fixture
def boundary_readings():
    """Every core parameter exactly on a bound (inclusive, so no faults)."""
    return {
        "pH": 6.5,
        "temperature": 80.0,
        "TSS": 200.0,
        "COD": 500.0,
        "BOD": 150.0,
        "hardness": 300.0,
    }


@pytest.fixture
def snapshot_factory():
    def _make(parameters, device_id="WW-001"):
        return ParameterSnapshot(
            device_id=device_id,
            parameters=parameters,
            timestamp=datetime.now(timezone.utc),
        )
    return _make
