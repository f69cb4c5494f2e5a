"""
Shared test fixtures for integration tests.

Component-specific fixtures live in
src/effluent_monitor/{component}/tests/conftest.py.
"""
import logging

import pytest


@pytest.fixture(autouse=True)
def quiet_websockets_logging():
    """websockets logs every connection attempt at DEBUG; keep test output readable."""
    logging.getLogger("websockets").setLevel(logging.WARNING)
    yield
