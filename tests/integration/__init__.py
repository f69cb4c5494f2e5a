"""
Integration tests for the Effluent Monitor.

These tests verify that telemetry handling, diagnosis, auditing and alert
dispatch work together. Network and database access are mocked.

Run with:
    pytest tests/integration/ -v
"""
