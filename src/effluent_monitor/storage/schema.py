"""
DDL for the monitoring tables.

users and devices are owned by the surrounding application; they are
created here only so a fresh database is usable in development.
"""

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    email TEXT,
    notification_preferences JSONB
);

CREATE TABLE IF NOT EXISTS devices (
    device_id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    name TEXT
);

CREATE INDEX IF NOT EXISTS idx_devices_owner ON devices (owner_id);

CREATE TABLE IF NOT EXISTS monitoring_logs (
    id BIGSERIAL PRIMARY KEY,
    device_id TEXT NOT NULL,
    owner_id TEXT NOT NULL,
    parameters JSONB NOT NULL,
    diagnosis JSONB NOT NULL,
    unusual_conditions JSONB NOT NULL,
    has_issues BOOLEAN NOT NULL,
    severity TEXT NOT NULL,
    offline BOOLEAN NOT NULL DEFAULT FALSE,
    timestamp TIMESTAMPTZ NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_monitoring_logs_device_time
    ON monitoring_logs (device_id, timestamp DESC);
"""
