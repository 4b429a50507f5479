"""initial_schema

Revision ID: 3c1e9a7b5d20
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the five GreenLink tables (readings, devices, control log, alerts,
alert settings), their PostgreSQL enum types and indexes.  Expects the
uuid-ossp extension to be available.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3c1e9a7b5d20"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# ── Enum type names (PostgreSQL CREATE TYPE) ────────────────────────────────
ENUM_SENSOR_TYPE = postgresql.ENUM(
    "DHT11", "LDR", "SOIL_MOISTURE", "ULTRASONIC", name="sensor_type", create_type=False
)
ENUM_DEVICE_TYPE = postgresql.ENUM(
    "FAN",
    "WATER_PUMP",
    "WATER_VALVE",
    "HEATER",
    "LED_LIGHT",
    "COOLING_SYSTEM",
    "SERVO",
    "WINDOW",
    name="device_type",
    create_type=False,
)
ENUM_DEVICE_STATUS = postgresql.ENUM(
    "ON", "OFF", "AUTO", "OPEN", "CLOSED", name="device_status", create_type=False
)
ENUM_DEVICE_ACTION = postgresql.ENUM(
    "turn_on",
    "turn_off",
    "open",
    "close",
    "toggle",
    "set_intensity",
    "set_auto_mode",
    "manual_override",
    "auto_control",
    name="device_action",
    create_type=False,
)
ENUM_CONTROL_SOURCE = postgresql.ENUM(
    "manual", "automation", "iot_device", "schedule", name="control_source", create_type=False
)
ENUM_ALERT_TYPE = postgresql.ENUM(
    "TEMPERATURE_HIGH",
    "TEMPERATURE_LOW",
    "HUMIDITY_HIGH",
    "HUMIDITY_LOW",
    "SOIL_MOISTURE_LOW",
    "LIGHT_LEVEL_LOW",
    "WATER_LEVEL_LOW",
    "DEVICE_MALFUNCTION",
    "POWER_CONSUMPTION_HIGH",
    "SENSOR_OFFLINE",
    name="alert_type",
    create_type=False,
)
ENUM_ALERT_SEVERITY = postgresql.ENUM(
    "LOW", "MEDIUM", "HIGH", "CRITICAL", name="alert_severity", create_type=False
)
ENUM_ALERT_SOURCE = postgresql.ENUM(
    "DHT11", "LDR", "SOIL_MOISTURE", "ULTRASONIC", "DEVICE", name="alert_source", create_type=False
)

ALL_ENUMS = (
    ENUM_SENSOR_TYPE,
    ENUM_DEVICE_TYPE,
    ENUM_DEVICE_STATUS,
    ENUM_DEVICE_ACTION,
    ENUM_CONTROL_SOURCE,
    ENUM_ALERT_TYPE,
    ENUM_ALERT_SEVERITY,
    ENUM_ALERT_SOURCE,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("uuid_generate_v4()"),
        nullable=False,
    )


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ── 1. Create enum types ────────────────────────────────────────────
    for enum_type in ALL_ENUMS:
        enum_type.create(op.get_bind(), checkfirst=True)

    # ── 2. Append-only tables ───────────────────────────────────────────

    # sensor_readings
    op.create_table(
        "sensor_readings",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("greenhouse_id", sa.String(64), nullable=False),
        sa.Column("sensor_type", ENUM_SENSOR_TYPE, nullable=False),
        sa.Column("device_id", sa.String(64), nullable=False),
        sa.Column("location", sa.String(128), nullable=False),
        sa.Column("temperature", sa.Float(), nullable=True),
        sa.Column("humidity", sa.Float(), nullable=True),
        sa.Column("light_intensity", sa.Integer(), nullable=True),
        sa.Column("soil_moisture", sa.Integer(), nullable=True),
        sa.Column("custom_value", sa.Float(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "ingested_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_sensor_readings_greenhouse_ts",
        "sensor_readings",
        ["greenhouse_id", sa.text("timestamp DESC")],
    )
    op.create_index(
        "ix_sensor_readings_type_ts",
        "sensor_readings",
        ["sensor_type", sa.text("timestamp DESC")],
    )

    # device_control_logs
    op.create_table(
        "device_control_logs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("greenhouse_id", sa.String(64), nullable=False),
        sa.Column("device_id", sa.String(64), nullable=False),
        sa.Column("device_name", sa.String(100), nullable=False),
        sa.Column("device_type", ENUM_DEVICE_TYPE, nullable=False),
        sa.Column("action", ENUM_DEVICE_ACTION, nullable=False),
        sa.Column("previous_status", ENUM_DEVICE_STATUS, nullable=False),
        sa.Column("new_status", ENUM_DEVICE_STATUS, nullable=False),
        sa.Column("intensity", sa.Integer(), nullable=True),
        sa.Column("control_source", ENUM_CONTROL_SOURCE, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("username", sa.String(100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "timestamp",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_control_logs_greenhouse_ts",
        "device_control_logs",
        ["greenhouse_id", sa.text("timestamp DESC")],
    )
    op.create_index(
        "ix_control_logs_device_ts",
        "device_control_logs",
        ["device_id", sa.text("timestamp DESC")],
    )
    op.create_index(
        "ix_control_logs_user_ts",
        "device_control_logs",
        ["user_id", sa.text("timestamp DESC")],
    )

    # ── 3. Mutable documents ────────────────────────────────────────────

    # devices
    op.create_table(
        "devices",
        _uuid_pk(),
        sa.Column("device_id", sa.String(64), nullable=False),
        sa.Column("greenhouse_id", sa.String(64), nullable=False),
        sa.Column("device_type", ENUM_DEVICE_TYPE, nullable=False),
        sa.Column("device_name", sa.String(100), nullable=False),
        sa.Column(
            "status",
            ENUM_DEVICE_STATUS,
            server_default=sa.text("'OFF'"),
            nullable=False,
        ),
        sa.Column("intensity", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("auto_mode", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("automation_rules", postgresql.JSONB(), nullable=False),
        sa.Column("power_consumption", sa.Float(), server_default=sa.text("0"), nullable=False),
        sa.Column("location", sa.String(128), nullable=False),
        sa.Column("last_activated", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_devices_device_id", "devices", ["device_id"], unique=True)
    op.create_index("ix_devices_greenhouse_type", "devices", ["greenhouse_id", "device_type"])

    # alerts
    op.create_table(
        "alerts",
        _uuid_pk(),
        sa.Column("greenhouse_id", sa.String(64), nullable=False),
        sa.Column("alert_type", ENUM_ALERT_TYPE, nullable=False),
        sa.Column("severity", ENUM_ALERT_SEVERITY, nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("current_value", sa.Float(), nullable=False),
        sa.Column("threshold_value", sa.Float(), nullable=False),
        sa.Column("sensor_type", ENUM_ALERT_SOURCE, nullable=False),
        sa.Column("device_id", sa.String(64), nullable=True),
        sa.Column("is_resolved", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by", sa.String(100), nullable=True),
        sa.Column("action_taken", sa.Text(), nullable=True),
        sa.Column("auto_resolved", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "(is_resolved AND resolved_at IS NOT NULL) "
            "OR (NOT is_resolved AND resolved_at IS NULL)",
            name="ck_alerts_resolved_at_consistent",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_alerts_greenhouse_created",
        "alerts",
        ["greenhouse_id", sa.text("created_at DESC")],
    )
    op.create_index("ix_alerts_resolved_severity", "alerts", ["is_resolved", "severity"])

    # alert_settings
    op.create_table(
        "alert_settings",
        _uuid_pk(),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("greenhouse_id", sa.String(64), nullable=False),
        sa.Column("thresholds", postgresql.JSONB(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "greenhouse_id", name="uq_alert_settings_user_greenhouse"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_alert_settings_greenhouse_id", "alert_settings", ["greenhouse_id"])


def downgrade() -> None:
    # ── Drop tables ─────────────────────────────────────────────────────
    op.drop_table("alert_settings")
    op.drop_table("alerts")
    op.drop_table("devices")
    op.drop_table("device_control_logs")
    op.drop_table("sensor_readings")

    # ── Drop enum types ─────────────────────────────────────────────────
    for enum_type in reversed(ALL_ENUMS):
        enum_type.drop(op.get_bind(), checkfirst=True)
