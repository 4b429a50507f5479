"""Sensor reading ORM model.

One row per sensor kind per ingest: a combined ESP32 payload fans out into a
DHT11 row (temperature + humidity), an LDR row, a soil-moisture row and an
ultrasonic row.  Rows are append-only.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Enum, Float, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from greenlink.models.base import AppendOnlyMixin, Base
from greenlink.models.enums import SensorTypeEnum


class Reading(Base, AppendOnlyMixin):
    """One persisted sensor sample."""

    __tablename__ = "sensor_readings"
    __table_args__ = (
        Index("ix_sensor_readings_greenhouse_ts", "greenhouse_id", "timestamp"),
        Index("ix_sensor_readings_type_ts", "sensor_type", "timestamp"),
    )

    greenhouse_id: Mapped[str] = mapped_column(String(64), nullable=False)
    sensor_type: Mapped[SensorTypeEnum] = mapped_column(
        Enum(
            SensorTypeEnum,
            name="sensor_type",
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
    )
    device_id: Mapped[str] = mapped_column(String(64), nullable=False)
    location: Mapped[str] = mapped_column(
        String(128), nullable=False, default="Main Greenhouse"
    )

    temperature: Mapped[float | None] = mapped_column(Float, nullable=True)
    humidity: Mapped[float | None] = mapped_column(Float, nullable=True)
    light_intensity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    soil_moisture: Mapped[int | None] = mapped_column(Integer, nullable=True)
    custom_value: Mapped[float | None] = mapped_column(Float, nullable=True)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    ingested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<Reading id={self.id} greenhouse={self.greenhouse_id} "
            f"type={self.sensor_type} ts={self.timestamp}>"
        )
