"""Actuator and control-log ORM models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Enum, Float, Index, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from greenlink.models.base import AppendOnlyMixin, Base, TimestampMixin, UUIDPrimaryKeyMixin
from greenlink.models.enums import (
    ControlSourceEnum,
    DeviceActionEnum,
    DeviceStatusEnum,
    DeviceTypeEnum,
)


def _values(members: Any) -> list[str]:
    return [member.value for member in members]


EMPTY_AUTOMATION_RULES: dict[str, float | None] = {
    "temperatureHigh": None,
    "temperatureLow": None,
    "humidityHigh": None,
    "humidityLow": None,
    "soilMoistureLow": None,
    "lightLevelLow": None,
}


class Device(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """A controllable greenhouse actuator, globally unique by ``device_id``."""

    __tablename__ = "devices"
    __table_args__ = (
        Index("ix_devices_greenhouse_type", "greenhouse_id", "device_type"),
    )

    device_id: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True
    )
    greenhouse_id: Mapped[str] = mapped_column(String(64), nullable=False)
    device_type: Mapped[DeviceTypeEnum] = mapped_column(
        Enum(DeviceTypeEnum, name="device_type", values_callable=_values),
        nullable=False,
    )
    device_name: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[DeviceStatusEnum] = mapped_column(
        Enum(DeviceStatusEnum, name="device_status", values_callable=_values),
        nullable=False,
        default=DeviceStatusEnum.off,
        server_default="OFF",
    )
    intensity: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    auto_mode: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    automation_rules: Mapped[dict[str, Any]] = mapped_column(
        JSONB, nullable=False, default=lambda: dict(EMPTY_AUTOMATION_RULES)
    )
    power_consumption: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0, server_default=text("0")
    )
    location: Mapped[str] = mapped_column(
        String(128), nullable=False, default="Main Greenhouse"
    )
    last_activated: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @property
    def is_active(self) -> bool:
        return self.status in (DeviceStatusEnum.on, DeviceStatusEnum.open)

    def __repr__(self) -> str:
        return (
            f"<Device device_id={self.device_id!r} type={self.device_type} "
            f"status={self.status}>"
        )


class DeviceControlLog(Base, AppendOnlyMixin):
    """Audit record of one device state transition; never mutated."""

    __tablename__ = "device_control_logs"
    __table_args__ = (
        Index("ix_control_logs_greenhouse_ts", "greenhouse_id", "timestamp"),
        Index("ix_control_logs_device_ts", "device_id", "timestamp"),
        Index("ix_control_logs_user_ts", "user_id", "timestamp"),
    )

    greenhouse_id: Mapped[str] = mapped_column(String(64), nullable=False)
    device_id: Mapped[str] = mapped_column(String(64), nullable=False)
    device_name: Mapped[str] = mapped_column(String(100), nullable=False)
    device_type: Mapped[DeviceTypeEnum] = mapped_column(
        Enum(DeviceTypeEnum, name="device_type", values_callable=_values),
        nullable=False,
    )
    action: Mapped[DeviceActionEnum] = mapped_column(
        Enum(DeviceActionEnum, name="device_action", values_callable=_values),
        nullable=False,
    )
    previous_status: Mapped[DeviceStatusEnum] = mapped_column(
        Enum(DeviceStatusEnum, name="device_status", values_callable=_values),
        nullable=False,
    )
    new_status: Mapped[DeviceStatusEnum] = mapped_column(
        Enum(DeviceStatusEnum, name="device_status", values_callable=_values),
        nullable=False,
    )
    intensity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    control_source: Mapped[ControlSourceEnum] = mapped_column(
        Enum(ControlSourceEnum, name="control_source", values_callable=_values),
        nullable=False,
        default=ControlSourceEnum.manual,
    )
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    username: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<DeviceControlLog device={self.device_id!r} action={self.action} "
            f"{self.previous_status}->{self.new_status}>"
        )
