"""Pydantic schemas for persisted sensor readings."""

from __future__ import annotations

from datetime import datetime

from greenlink.models.enums import SensorTypeEnum
from greenlink.schemas.base import WireModel


class ReadingRead(WireModel):
	id: int
	greenhouse_id: str
	sensor_type: SensorTypeEnum
	device_id: str
	location: str
	temperature: float | None = None
	humidity: float | None = None
	light_intensity: int | None = None
	soil_moisture: int | None = None
	custom_value: float | None = None
	timestamp: datetime


class ReadingHistory(WireModel):
	greenhouse_id: str
	hours: int
	count: int
	readings: list[ReadingRead]
