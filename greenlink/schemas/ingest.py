"""Pydantic schemas for telemetry ingestion payloads.

Wire models (``*In``) describe what the firmware sends.  The adapters in
``greenlink.services.adapters`` turn them into a ``TelemetryEvent`` whose
``samples`` are a tagged union with one variant per sensor kind, so the
dispatcher never inspects loose optional fields.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, FiniteFloat, field_validator

from greenlink.models.enums import SensorTypeEnum
from greenlink.schemas.base import WireModel

# ── Wire payloads ───────────────────────────────────────────────────────────


class TelemetryIn(WireModel):
	"""Combined ESP32 payload; every measured field is optional."""

	device_id: str
	greenhouse_id: str | None = None
	temperature: FiniteFloat | None = None
	humidity: FiniteFloat | None = None
	soil_moisture: FiniteFloat | None = None
	light_intensity: FiniteFloat | None = None
	water_level: FiniteFloat | None = None
	timestamp: datetime | None = None

	@field_validator("device_id")
	@classmethod
	def _device_id_not_blank(cls, value: str) -> str:
		value = value.strip()
		if not value:
			raise ValueError("deviceId is required")
		return value


class NestedSensorsIn(WireModel):
	temperature: FiniteFloat | None = None
	humidity: FiniteFloat | None = None
	soil_moisture: FiniteFloat | None = None
	light_level: FiniteFloat | None = None
	water_level: FiniteFloat | None = None


class NestedActuatorsIn(WireModel):
	water_pump: bool | None = None
	window: bool | None = None


class NestedTelemetryIn(WireModel):
	"""Older firmware envelope with ``sensors`` / ``actuators`` sub-objects."""

	device_id: str
	greenhouse_id: str | None = None
	sensors: NestedSensorsIn = Field(default_factory=NestedSensorsIn)
	actuators: NestedActuatorsIn | None = None
	timestamp: datetime | None = None

	@field_validator("device_id")
	@classmethod
	def _device_id_not_blank(cls, value: str) -> str:
		value = value.strip()
		if not value:
			raise ValueError("deviceId is required")
		return value


class BulkTelemetryIn(WireModel):
	readings: list[dict[str, Any]] = Field(min_length=1)


class StatusReportIn(WireModel):
	"""Device-originated state change (automation loop, physical switch)."""

	device_id: str = Field(min_length=1)
	status: str = Field(min_length=1)
	auto_mode: bool | None = None
	intensity: int | None = Field(default=None, ge=0, le=100)
	error: str | None = None


# ── Tagged samples ──────────────────────────────────────────────────────────


class ClimateSample(BaseModel):
	sensor_type: Literal[SensorTypeEnum.dht11] = SensorTypeEnum.dht11
	temperature: FiniteFloat | None = None
	humidity: FiniteFloat | None = None


class LightSample(BaseModel):
	sensor_type: Literal[SensorTypeEnum.ldr] = SensorTypeEnum.ldr
	light_intensity: FiniteFloat


class SoilMoistureSample(BaseModel):
	sensor_type: Literal[SensorTypeEnum.soil_moisture] = SensorTypeEnum.soil_moisture
	soil_moisture: FiniteFloat


class WaterLevelSample(BaseModel):
	sensor_type: Literal[SensorTypeEnum.ultrasonic] = SensorTypeEnum.ultrasonic
	water_level: FiniteFloat


SensorSample = Annotated[
	ClimateSample | LightSample | SoilMoistureSample | WaterLevelSample,
	Field(discriminator="sensor_type"),
]


class TelemetryEvent(BaseModel):
	device_id: str
	greenhouse_id: str
	samples: list[SensorSample] = Field(default_factory=list)
	actuator_reports: list[StatusReportIn] = Field(default_factory=list)
	reported_at: datetime | None = None


# ── Receipts ────────────────────────────────────────────────────────────────


class IngestWarning(WireModel):
	message: str
	sensor_type: str | None = None
	field: str | None = None
	index: int | None = None


class IngestReceipt(WireModel):
	device_id: str
	greenhouse_id: str
	status: str
	readings_created: int = 0
	alerts_created: int = 0
	reading_ids: list[int] = Field(default_factory=list)
	alert_ids: list[uuid.UUID] = Field(default_factory=list)
	warnings: list[IngestWarning] = Field(default_factory=list)
	timestamp: datetime


class BulkIngestReceipt(WireModel):
	status: str
	processed: int = 0
	total: int = 0
	receipts: list[IngestReceipt] = Field(default_factory=list)
	warnings: list[IngestWarning] = Field(default_factory=list)
