"""Wire-format adapters: firmware payloads → ``TelemetryEvent``."""

from __future__ import annotations

from typing import Any

import pydantic

from greenlink.errors import BadRequestError
from greenlink.schemas.ingest import (
	BulkTelemetryIn,
	ClimateSample,
	LightSample,
	NestedTelemetryIn,
	SensorSample,
	SoilMoistureSample,
	StatusReportIn,
	TelemetryEvent,
	TelemetryIn,
	WaterLevelSample,
)

PUMP_DEVICE_ID = "WATER_PUMP_001"
WINDOW_DEVICE_ID = "WINDOW_SERVO_001"


def _describe(exc: pydantic.ValidationError) -> str:
	first = exc.errors()[0]
	location = ".".join(str(part) for part in first.get("loc", ())) or "payload"
	return f"{location}: {first.get('msg', 'invalid value')}"


def _parse(model: type[pydantic.BaseModel], payload: Any) -> Any:
	try:
		return model.model_validate(payload)
	except pydantic.ValidationError as exc:
		raise BadRequestError(f"Malformed telemetry payload ({_describe(exc)})") from exc


def build_samples(
	*,
	temperature: float | None,
	humidity: float | None,
	soil_moisture: float | None,
	light_intensity: float | None,
	water_level: float | None,
) -> list[SensorSample]:
	samples: list[SensorSample] = []
	if temperature is not None or humidity is not None:
		samples.append(ClimateSample(temperature=temperature, humidity=humidity))
	if light_intensity is not None:
		samples.append(LightSample(light_intensity=light_intensity))
	if soil_moisture is not None:
		samples.append(SoilMoistureSample(soil_moisture=soil_moisture))
	# A zero or negative echo distance means the ultrasonic sensor timed out.
	if water_level is not None and water_level > 0:
		samples.append(WaterLevelSample(water_level=water_level))
	return samples


def adapt_flat(payload: Any, default_greenhouse_id: str) -> TelemetryEvent:
	item: TelemetryIn = _parse(TelemetryIn, payload)
	return TelemetryEvent(
		device_id=item.device_id,
		greenhouse_id=item.greenhouse_id or default_greenhouse_id,
		samples=build_samples(
			temperature=item.temperature,
			humidity=item.humidity,
			soil_moisture=item.soil_moisture,
			light_intensity=item.light_intensity,
			water_level=item.water_level,
		),
		reported_at=item.timestamp,
	)


def adapt_nested(payload: Any, default_greenhouse_id: str) -> TelemetryEvent:
	item: NestedTelemetryIn = _parse(NestedTelemetryIn, payload)
	sensors = item.sensors
	reports: list[StatusReportIn] = []
	if item.actuators is not None:
		if item.actuators.water_pump is not None:
			reports.append(
				StatusReportIn(
					device_id=PUMP_DEVICE_ID,
					status="ON" if item.actuators.water_pump else "OFF",
				)
			)
		if item.actuators.window is not None:
			reports.append(
				StatusReportIn(
					device_id=WINDOW_DEVICE_ID,
					status="OPEN" if item.actuators.window else "CLOSED",
				)
			)
	return TelemetryEvent(
		device_id=item.device_id,
		greenhouse_id=item.greenhouse_id or default_greenhouse_id,
		samples=build_samples(
			temperature=sensors.temperature,
			humidity=sensors.humidity,
			soil_moisture=sensors.soil_moisture,
			light_intensity=sensors.light_level,
			water_level=sensors.water_level,
		),
		actuator_reports=reports,
		reported_at=item.timestamp,
	)


def adapt_bulk(payload: Any, default_greenhouse_id: str) -> list[TelemetryEvent]:
	"""Validate the whole batch up front; one bad item rejects the request."""
	batch: BulkTelemetryIn = _parse(BulkTelemetryIn, payload)
	events: list[TelemetryEvent] = []
	for index, raw in enumerate(batch.readings):
		try:
			events.append(adapt_flat(raw, default_greenhouse_id))
		except BadRequestError as exc:
			raise BadRequestError(f"readings[{index}]: {exc.detail}") from exc
	return events


def parse_status_report(payload: Any) -> StatusReportIn:
	return _parse(StatusReportIn, payload)
