"""Threshold evaluation: a pure mapping of a reading onto alert intents.

Nothing in this module touches the store or the room registry; the
dispatcher persists and broadcasts whatever ``evaluate`` returns.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Literal

from greenlink.models.enums import (
	AlertSeverityEnum,
	AlertSourceEnum,
	AlertTypeEnum,
)
from greenlink.schemas.settings import AlertThresholds

SEVERITY_BY_TYPE: dict[AlertTypeEnum, AlertSeverityEnum] = {
	AlertTypeEnum.temperature_high: AlertSeverityEnum.high,
	AlertTypeEnum.temperature_low: AlertSeverityEnum.high,
	AlertTypeEnum.soil_moisture_low: AlertSeverityEnum.high,
	AlertTypeEnum.humidity_high: AlertSeverityEnum.medium,
	AlertTypeEnum.humidity_low: AlertSeverityEnum.medium,
	AlertTypeEnum.light_level_low: AlertSeverityEnum.medium,
	AlertTypeEnum.water_level_low: AlertSeverityEnum.high,
	AlertTypeEnum.sensor_offline: AlertSeverityEnum.high,
	AlertTypeEnum.power_consumption_high: AlertSeverityEnum.medium,
	AlertTypeEnum.device_malfunction: AlertSeverityEnum.critical,
}


@dataclass(frozen=True, slots=True)
class _Check:
	field: str
	label: str
	unit: str
	dimension: str
	bound: Literal["high", "low"]
	alert_type: AlertTypeEnum


# Order is the order intents come out in for a single reading.
CHECKS: tuple[_Check, ...] = (
	_Check("temperature", "Temperature", "°C", "temperature", "high", AlertTypeEnum.temperature_high),
	_Check("temperature", "Temperature", "°C", "temperature", "low", AlertTypeEnum.temperature_low),
	_Check("humidity", "Humidity", "%", "humidity", "high", AlertTypeEnum.humidity_high),
	_Check("humidity", "Humidity", "%", "humidity", "low", AlertTypeEnum.humidity_low),
	_Check("soil_moisture", "Soil moisture", "", "soil_moisture", "low", AlertTypeEnum.soil_moisture_low),
	_Check("light_intensity", "Light level", " lux", "light_level", "low", AlertTypeEnum.light_level_low),
)


@dataclass(frozen=True, slots=True)
class AlertIntent:
	"""An evaluator's proposal to create an Alert, prior to persistence."""

	greenhouse_id: str
	alert_type: AlertTypeEnum
	severity: AlertSeverityEnum
	message: str
	current_value: float
	threshold_value: float
	sensor_type: AlertSourceEnum
	device_id: str | None = None


def _bound_value(thresholds: AlertThresholds, check: _Check) -> float | None:
	return getattr(getattr(thresholds, check.dimension), check.bound)


def _violations(reading: Any, thresholds: AlertThresholds) -> Iterator[tuple[_Check, float, float]]:
	for check in CHECKS:
		observed = getattr(reading, check.field, None)
		if observed is None:
			continue
		limit = _bound_value(thresholds, check)
		if limit is None:
			continue
		if check.bound == "high" and observed > limit:
			yield check, float(observed), float(limit)
		elif check.bound == "low" and observed < limit:
			yield check, float(observed), float(limit)


def _format(value: float, unit: str) -> str:
	return f"{value:g}{unit}"


def evaluate(reading: Any, thresholds: AlertThresholds) -> list[AlertIntent]:
	"""Return one intent per violated, configured bound.

	``reading`` is anything exposing ``greenhouse_id``, ``device_id``,
	``sensor_type`` and the measured attributes (an ORM ``Reading`` in
	practice).  Bounds are exclusive: a value equal to the bound is fine.
	"""
	intents: list[AlertIntent] = []
	for check, observed, limit in _violations(reading, thresholds):
		direction = "above" if check.bound == "high" else "below"
		message = (
			f"{check.label} {_format(observed, check.unit)} is {direction} the "
			f"{check.bound} threshold of {_format(limit, check.unit)}"
		)
		intents.append(
			AlertIntent(
				greenhouse_id=reading.greenhouse_id,
				alert_type=check.alert_type,
				severity=SEVERITY_BY_TYPE[check.alert_type],
				message=message,
				current_value=observed,
				threshold_value=limit,
				sensor_type=AlertSourceEnum(str(reading.sensor_type)),
				device_id=reading.device_id,
			)
		)
	return intents


def evaluate_device_fault(device: Any, fault: str | None) -> list[AlertIntent]:
	"""Map a device-reported malfunction onto a single critical intent."""
	if fault is None or not fault.strip():
		return []
	return [
		AlertIntent(
			greenhouse_id=device.greenhouse_id,
			alert_type=AlertTypeEnum.device_malfunction,
			severity=SEVERITY_BY_TYPE[AlertTypeEnum.device_malfunction],
			message=f"{device.device_name} reported a malfunction: {fault.strip()}",
			current_value=0.0,
			threshold_value=0.0,
			sensor_type=AlertSourceEnum.device,
			device_id=device.device_id,
		)
	]
