"""Applies inbound events to durable entities.

The mutator validates and writes; it never broadcasts and never commits.
The dispatcher owns the unit of work and publishes only after the store
confirms the commit.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog

from greenlink.errors import (
	AlreadyResolvedError,
	BadRequestError,
	InvalidActionError,
	NotFoundError,
	ValidationError,
)
from greenlink.models.alerts import Alert
from greenlink.models.devices import EMPTY_AUTOMATION_RULES, Device, DeviceControlLog
from greenlink.models.enums import (
	CONTROL_ACTIONS,
	ControlSourceEnum,
	DeviceActionEnum,
	DeviceStatusEnum,
	DeviceTypeEnum,
	SensorTypeEnum,
)
from greenlink.models.readings import Reading
from greenlink.repositories import SqlStore
from greenlink.schemas.device import AutomationRules, DeviceCreate
from greenlink.schemas.ingest import (
	ClimateSample,
	LightSample,
	SensorSample,
	SoilMoistureSample,
	WaterLevelSample,
)
from greenlink.services.thresholds import AlertIntent

logger = structlog.get_logger("greenlink.mutator")

VALID_RANGES: dict[str, tuple[float, float]] = {
	"temperature": (-40.0, 80.0),
	"humidity": (0.0, 100.0),
	"soil_moisture": (0.0, 4095.0),
	"light_intensity": (0.0, 10000.0),
}

SENSOR_LOCATIONS: dict[SensorTypeEnum, str] = {
	SensorTypeEnum.dht11: "Main Greenhouse",
	SensorTypeEnum.ldr: "Main Greenhouse",
	SensorTypeEnum.soil_moisture: "Main Greenhouse",
	SensorTypeEnum.ultrasonic: "Water Tank",
}

OPENABLE_TYPES = frozenset({DeviceTypeEnum.servo, DeviceTypeEnum.window})

STATUS_BY_ACTION: dict[DeviceActionEnum, DeviceStatusEnum] = {
	DeviceActionEnum.turn_on: DeviceStatusEnum.on,
	DeviceActionEnum.turn_off: DeviceStatusEnum.off,
	DeviceActionEnum.open: DeviceStatusEnum.open,
	DeviceActionEnum.close: DeviceStatusEnum.closed,
}

# Canonical actuators the firmware addresses by fixed id.
DEFAULT_DEVICES: tuple[dict[str, Any], ...] = (
	{
		"device_id": "WATER_PUMP_001",
		"device_name": "Water Pump",
		"device_type": DeviceTypeEnum.water_pump,
		"status": DeviceStatusEnum.off,
		"power_consumption": 25.0,
	},
	{
		"device_id": "WATER_VALVE_001",
		"device_name": "Irrigation Valve",
		"device_type": DeviceTypeEnum.water_valve,
		"status": DeviceStatusEnum.off,
		"power_consumption": 10.0,
	},
	{
		"device_id": "WINDOW_SERVO_001",
		"device_name": "Window Control",
		"device_type": DeviceTypeEnum.window,
		"status": DeviceStatusEnum.closed,
		"power_consumption": 5.0,
	},
	{
		"device_id": "FAN_001",
		"device_name": "Ventilation Fan",
		"device_type": DeviceTypeEnum.fan,
		"status": DeviceStatusEnum.off,
		"power_consumption": 30.0,
	},
	{
		"device_id": "LED_LIGHT_001",
		"device_name": "LED Grow Light",
		"device_type": DeviceTypeEnum.led_light,
		"status": DeviceStatusEnum.off,
		"power_consumption": 15.0,
		"intensity": 100,
	},
)


@dataclass(frozen=True, slots=True)
class Actor:
	user_id: str
	username: str


@dataclass(slots=True)
class CommandOutcome:
	previous_status: DeviceStatusEnum
	new_status: DeviceStatusEnum
	device: Device
	log_entry: DeviceControlLog
	message: str


@dataclass(slots=True)
class StatusReportOutcome:
	previous_status: DeviceStatusEnum
	device: Device
	log_entry: DeviceControlLog | None


def _now() -> datetime:
	return datetime.now(UTC)


def parse_action(action: str) -> DeviceActionEnum:
	try:
		return DeviceActionEnum(action.strip().lower())
	except (AttributeError, ValueError) as exc:
		raise InvalidActionError(f"Invalid action: {action!r}") from exc


def _check_range(field: str, value: float | None) -> None:
	if value is None:
		return
	low, high = VALID_RANGES[field]
	if not low <= value <= high:
		raise ValidationError(
			f"{field} value {value:g} is outside the allowed range [{low:g}, {high:g}]",
			field=field,
		)


def validate_sample(sample: SensorSample) -> None:
	"""Reject out-of-range values; never clamps."""
	if isinstance(sample, ClimateSample):
		_check_range("temperature", sample.temperature)
		_check_range("humidity", sample.humidity)
	elif isinstance(sample, LightSample):
		_check_range("light_intensity", sample.light_intensity)
	elif isinstance(sample, SoilMoistureSample):
		_check_range("soil_moisture", sample.soil_moisture)


def _parse_intensity(value: Any) -> int:
	if value is None or isinstance(value, bool):
		raise BadRequestError("set_intensity requires a numeric value")
	try:
		numeric = float(value)
	except (TypeError, ValueError) as exc:
		raise BadRequestError("set_intensity requires a numeric value") from exc
	return int(round(max(0.0, min(100.0, numeric))))


def _parse_status(status: str) -> DeviceStatusEnum:
	try:
		return DeviceStatusEnum(status.strip().upper())
	except ValueError as exc:
		raise ValidationError(f"Unknown device status: {status!r}", field="status") from exc


class StateMutator:
	def __init__(self, store: SqlStore):
		self.store = store

	# ── Readings ────────────────────────────────────────────────────────────

	async def apply_reading(self, greenhouse_id: str, device_id: str, sample: SensorSample) -> Reading:
		validate_sample(sample)
		reading = Reading(
			greenhouse_id=greenhouse_id,
			sensor_type=sample.sensor_type,
			device_id=device_id,
			location=SENSOR_LOCATIONS[sample.sensor_type],
			timestamp=_now(),
		)
		# Raw ADC and echo counts are truncated only after the range check.
		if isinstance(sample, ClimateSample):
			reading.temperature = sample.temperature
			reading.humidity = sample.humidity
		elif isinstance(sample, LightSample):
			reading.light_intensity = int(sample.light_intensity)
		elif isinstance(sample, SoilMoistureSample):
			reading.soil_moisture = int(sample.soil_moisture)
		elif isinstance(sample, WaterLevelSample):
			reading.custom_value = float(int(sample.water_level))
		return await self.store.add_reading(reading)

	# ── Devices ─────────────────────────────────────────────────────────────

	async def require_device(self, device_id: str, *, for_update: bool = False) -> Device:
		device = await self.store.get_device(device_id, for_update=for_update)
		if device is None:
			raise NotFoundError(f"Device {device_id} not found")
		return device

	async def apply_device_command(
		self,
		device_id: str,
		action: str,
		value: Any = None,
		*,
		source: ControlSourceEnum = ControlSourceEnum.manual,
		actor: Actor | None = None,
		notes: str | None = None,
	) -> CommandOutcome:
		verb = parse_action(action)
		if verb not in CONTROL_ACTIONS:
			raise InvalidActionError(f"Action {verb.value!r} does not change device state")

		device = await self.require_device(device_id, for_update=True)
		previous_status = DeviceStatusEnum(device.status)
		new_status = previous_status
		name = device.device_name

		if verb in STATUS_BY_ACTION:
			new_status = STATUS_BY_ACTION[verb]
			message = f"{name} {_verb_past_tense(verb)}"
		elif verb == DeviceActionEnum.toggle:
			if device.device_type in OPENABLE_TYPES:
				opened = previous_status == DeviceStatusEnum.open
				new_status = DeviceStatusEnum.closed if opened else DeviceStatusEnum.open
			else:
				switched_on = previous_status == DeviceStatusEnum.on
				new_status = DeviceStatusEnum.off if switched_on else DeviceStatusEnum.on
			message = f"{name} {new_status.value.lower()}"
		elif verb == DeviceActionEnum.set_intensity:
			device.intensity = _parse_intensity(value)
			message = f"{name} intensity set to {device.intensity}%"
		else:
			if value is None:
				device.auto_mode = not device.auto_mode
			elif isinstance(value, bool):
				device.auto_mode = value
			else:
				raise BadRequestError("set_auto_mode expects a boolean value")
			message = f"{name} auto mode {'enabled' if device.auto_mode else 'disabled'}"

		if verb in STATUS_BY_ACTION or verb == DeviceActionEnum.toggle:
			device.status = new_status
			device.last_activated = _now()

		device = await self.store.save_device(device)
		entry = await self.store.add_control_log(
			DeviceControlLog(
				greenhouse_id=device.greenhouse_id,
				device_id=device.device_id,
				device_name=device.device_name,
				device_type=device.device_type,
				action=verb,
				previous_status=previous_status,
				new_status=new_status,
				intensity=device.intensity,
				control_source=source,
				user_id=actor.user_id if actor else None,
				username=actor.username if actor else None,
				notes=notes,
				timestamp=_now(),
			)
		)
		logger.info(
			"device_command_applied",
			device_id=device.device_id,
			action=verb.value,
			previous_status=previous_status.value,
			new_status=new_status.value,
			source=source.value,
		)
		return CommandOutcome(previous_status, new_status, device, entry, message)

	async def apply_device_status_report(
		self,
		device_id: str,
		status: str,
		auto_mode: bool | None = None,
		intensity: int | None = None,
	) -> StatusReportOutcome:
		"""Device-driven update; logs only when the status actually changed."""
		new_status = _parse_status(status)
		device = await self.require_device(device_id, for_update=True)
		previous_status = DeviceStatusEnum(device.status)

		if auto_mode is not None:
			device.auto_mode = auto_mode
		if intensity is not None:
			device.intensity = max(0, min(100, int(intensity)))
		changed = new_status != previous_status
		if changed:
			device.status = new_status
			device.last_activated = _now()

		device = await self.store.save_device(device)
		entry: DeviceControlLog | None = None
		if changed:
			entry = await self.store.add_control_log(
				DeviceControlLog(
					greenhouse_id=device.greenhouse_id,
					device_id=device.device_id,
					device_name=device.device_name,
					device_type=device.device_type,
					action=DeviceActionEnum.auto_control,
					previous_status=previous_status,
					new_status=new_status,
					intensity=device.intensity,
					control_source=ControlSourceEnum.iot_device,
					notes="status reported by device",
					timestamp=_now(),
				)
			)
		return StatusReportOutcome(previous_status, device, entry)

	async def add_device(self, greenhouse_id: str, payload: DeviceCreate) -> Device:
		if await self.store.get_device(payload.device_id) is not None:
			raise BadRequestError(f"Device {payload.device_id} already exists")
		device = Device(
			device_id=payload.device_id,
			greenhouse_id=greenhouse_id,
			device_type=payload.device_type,
			device_name=payload.device_name,
			status=payload.status,
			intensity=payload.intensity,
			auto_mode=payload.auto_mode,
			automation_rules=payload.automation_rules.model_dump(by_alias=True),
			power_consumption=payload.power_consumption,
			location=payload.location,
			last_activated=None,
		)
		return await self.store.add_device(device)

	async def remove_device(self, device_id: str) -> Device:
		device = await self.store.delete_device(device_id)
		if device is None:
			raise NotFoundError(f"Device {device_id} not found")
		return device

	async def update_automation(
		self,
		device_id: str,
		rules: AutomationRules | None,
		auto_mode: bool | None,
	) -> Device:
		device = await self.require_device(device_id, for_update=True)
		if rules is not None:
			merged = dict(device.automation_rules or EMPTY_AUTOMATION_RULES)
			merged.update(rules.model_dump(by_alias=True, exclude_unset=True))
			device.automation_rules = merged
		if auto_mode is not None:
			device.auto_mode = auto_mode
		return await self.store.save_device(device)

	async def ensure_default_devices(self, greenhouse_id: str) -> list[Device]:
		"""Create the canonical firmware actuators; returns only the new ones."""
		created: list[Device] = []
		for defaults in DEFAULT_DEVICES:
			if await self.store.get_device(defaults["device_id"]) is not None:
				continue
			payload = DeviceCreate(auto_mode=True, **defaults)
			created.append(await self.add_device(greenhouse_id, payload))
		return created

	# ── Alerts ──────────────────────────────────────────────────────────────

	async def record_alert(self, intent: AlertIntent) -> Alert:
		alert = Alert(
			greenhouse_id=intent.greenhouse_id,
			alert_type=intent.alert_type,
			severity=intent.severity,
			message=intent.message,
			current_value=intent.current_value,
			threshold_value=intent.threshold_value,
			sensor_type=intent.sensor_type,
			device_id=intent.device_id,
			is_resolved=False,
			resolved_at=None,
			auto_resolved=False,
		)
		return await self.store.add_alert(alert)

	async def resolve_alert(self, alert_id: uuid.UUID, actor: str, note: str | None) -> Alert:
		alert = await self.store.get_alert(alert_id, for_update=True)
		if alert is None:
			raise NotFoundError(f"Alert {alert_id} not found")
		if alert.is_resolved:
			raise AlreadyResolvedError("Alert is already resolved")
		alert.is_resolved = True
		alert.resolved_at = _now()
		alert.resolved_by = actor
		alert.action_taken = note
		return await self.store.save_alert(alert)


def _verb_past_tense(verb: DeviceActionEnum) -> str:
	return {
		DeviceActionEnum.turn_on: "turned on",
		DeviceActionEnum.turn_off: "turned off",
		DeviceActionEnum.open: "opened",
		DeviceActionEnum.close: "closed",
	}[verb]
