"""Pydantic request/response schemas for devices and the control log."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import Field

from greenlink.models.enums import (
	ControlSourceEnum,
	DeviceActionEnum,
	DeviceStatusEnum,
	DeviceTypeEnum,
)
from greenlink.schemas.base import WireModel


class AutomationRules(WireModel):
	temperature_high: float | None = Field(default=None, ge=-40, le=80)
	temperature_low: float | None = Field(default=None, ge=-40, le=80)
	humidity_high: float | None = Field(default=None, ge=0, le=100)
	humidity_low: float | None = Field(default=None, ge=0, le=100)
	soil_moisture_low: float | None = Field(default=None, ge=0, le=4095)
	light_level_low: float | None = Field(default=None, ge=0, le=10000)


class DeviceCreate(WireModel):
	device_id: str = Field(min_length=1, max_length=64)
	device_name: str = Field(min_length=2, max_length=50)
	device_type: DeviceTypeEnum
	status: DeviceStatusEnum = DeviceStatusEnum.off
	intensity: int = Field(default=0, ge=0, le=100)
	auto_mode: bool = False
	power_consumption: float = Field(default=0.0, ge=0)
	location: str = "Main Greenhouse"
	automation_rules: AutomationRules = Field(default_factory=AutomationRules)


class DeviceRead(WireModel):
	id: uuid.UUID | None = None
	device_id: str
	greenhouse_id: str
	device_type: DeviceTypeEnum
	device_name: str
	status: DeviceStatusEnum
	intensity: int
	auto_mode: bool
	automation_rules: dict[str, Any] = Field(default_factory=dict)
	power_consumption: float
	location: str
	last_activated: datetime | None = None
	created_at: datetime | None = None
	updated_at: datetime | None = None


class DeviceList(WireModel):
	greenhouse_id: str
	count: int
	devices: list[DeviceRead]


class ControlRequest(WireModel):
	# Kept as a plain string so unknown verbs surface as invalid_action, not 422.
	action: str = Field(min_length=1)
	value: Any = None


class AutomationUpdate(WireModel):
	automation_rules: AutomationRules | None = None
	auto_mode: bool | None = None


class ControlLogRead(WireModel):
	id: int | None = None
	greenhouse_id: str
	device_id: str
	device_name: str
	device_type: DeviceTypeEnum
	action: DeviceActionEnum
	previous_status: DeviceStatusEnum
	new_status: DeviceStatusEnum
	intensity: int | None = None
	control_source: ControlSourceEnum
	user_id: str | None = None
	username: str | None = None
	notes: str | None = None
	timestamp: datetime


class ControlResult(WireModel):
	device: DeviceRead
	message: str
	control_log: ControlLogRead


class ControlHistory(WireModel):
	greenhouse_id: str
	count: int
	entries: list[ControlLogRead]


class DeviceTypeStats(WireModel):
	device_type: DeviceTypeEnum
	total_devices: int = 0
	active_devices: int = 0
	auto_mode_devices: int = 0
	total_power_consumption: float = 0.0


class DeviceStats(WireModel):
	greenhouse_id: str
	by_type: list[DeviceTypeStats] = Field(default_factory=list)
	total_devices: int = 0
	total_active_devices: int = 0
	total_auto_mode_devices: int = 0
	total_power_consumption: float = 0.0


class DeviceCommandSnapshot(WireModel):
	"""Current desired state served to a polling ESP32."""

	device_id: str
	status: DeviceStatusEnum
	intensity: int
	auto_mode: bool
	automation_rules: dict[str, Any] = Field(default_factory=dict)
	last_update: datetime | None = None


class ActuatorCommand(WireModel):
	device: str | None = None
	action: str
	state: bool
	timestamp: datetime


class ActuatorCommandList(WireModel):
	greenhouse_id: str
	message: str
	commands: list[ActuatorCommand] = Field(default_factory=list)


class CommandAck(WireModel):
	"""Reply sent to the subscriber that issued a ``device-control`` command."""

	device_id: str
	action: str
	greenhouse_id: str
	relayed_to: int = 0
	applied: bool = False
	error: dict[str, str] | None = None


class DeviceCommandIn(WireModel):
	"""``device-control`` frame sent by a dashboard subscriber."""

	device_id: str | None = None
	action: str | None = None
	greenhouse_id: str | None = None
	value: Any = None
