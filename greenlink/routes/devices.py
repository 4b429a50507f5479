"""Dashboard device management and control routes."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status

from greenlink.auth.dependencies import AuthPrincipal, get_current_principal, require_role
from greenlink.database import get_store
from greenlink.errors import GreenLinkError, to_http_exception
from greenlink.models.enums import CONTROL_ROLES
from greenlink.repositories import SqlStore
from greenlink.schemas.device import (
	AutomationUpdate,
	ControlHistory,
	ControlLogRead,
	ControlRequest,
	ControlResult,
	DeviceCreate,
	DeviceList,
	DeviceRead,
	DeviceStats,
	DeviceTypeStats,
)
from greenlink.services.dispatcher import EventDispatcher, get_dispatcher

router = APIRouter(tags=["devices"])

_operators = require_role(*CONTROL_ROLES)


@router.get("/greenhouses/{greenhouse_id}/devices", response_model=DeviceList)
async def list_devices(
	greenhouse_id: str,
	store: SqlStore = Depends(get_store),
	_principal: AuthPrincipal = Depends(get_current_principal),
) -> DeviceList:
	devices = await store.list_devices(greenhouse_id)
	return DeviceList(
		greenhouse_id=greenhouse_id,
		count=len(devices),
		devices=[DeviceRead.model_validate(device) for device in devices],
	)


@router.post(
	"/greenhouses/{greenhouse_id}/devices",
	response_model=DeviceRead,
	status_code=status.HTTP_201_CREATED,
)
async def create_device(
	greenhouse_id: str,
	payload: DeviceCreate,
	dispatcher: EventDispatcher = Depends(get_dispatcher),
	_principal: AuthPrincipal = Depends(_operators),
) -> DeviceRead:
	try:
		device = await dispatcher.add_device(greenhouse_id, payload)
	except GreenLinkError as exc:
		raise to_http_exception(exc) from exc
	return DeviceRead.model_validate(device)


@router.get("/greenhouses/{greenhouse_id}/devices/stats", response_model=DeviceStats)
async def device_stats(
	greenhouse_id: str,
	store: SqlStore = Depends(get_store),
	_principal: AuthPrincipal = Depends(get_current_principal),
) -> DeviceStats:
	buckets: dict[str, DeviceTypeStats] = {}
	for device in await store.list_devices(greenhouse_id):
		bucket = buckets.get(device.device_type)
		if bucket is None:
			bucket = DeviceTypeStats(device_type=device.device_type)
			buckets[device.device_type] = bucket
		bucket.total_devices += 1
		bucket.active_devices += int(device.is_active)
		bucket.auto_mode_devices += int(device.auto_mode)
		bucket.total_power_consumption += device.power_consumption if device.is_active else 0.0

	by_type = sorted(buckets.values(), key=lambda item: item.device_type.value)
	return DeviceStats(
		greenhouse_id=greenhouse_id,
		by_type=by_type,
		total_devices=sum(item.total_devices for item in by_type),
		total_active_devices=sum(item.active_devices for item in by_type),
		total_auto_mode_devices=sum(item.auto_mode_devices for item in by_type),
		total_power_consumption=sum(item.total_power_consumption for item in by_type),
	)


@router.get("/greenhouses/{greenhouse_id}/control-history", response_model=ControlHistory)
async def control_history(
	greenhouse_id: str,
	device_id: str | None = Query(default=None, alias="deviceId"),
	start: datetime | None = Query(default=None, alias="startDate"),
	end: datetime | None = Query(default=None, alias="endDate"),
	limit: int = Query(default=50, ge=1, le=500),
	store: SqlStore = Depends(get_store),
	_principal: AuthPrincipal = Depends(get_current_principal),
) -> ControlHistory:
	entries = await store.control_history(greenhouse_id, device_id=device_id, start=start, end=end, limit=limit)
	return ControlHistory(
		greenhouse_id=greenhouse_id,
		count=len(entries),
		entries=[ControlLogRead.model_validate(entry) for entry in entries],
	)


@router.post(
	"/greenhouses/{greenhouse_id}/setup/iot-devices",
	response_model=DeviceList,
	status_code=status.HTTP_201_CREATED,
)
async def setup_iot_devices(
	greenhouse_id: str,
	dispatcher: EventDispatcher = Depends(get_dispatcher),
	store: SqlStore = Depends(get_store),
	_principal: AuthPrincipal = Depends(_operators),
) -> DeviceList:
	"""Seed the canonical firmware actuators; existing ones are left alone."""
	try:
		await dispatcher.setup_default_devices(greenhouse_id)
	except GreenLinkError as exc:
		raise to_http_exception(exc) from exc
	devices = await store.list_devices(greenhouse_id)
	return DeviceList(
		greenhouse_id=greenhouse_id,
		count=len(devices),
		devices=[DeviceRead.model_validate(device) for device in devices],
	)


@router.delete("/devices/{device_id}", response_model=DeviceRead)
async def delete_device(
	device_id: str,
	dispatcher: EventDispatcher = Depends(get_dispatcher),
	_principal: AuthPrincipal = Depends(_operators),
) -> DeviceRead:
	try:
		device = await dispatcher.remove_device(device_id)
	except GreenLinkError as exc:
		raise to_http_exception(exc) from exc
	return DeviceRead.model_validate(device)


@router.post("/devices/{device_id}/control", response_model=ControlResult)
async def control_device(
	device_id: str,
	payload: ControlRequest,
	dispatcher: EventDispatcher = Depends(get_dispatcher),
	principal: AuthPrincipal = Depends(_operators),
) -> ControlResult:
	try:
		outcome = await dispatcher.control_device(principal.as_actor(), device_id, payload.action, payload.value)
	except GreenLinkError as exc:
		raise to_http_exception(exc) from exc
	return ControlResult(
		device=DeviceRead.model_validate(outcome.device),
		message=outcome.message,
		control_log=ControlLogRead.model_validate(outcome.log_entry),
	)


@router.post("/devices/{device_id}/automation", response_model=DeviceRead)
async def update_automation(
	device_id: str,
	payload: AutomationUpdate,
	dispatcher: EventDispatcher = Depends(get_dispatcher),
	_principal: AuthPrincipal = Depends(_operators),
) -> DeviceRead:
	try:
		device = await dispatcher.update_automation(device_id, payload.automation_rules, payload.auto_mode)
	except GreenLinkError as exc:
		raise to_http_exception(exc) from exc
	return DeviceRead.model_validate(device)
