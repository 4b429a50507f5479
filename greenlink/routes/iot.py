"""Device-facing telemetry and command routes (ESP32 firmware)."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status

from greenlink.auth.dependencies import require_device_key
from greenlink.config import get_settings
from greenlink.database import get_store
from greenlink.errors import GreenLinkError, NotFoundError, to_http_exception
from greenlink.models.enums import DeviceStatusEnum, DeviceTypeEnum
from greenlink.repositories import SqlStore
from greenlink.schemas.device import (
	ActuatorCommand,
	ActuatorCommandList,
	DeviceCommandSnapshot,
	DeviceRead,
)
from greenlink.schemas.ingest import BulkIngestReceipt, IngestReceipt, TelemetryEvent
from greenlink.services.adapters import adapt_bulk, adapt_flat, adapt_nested, parse_status_report
from greenlink.services.dispatcher import EventDispatcher, get_dispatcher

router = APIRouter(prefix="/iot", tags=["iot"], dependencies=[Depends(require_device_key)])

# Firmware short name and the status that means "on" for each actuator kind.
FIRMWARE_ACTUATORS: tuple[tuple[DeviceTypeEnum, str, DeviceStatusEnum], ...] = (
	(DeviceTypeEnum.water_pump, "pump", DeviceStatusEnum.on),
	(DeviceTypeEnum.water_valve, "valve", DeviceStatusEnum.on),
	(DeviceTypeEnum.fan, "fan", DeviceStatusEnum.on),
	(DeviceTypeEnum.led_light, "light", DeviceStatusEnum.on),
	(DeviceTypeEnum.window, "window", DeviceStatusEnum.open),
)


async def _ingest_one(dispatcher: EventDispatcher, event: TelemetryEvent) -> IngestReceipt:
	try:
		receipt = await dispatcher.handle_ingest(event)
	except GreenLinkError as exc:
		raise to_http_exception(exc) from exc
	if receipt.status == "failed":
		raise HTTPException(
			status_code=status.HTTP_400_BAD_REQUEST,
			detail={
				"error": "validation_error",
				"message": "No sensor value passed validation",
				"warnings": [warning.to_wire() for warning in receipt.warnings],
			},
		)
	return receipt


@router.post("", response_model=IngestReceipt, status_code=status.HTTP_201_CREATED)
async def ingest_telemetry(
	payload: Any = Body(...),
	dispatcher: EventDispatcher = Depends(get_dispatcher),
) -> IngestReceipt:
	try:
		event = adapt_flat(payload, get_settings().default_greenhouse_id)
	except GreenLinkError as exc:
		raise to_http_exception(exc) from exc
	return await _ingest_one(dispatcher, event)


@router.post("/legacy", response_model=IngestReceipt, status_code=status.HTTP_201_CREATED)
async def ingest_legacy_telemetry(
	payload: Any = Body(...),
	dispatcher: EventDispatcher = Depends(get_dispatcher),
) -> IngestReceipt:
	try:
		event = adapt_nested(payload, get_settings().default_greenhouse_id)
	except GreenLinkError as exc:
		raise to_http_exception(exc) from exc
	return await _ingest_one(dispatcher, event)


@router.post("/bulk-data", response_model=BulkIngestReceipt, status_code=status.HTTP_201_CREATED)
async def ingest_bulk(
	payload: Any = Body(...),
	dispatcher: EventDispatcher = Depends(get_dispatcher),
) -> BulkIngestReceipt:
	try:
		events = adapt_bulk(payload, get_settings().default_greenhouse_id)
		receipts = [await dispatcher.handle_ingest(event) for event in events]
	except GreenLinkError as exc:
		raise to_http_exception(exc) from exc

	processed = sum(1 for receipt in receipts if receipt.status != "failed")
	if processed == len(receipts) and all(receipt.status == "ok" for receipt in receipts):
		overall = "ok"
	elif processed == 0:
		overall = "failed"
	else:
		overall = "partial"
	return BulkIngestReceipt(
		status=overall,
		processed=processed,
		total=len(receipts),
		receipts=receipts,
		warnings=[warning for receipt in receipts for warning in receipt.warnings],
	)


@router.post("/device-status", response_model=DeviceRead)
async def report_device_status(
	payload: Any = Body(...),
	dispatcher: EventDispatcher = Depends(get_dispatcher),
) -> DeviceRead:
	try:
		report = parse_status_report(payload)
		device = await dispatcher.report_status(report)
	except GreenLinkError as exc:
		raise to_http_exception(exc) from exc
	return DeviceRead.model_validate(device)


@router.get("/device-commands/{device_id}", response_model=DeviceCommandSnapshot)
async def get_device_commands(device_id: str, store: SqlStore = Depends(get_store)) -> DeviceCommandSnapshot:
	device = await store.get_device(device_id)
	if device is None:
		raise to_http_exception(NotFoundError(f"Device {device_id} not found"))
	return DeviceCommandSnapshot(
		device_id=device.device_id,
		status=device.status,
		intensity=device.intensity,
		auto_mode=device.auto_mode,
		automation_rules=device.automation_rules or {},
		last_update=device.updated_at,
	)


@router.get("/commands/{greenhouse_id}", response_model=ActuatorCommandList)
async def get_actuator_commands(greenhouse_id: str, store: SqlStore = Depends(get_store)) -> ActuatorCommandList:
	"""Desired actuator states in the compact form the polling firmware expects."""
	devices = await store.list_devices(greenhouse_id)
	now = datetime.now(UTC)
	commands: list[ActuatorCommand] = []
	for device_type, short_name, active_status in FIRMWARE_ACTUATORS:
		device = next((item for item in devices if item.device_type == device_type), None)
		if device is not None:
			commands.append(
				ActuatorCommand(device=short_name, action="control", state=device.status == active_status, timestamp=now)
			)
	if devices:
		commands.append(ActuatorCommand(action="autoMode", state=devices[0].auto_mode, timestamp=now))
	message = f"{len(commands)} commands available" if commands else "No commands available"
	return ActuatorCommandList(greenhouse_id=greenhouse_id, message=message, commands=commands)
