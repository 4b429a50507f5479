"""Event dispatcher: ingestion, mutation, evaluation and broadcast in one place.

Every operation runs one unit of work against the store.  Broadcasts are
issued only after ``commit`` returns, so subscribers never see state that
was not durably written.  Ingest and socket commands for one greenhouse are
serialised by a per-room lock, which keeps one payload's broadcasts from
interleaving with another's.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog
from fastapi import Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from greenlink.config import Settings, get_settings
from greenlink.errors import (
	BadRequestError,
	ForbiddenError,
	GreenLinkError,
	NotFoundError,
	StoreUnavailableError,
	ValidationError,
)
from greenlink.models.alerts import Alert
from greenlink.models.devices import Device
from greenlink.models.enums import CONTROL_ACTIONS, CONTROL_ROLES, ControlSourceEnum
from greenlink.models.readings import Reading
from greenlink.realtime.rooms import RoomRegistry, Subscriber, room_key
from greenlink.repositories import SqlStore
from greenlink.schemas.alert import AlertCreate, AlertRead
from greenlink.schemas.device import AutomationRules, CommandAck, DeviceCommandIn, DeviceCreate, DeviceRead
from greenlink.schemas.ingest import IngestReceipt, IngestWarning, StatusReportIn, TelemetryEvent
from greenlink.schemas.settings import AlertThresholds
from greenlink.services.state_mutator import Actor, CommandOutcome, StateMutator, parse_action
from greenlink.services.thresholds import AlertIntent, evaluate, evaluate_device_fault

logger = structlog.get_logger("greenlink.dispatcher")

StoreFactory = Callable[[], AbstractAsyncContextManager[SqlStore]]

# (attribute on Reading, sensorUpdate type, unit)
READING_FIELDS: tuple[tuple[str, str, str], ...] = (
	("temperature", "temperature", "°C"),
	("humidity", "humidity", "%"),
	("soil_moisture", "soilMoisture", "raw"),
	("light_intensity", "lightLevel", "lux"),
	("custom_value", "waterLevel", "cm"),
)


def _now() -> datetime:
	return datetime.now(UTC)


def device_payload(device: Device, *, source: ControlSourceEnum | None = None) -> dict[str, Any]:
	payload = DeviceRead.model_validate(device).to_wire()
	if source is not None:
		payload["source"] = source.value
	return payload


def alert_payload(alert: Alert) -> dict[str, Any]:
	return AlertRead.model_validate(alert).to_wire()


def sensor_updates(reading: Reading) -> list[dict[str, Any]]:
	"""One ``sensorUpdate`` payload per measured field on a persisted reading."""
	stamp = reading.timestamp.isoformat()
	return [
		{"type": wire_type, "value": getattr(reading, attr), "unit": unit, "timestamp": stamp}
		for attr, wire_type, unit in READING_FIELDS
		if getattr(reading, attr) is not None
	]


def sensors_snapshot(device_id: str, readings: list[Reading]) -> dict[str, Any]:
	snapshot: dict[str, Any] = {
		"deviceId": device_id,
		"temperature": None,
		"humidity": None,
		"soilMoisture": None,
		"lightIntensity": None,
		"waterLevel": None,
		"timestamp": readings[0].timestamp.isoformat() if readings else _now().isoformat(),
	}
	for reading in readings:
		for attr, key in (
			("temperature", "temperature"),
			("humidity", "humidity"),
			("soil_moisture", "soilMoisture"),
			("light_intensity", "lightIntensity"),
			("custom_value", "waterLevel"),
		):
			value = getattr(reading, attr)
			if value is not None:
				snapshot[key] = value
	return snapshot


async def resolve_thresholds(store: SqlStore, greenhouse_id: str) -> AlertThresholds:
	"""Most recently updated settings for the greenhouse; all bounds unset if none."""
	record = await store.latest_alert_settings(greenhouse_id)
	if record is None:
		return AlertThresholds()
	return AlertThresholds.model_validate(record.thresholds or {})


def _receipt_status(readings_created: int, failed_samples: int, devices_updated: int = 0) -> str:
	if failed_samples and not readings_created and not devices_updated:
		return "failed"
	if failed_samples:
		return "partial"
	return "ok"


@dataclass
class _RoomLock:
	lock: asyncio.Lock = field(default_factory=asyncio.Lock)
	users: int = 0


class EventDispatcher:
	def __init__(
		self,
		registry: RoomRegistry,
		store_factory: StoreFactory,
		settings: Settings | None = None,
	):
		self.registry = registry
		self.store_factory = store_factory
		self.settings = settings or get_settings()
		self._room_locks: dict[str, _RoomLock] = {}

	@asynccontextmanager
	async def _serialised(self, greenhouse_id: str) -> AsyncIterator[None]:
		"""Hold the greenhouse lock; it is forgotten once nobody holds or awaits it."""
		entry = self._room_locks.setdefault(greenhouse_id, _RoomLock())
		entry.users += 1
		try:
			async with entry.lock:
				yield
		finally:
			entry.users -= 1
			if not entry.users:
				del self._room_locks[greenhouse_id]

	@asynccontextmanager
	async def _unit_of_work(self) -> AsyncIterator[SqlStore]:
		"""Time-bounded store scope; infrastructure failures become 503s."""
		try:
			async with asyncio.timeout(self.settings.store_timeout_seconds):
				async with self.store_factory() as store:
					try:
						yield store
					except BaseException:
						await store.rollback()
						raise
		except TimeoutError as exc:
			logger.error("store_timeout", timeout_seconds=self.settings.store_timeout_seconds)
			raise StoreUnavailableError("Store operation timed out") from exc
		except (SQLAlchemyError, OSError) as exc:
			logger.error("store_unavailable", error=str(exc))
			raise StoreUnavailableError("Store is unavailable") from exc

	def _publish(self, greenhouse_id: str, event: str, payload: Any, *, exclude: Subscriber | None = None) -> int:
		room = room_key(greenhouse_id)
		delivered = self.registry.broadcast(room, event, payload, exclude=exclude)
		logger.debug("broadcast", room=room, event_name=event, delivered=delivered)
		return delivered

	# ── Ingest ──────────────────────────────────────────────────────────────

	async def handle_ingest(self, event: TelemetryEvent) -> IngestReceipt:
		greenhouse_id = event.greenhouse_id
		warnings: list[IngestWarning] = []
		readings: list[Reading] = []
		alerts: list[Alert] = []
		devices: list[Device] = []
		failed_samples = 0

		async with self._serialised(greenhouse_id):
			async with self._unit_of_work() as store:
				mutator = StateMutator(store)
				for index, sample in enumerate(event.samples):
					try:
						readings.append(await mutator.apply_reading(greenhouse_id, event.device_id, sample))
					except ValidationError as exc:
						failed_samples += 1
						warnings.append(
							IngestWarning(
								message=exc.detail,
								sensor_type=sample.sensor_type.value,
								field=exc.field,
								index=index,
							)
						)

				if readings:
					thresholds = await resolve_thresholds(store, greenhouse_id)
					for reading in readings:
						for intent in evaluate(reading, thresholds):
							alerts.append(await mutator.record_alert(intent))

				for report in event.actuator_reports:
					try:
						outcome = await mutator.apply_device_status_report(report.device_id, report.status)
					except (NotFoundError, ValidationError) as exc:
						warnings.append(IngestWarning(message=exc.detail, field="actuators"))
						continue
					devices.append(outcome.device)

				await store.commit()

				for reading in readings:
					for update in sensor_updates(reading):
						self._publish(greenhouse_id, "sensorUpdate", update)
				for alert in alerts:
					self._publish(greenhouse_id, "newAlert", alert_payload(alert))
				if readings:
					self._publish(greenhouse_id, "allSensorsUpdate", sensors_snapshot(event.device_id, readings))
				for device in devices:
					self._publish(greenhouse_id, "deviceUpdate", device_payload(device, source=ControlSourceEnum.iot_device))

		status = _receipt_status(len(readings), failed_samples, len(devices))
		logger.info(
			"ingest_processed",
			device_id=event.device_id,
			greenhouse_id=greenhouse_id,
			status=status,
			readings=len(readings),
			alerts=len(alerts),
		)
		return IngestReceipt(
			device_id=event.device_id,
			greenhouse_id=greenhouse_id,
			status=status,
			readings_created=len(readings),
			alerts_created=len(alerts),
			reading_ids=[reading.id for reading in readings],
			alert_ids=[alert.id for alert in alerts],
			warnings=warnings,
			timestamp=_now(),
		)

	# ── Commands ────────────────────────────────────────────────────────────

	async def _apply_command(
		self,
		device_id: str,
		action: str,
		value: Any,
		actor: Actor,
	) -> CommandOutcome:
		async with self._unit_of_work() as store:
			outcome = await StateMutator(store).apply_device_command(
				device_id,
				action,
				value,
				source=ControlSourceEnum.manual,
				actor=actor,
			)
			await store.commit()
			# State changes are announced where the device lives, whoever sent them.
			room_id = outcome.device.greenhouse_id
			self._publish(room_id, "deviceUpdate", device_payload(outcome.device, source=ControlSourceEnum.manual))
			self._publish(
				room_id,
				"deviceControlled",
				{
					"device": device_payload(outcome.device),
					"action": outcome.log_entry.action.value,
					"user": {"userId": actor.user_id, "username": actor.username},
					"timestamp": outcome.log_entry.timestamp.isoformat(),
				},
			)
		logger.info(
			"device_controlled",
			device_id=device_id,
			action=action,
			user_id=actor.user_id,
			previous_status=outcome.previous_status.value,
			new_status=outcome.new_status.value,
		)
		return outcome

	async def handle_command(
		self,
		subscriber: Subscriber,
		room_hint: str | None,
		command: Any,
	) -> CommandAck:
		"""Relay a dashboard command to the room, then apply it if it is a control verb.

		Parse failures, unknown verbs and control verbs from roles that may not
		operate devices raise before anything is relayed.  Mutation failures are
		reported to the sender only, as ``commandError``.
		"""
		try:
			request = DeviceCommandIn.model_validate(command)
		except PydanticValidationError as exc:
			raise BadRequestError("device-control payload must be an object") from exc
		if not request.device_id or not request.action:
			raise BadRequestError("deviceId and action are required")
		greenhouse_id = request.greenhouse_id or room_hint
		if not greenhouse_id:
			raise BadRequestError("greenhouseId is required before joining a greenhouse")
		verb = parse_action(request.action)
		identity = subscriber.identity
		if verb in CONTROL_ACTIONS and identity.role not in CONTROL_ROLES:
			logger.warning("device_command_forbidden", device_id=request.device_id, role=identity.role)
			raise ForbiddenError(f"Role {identity.role!r} may not control devices")
		actor = Actor(user_id=identity.user_id, username=identity.username)

		async with self._serialised(greenhouse_id):
			relayed = self._publish(
				greenhouse_id,
				"deviceControl",
				{
					"deviceId": request.device_id,
					"action": verb.value,
					"userId": identity.user_id,
					"username": identity.username,
					"timestamp": _now().isoformat(),
				},
				exclude=subscriber,
			)
			ack = CommandAck(
				device_id=request.device_id,
				action=verb.value,
				greenhouse_id=greenhouse_id,
				relayed_to=relayed,
			)
			if verb not in CONTROL_ACTIONS:
				return ack

			try:
				await self._apply_command(request.device_id, verb.value, request.value, actor)
			except GreenLinkError as exc:
				logger.warning(
					"device_command_failed",
					device_id=request.device_id,
					action=verb.value,
					error=exc.code,
					subscriber=subscriber.id,
				)
				subscriber.deliver(
					"commandError",
					{"deviceId": request.device_id, "action": verb.value, **exc.to_payload()},
				)
				ack.error = exc.to_payload()
				return ack

		ack.applied = True
		return ack

	async def control_device(
		self,
		actor: Actor,
		device_id: str,
		action: str,
		value: Any = None,
	) -> CommandOutcome:
		return await self._apply_command(device_id, action, value, actor)

	# ── Command channel (device-originated) ─────────────────────────────────

	async def report_status(self, report: StatusReportIn) -> Device:
		async with self._unit_of_work() as store:
			mutator = StateMutator(store)
			outcome = await mutator.apply_device_status_report(
				report.device_id,
				report.status,
				auto_mode=report.auto_mode,
				intensity=report.intensity,
			)
			alerts = [await mutator.record_alert(intent) for intent in evaluate_device_fault(outcome.device, report.error)]
			await store.commit()

			greenhouse_id = outcome.device.greenhouse_id
			self._publish(greenhouse_id, "deviceUpdate", device_payload(outcome.device, source=ControlSourceEnum.iot_device))
			for alert in alerts:
				self._publish(greenhouse_id, "newAlert", alert_payload(alert))

		logger.info(
			"device_status_reported",
			device_id=report.device_id,
			previous_status=outcome.previous_status.value,
			status=str(outcome.device.status),
			logged=outcome.log_entry is not None,
			malfunction=bool(alerts),
		)
		return outcome.device

	# ── Alerts ──────────────────────────────────────────────────────────────

	async def create_alert(self, greenhouse_id: str, payload: AlertCreate) -> Alert:
		intent = AlertIntent(
			greenhouse_id=greenhouse_id,
			alert_type=payload.alert_type,
			severity=payload.severity,
			message=payload.message,
			current_value=payload.current_value,
			threshold_value=payload.threshold_value,
			sensor_type=payload.sensor_type,
			device_id=payload.device_id,
		)
		async with self._unit_of_work() as store:
			alert = await StateMutator(store).record_alert(intent)
			await store.commit()
			self._publish(greenhouse_id, "newAlert", alert_payload(alert))
		return alert

	async def resolve_alert(self, alert_id: uuid.UUID, actor: str, note: str | None = None) -> Alert:
		async with self._unit_of_work() as store:
			alert = await StateMutator(store).resolve_alert(alert_id, actor, note)
			await store.commit()
			self._publish(alert.greenhouse_id, "alertResolved", alert_payload(alert))
		logger.info("alert_resolved", alert_id=str(alert_id), resolved_by=actor)
		return alert

	async def delete_alert(self, alert_id: uuid.UUID) -> Alert:
		async with self._unit_of_work() as store:
			alert = await store.delete_alert(alert_id)
			if alert is None:
				raise NotFoundError(f"Alert {alert_id} not found")
			await store.commit()
			self._publish(alert.greenhouse_id, "alertDeleted", {"id": str(alert_id)})
		return alert

	# ── Device management ───────────────────────────────────────────────────

	async def add_device(self, greenhouse_id: str, payload: DeviceCreate) -> Device:
		async with self._unit_of_work() as store:
			device = await StateMutator(store).add_device(greenhouse_id, payload)
			await store.commit()
			self._publish(greenhouse_id, "deviceAdded", device_payload(device))
		return device

	async def remove_device(self, device_id: str) -> Device:
		async with self._unit_of_work() as store:
			device = await StateMutator(store).remove_device(device_id)
			await store.commit()
			self._publish(
				device.greenhouse_id,
				"deviceRemoved",
				{"deviceId": device.device_id, "greenhouseId": device.greenhouse_id},
			)
		return device

	async def update_automation(
		self,
		device_id: str,
		rules: AutomationRules | None,
		auto_mode: bool | None,
	) -> Device:
		async with self._unit_of_work() as store:
			device = await StateMutator(store).update_automation(device_id, rules, auto_mode)
			await store.commit()
			self._publish(device.greenhouse_id, "deviceUpdate", device_payload(device, source=ControlSourceEnum.manual))
		return device

	async def setup_default_devices(self, greenhouse_id: str) -> list[Device]:
		async with self._unit_of_work() as store:
			created = await StateMutator(store).ensure_default_devices(greenhouse_id)
			await store.commit()
			for device in created:
				self._publish(greenhouse_id, "deviceAdded", device_payload(device))
		logger.info("default_devices_seeded", greenhouse_id=greenhouse_id, created=len(created))
		return created


def get_dispatcher(request: Request) -> EventDispatcher:
	return request.app.state.dispatcher
