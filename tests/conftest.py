"""Shared pytest fixtures: in-memory store, room registry, dispatcher and API clients."""

from __future__ import annotations

import itertools
import uuid
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from greenlink.auth.dependencies import AuthPrincipal, get_current_principal
from greenlink.auth.jwt import create_access_token
from greenlink.config import Settings
from greenlink.database import get_store
from greenlink.main import app
from greenlink.models.alerts import Alert, AlertSettings
from greenlink.models.devices import EMPTY_AUTOMATION_RULES, Device, DeviceControlLog
from greenlink.models.enums import DeviceStatusEnum, DeviceTypeEnum, SensorTypeEnum, UserRoleEnum
from greenlink.models.readings import Reading
from greenlink.realtime.rooms import RoomRegistry, Subscriber, SubscriberIdentity, room_key
from greenlink.services.dispatcher import EventDispatcher

GREENHOUSE_ID = "greenhouse-001"


def _now() -> datetime:
	return datetime.now(UTC)


class InMemoryStore:
	"""Dict-backed stand-in for ``SqlStore``; assigns ids and timestamps like the DB."""

	def __init__(self) -> None:
		self.readings: list[Reading] = []
		self.devices: dict[str, Device] = {}
		self.control_logs: list[DeviceControlLog] = []
		self.alerts: dict[uuid.UUID, Alert] = {}
		self.settings: dict[tuple[str, str], AlertSettings] = {}
		self.commits = 0
		self.rollbacks = 0
		self._ids = itertools.count(1)

	async def commit(self) -> None:
		self.commits += 1

	async def rollback(self) -> None:
		self.rollbacks += 1

	# ── Readings ────────────────────────────────────────────────────────────

	async def add_reading(self, reading: Reading) -> Reading:
		reading.id = next(self._ids)
		reading.ingested_at = _now()
		self.readings.append(reading)
		return reading

	async def latest_readings(self, greenhouse_id: str) -> list[Reading]:
		latest: list[Reading] = []
		for sensor_type in SensorTypeEnum:
			matching = [r for r in self.readings if r.greenhouse_id == greenhouse_id and r.sensor_type == sensor_type]
			if matching:
				latest.append(max(matching, key=lambda r: r.timestamp))
		return latest

	async def readings_since(self, greenhouse_id: str, since: datetime) -> list[Reading]:
		rows = [r for r in self.readings if r.greenhouse_id == greenhouse_id and r.timestamp >= since]
		return sorted(rows, key=lambda r: r.timestamp)

	# ── Devices ─────────────────────────────────────────────────────────────

	def put_device(self, device: Device) -> Device:
		device.id = uuid.uuid4()
		device.created_at = device.updated_at = _now()
		self.devices[device.device_id] = device
		return device

	async def get_device(self, device_id: str, *, for_update: bool = False) -> Device | None:
		return self.devices.get(device_id)

	async def find_device(self, greenhouse_id: str, device_type: DeviceTypeEnum) -> Device | None:
		for device in sorted(self.devices.values(), key=lambda d: d.device_id):
			if device.greenhouse_id == greenhouse_id and device.device_type == device_type:
				return device
		return None

	async def list_devices(self, greenhouse_id: str) -> list[Device]:
		rows = [d for d in self.devices.values() if d.greenhouse_id == greenhouse_id]
		return sorted(rows, key=lambda d: (d.device_type.value, d.device_name))

	async def add_device(self, device: Device) -> Device:
		return self.put_device(device)

	async def save_device(self, device: Device) -> Device:
		device.updated_at = _now()
		return device

	async def delete_device(self, device_id: str) -> Device | None:
		return self.devices.pop(device_id, None)

	# ── Control log ─────────────────────────────────────────────────────────

	async def add_control_log(self, entry: DeviceControlLog) -> DeviceControlLog:
		entry.id = next(self._ids)
		self.control_logs.append(entry)
		return entry

	async def control_history(
		self,
		greenhouse_id: str,
		*,
		device_id: str | None = None,
		start: datetime | None = None,
		end: datetime | None = None,
		limit: int = 50,
	) -> list[DeviceControlLog]:
		rows = [
			e
			for e in self.control_logs
			if e.greenhouse_id == greenhouse_id
			and (device_id is None or e.device_id == device_id)
			and (start is None or e.timestamp >= start)
			and (end is None or e.timestamp <= end)
		]
		return sorted(rows, key=lambda e: e.timestamp, reverse=True)[:limit]

	# ── Alerts ──────────────────────────────────────────────────────────────

	async def add_alert(self, alert: Alert) -> Alert:
		alert.id = uuid.uuid4()
		alert.created_at = alert.updated_at = _now()
		self.alerts[alert.id] = alert
		return alert

	async def get_alert(self, alert_id: uuid.UUID, *, for_update: bool = False) -> Alert | None:
		return self.alerts.get(alert_id)

	async def save_alert(self, alert: Alert) -> Alert:
		alert.updated_at = _now()
		return alert

	async def delete_alert(self, alert_id: uuid.UUID) -> Alert | None:
		return self.alerts.pop(alert_id, None)

	async def list_alerts(
		self,
		greenhouse_id: str,
		*,
		resolved: bool | None = None,
		limit: int = 50,
		offset: int = 0,
	) -> tuple[list[Alert], int]:
		rows = [
			a
			for a in self.alerts.values()
			if a.greenhouse_id == greenhouse_id and (resolved is None or a.is_resolved is resolved)
		]
		rows.sort(key=lambda a: a.created_at, reverse=True)
		return rows[offset : offset + limit], len(rows)

	async def alerts_since(self, greenhouse_id: str, since: datetime) -> list[Alert]:
		return [a for a in self.alerts.values() if a.greenhouse_id == greenhouse_id and a.created_at >= since]

	# ── Threshold settings ──────────────────────────────────────────────────

	async def get_alert_settings(self, user_id: str, greenhouse_id: str) -> AlertSettings | None:
		return self.settings.get((user_id, greenhouse_id))

	async def latest_alert_settings(self, greenhouse_id: str) -> AlertSettings | None:
		rows = [s for s in self.settings.values() if s.greenhouse_id == greenhouse_id]
		return max(rows, key=lambda s: s.updated_at) if rows else None

	async def save_alert_settings(self, record: AlertSettings) -> AlertSettings:
		if record.id is None:
			record.id = uuid.uuid4()
			record.created_at = _now()
		record.updated_at = _now()
		self.settings[(record.user_id, record.greenhouse_id)] = record
		return record

	def put_thresholds(self, thresholds: dict[str, Any], *, user_id: str = "user-1", greenhouse_id: str = GREENHOUSE_ID) -> None:
		record = AlertSettings(user_id=user_id, greenhouse_id=greenhouse_id, thresholds=thresholds)
		record.id = uuid.uuid4()
		record.created_at = record.updated_at = _now()
		self.settings[(user_id, greenhouse_id)] = record


class FakeRedis:
	def __init__(self) -> None:
		self._counter: dict[str, int] = {}
		self.incr = AsyncMock(side_effect=self._incr)
		self.expire = AsyncMock(return_value=True)

	async def _incr(self, key: str) -> int:
		value = self._counter.get(key, 0) + 1
		self._counter[key] = value
		return value


def make_device(
	device_id: str = "WATER_PUMP_001",
	device_type: DeviceTypeEnum = DeviceTypeEnum.water_pump,
	status: DeviceStatusEnum = DeviceStatusEnum.off,
	greenhouse_id: str = GREENHOUSE_ID,
	**overrides: Any,
) -> Device:
	fields: dict[str, Any] = {
		"device_name": device_id.replace("_", " ").title(),
		"intensity": 0,
		"auto_mode": False,
		"automation_rules": dict(EMPTY_AUTOMATION_RULES),
		"power_consumption": 25.0,
		"location": "Main Greenhouse",
		"last_activated": None,
	}
	fields.update(overrides)
	return Device(
		device_id=device_id,
		greenhouse_id=greenhouse_id,
		device_type=device_type,
		status=status,
		**fields,
	)


def make_subscriber(
	name: str = "viewer",
	*,
	queue_size: int = 64,
	role: UserRoleEnum = UserRoleEnum.operator,
) -> Subscriber:
	return Subscriber(
		SubscriberIdentity(user_id=f"user-{name}", username=name, role=role.value),
		queue_size=queue_size,
	)


def events_of(subscriber: Subscriber) -> list[str]:
	return [frame["event"] for frame in subscriber.pending()]


@pytest.fixture
def store() -> InMemoryStore:
	return InMemoryStore()


@pytest.fixture
def store_factory(store: InMemoryStore) -> Any:
	@asynccontextmanager
	async def factory() -> AsyncIterator[InMemoryStore]:
		yield store

	return factory


@pytest.fixture
def test_settings() -> Settings:
	return Settings(store_timeout_seconds=1.0, subscriber_queue_size=64)


@pytest.fixture
def registry() -> RoomRegistry:
	return RoomRegistry()


@pytest.fixture
def dispatcher(registry: RoomRegistry, store_factory: Any, test_settings: Settings) -> EventDispatcher:
	return EventDispatcher(registry, store_factory, test_settings)


@pytest.fixture
def room_member(registry: RoomRegistry) -> Subscriber:
	"""A dashboard subscriber already joined to ``greenhouse-greenhouse-001``."""
	subscriber = make_subscriber("dashboard")
	registry.join(room_key(GREENHOUSE_ID), subscriber)
	return subscriber


@pytest.fixture
def pump(store: InMemoryStore) -> Device:
	return store.put_device(make_device())


@pytest.fixture
def fake_redis() -> FakeRedis:
	return FakeRedis()


@pytest.fixture
def admin_principal() -> AuthPrincipal:
	return AuthPrincipal(user_id="user-1", username="admin", role=UserRoleEnum.admin)


@pytest.fixture
def wire_app(registry: RoomRegistry, dispatcher: EventDispatcher, store: InMemoryStore) -> Any:
	"""The app with lifespan disabled and its state wired to the in-memory fakes."""

	async def override_get_store() -> AsyncGenerator[Any, None]:
		yield store

	app.dependency_overrides[get_store] = override_get_store
	app.state.registry = registry
	app.state.dispatcher = dispatcher
	app.state.redis = None
	original_lifespan = app.router.lifespan_context

	@asynccontextmanager
	async def noop_lifespan(_: Any) -> AsyncGenerator[None, None]:
		yield

	app.router.lifespan_context = noop_lifespan
	yield app
	app.router.lifespan_context = original_lifespan
	app.dependency_overrides.clear()


@pytest.fixture
async def client(wire_app: Any, admin_principal: AuthPrincipal) -> AsyncGenerator[AsyncClient, None]:
	"""HTTPX async client authenticated as an admin via dependency override."""

	async def override_principal() -> AuthPrincipal:
		return admin_principal

	wire_app.dependency_overrides[get_current_principal] = override_principal
	transport = ASGITransport(app=wire_app)
	async with AsyncClient(transport=transport, base_url="http://test") as test_client:
		yield test_client


@pytest.fixture
async def auth_client(wire_app: Any) -> AsyncGenerator[AsyncClient, None]:
	"""HTTPX async client with the real bearer-token dependencies active."""
	transport = ASGITransport(app=wire_app)
	async with AsyncClient(transport=transport, base_url="http://test") as test_client:
		yield test_client


@pytest.fixture
def access_token() -> str:
	return create_access_token("user-1", "admin", UserRoleEnum.admin, expires_minutes=30)


@pytest.fixture
def viewer_token() -> str:
	return create_access_token("user-2", "watcher", UserRoleEnum.viewer, expires_minutes=30)

