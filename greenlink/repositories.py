"""SQLAlchemy-backed document store used by the dispatcher and the routes.

Every method works on one session; nothing here commits implicitly.  The
caller decides when a unit of work is durable via :meth:`SqlStore.commit`.
Device and alert updates take a row lock (``SELECT ... FOR UPDATE``) so
concurrent commands on the same document serialise in the database.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from greenlink.models.alerts import Alert, AlertSettings
from greenlink.models.devices import Device, DeviceControlLog
from greenlink.models.enums import DeviceTypeEnum, SensorTypeEnum
from greenlink.models.readings import Reading


class SqlStore:
	def __init__(self, session: AsyncSession):
		self.session = session

	async def commit(self) -> None:
		await self.session.commit()

	async def rollback(self) -> None:
		await self.session.rollback()

	# ── Readings ────────────────────────────────────────────────────────────

	async def add_reading(self, reading: Reading) -> Reading:
		self.session.add(reading)
		await self.session.flush()
		return reading

	async def latest_readings(self, greenhouse_id: str) -> list[Reading]:
		"""Newest reading per sensor type."""
		latest: list[Reading] = []
		for sensor_type in SensorTypeEnum:
			stmt = (
				select(Reading)
				.where(Reading.greenhouse_id == greenhouse_id, Reading.sensor_type == sensor_type)
				.order_by(Reading.timestamp.desc())
				.limit(1)
			)
			row = await self.session.execute(stmt)
			reading = row.scalar_one_or_none()
			if reading is not None:
				latest.append(reading)
		return latest

	async def readings_since(self, greenhouse_id: str, since: datetime) -> list[Reading]:
		stmt = (
			select(Reading)
			.where(Reading.greenhouse_id == greenhouse_id, Reading.timestamp >= since)
			.order_by(Reading.timestamp.asc())
		)
		rows = await self.session.execute(stmt)
		return list(rows.scalars().all())

	# ── Devices ─────────────────────────────────────────────────────────────

	async def get_device(self, device_id: str, *, for_update: bool = False) -> Device | None:
		stmt = select(Device).where(Device.device_id == device_id)
		if for_update:
			stmt = stmt.with_for_update()
		row = await self.session.execute(stmt)
		return row.scalar_one_or_none()

	async def find_device(self, greenhouse_id: str, device_type: DeviceTypeEnum) -> Device | None:
		stmt = (
			select(Device)
			.where(Device.greenhouse_id == greenhouse_id, Device.device_type == device_type)
			.order_by(Device.device_id.asc())
			.limit(1)
		)
		row = await self.session.execute(stmt)
		return row.scalar_one_or_none()

	async def list_devices(self, greenhouse_id: str) -> list[Device]:
		stmt = (
			select(Device)
			.where(Device.greenhouse_id == greenhouse_id)
			.order_by(Device.device_type.asc(), Device.device_name.asc())
		)
		rows = await self.session.execute(stmt)
		return list(rows.scalars().all())

	async def add_device(self, device: Device) -> Device:
		self.session.add(device)
		await self.session.flush()
		await self.session.refresh(device)
		return device

	async def save_device(self, device: Device) -> Device:
		await self.session.flush()
		await self.session.refresh(device)
		return device

	async def delete_device(self, device_id: str) -> Device | None:
		device = await self.get_device(device_id, for_update=True)
		if device is None:
			return None
		await self.session.delete(device)
		await self.session.flush()
		return device

	# ── Control log ─────────────────────────────────────────────────────────

	async def add_control_log(self, entry: DeviceControlLog) -> DeviceControlLog:
		self.session.add(entry)
		await self.session.flush()
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
		stmt = select(DeviceControlLog).where(DeviceControlLog.greenhouse_id == greenhouse_id)
		if device_id is not None:
			stmt = stmt.where(DeviceControlLog.device_id == device_id)
		if start is not None:
			stmt = stmt.where(DeviceControlLog.timestamp >= start)
		if end is not None:
			stmt = stmt.where(DeviceControlLog.timestamp <= end)
		stmt = stmt.order_by(DeviceControlLog.timestamp.desc()).limit(limit)
		rows = await self.session.execute(stmt)
		return list(rows.scalars().all())

	# ── Alerts ──────────────────────────────────────────────────────────────

	async def add_alert(self, alert: Alert) -> Alert:
		self.session.add(alert)
		await self.session.flush()
		await self.session.refresh(alert)
		return alert

	async def get_alert(self, alert_id: uuid.UUID, *, for_update: bool = False) -> Alert | None:
		stmt = select(Alert).where(Alert.id == alert_id)
		if for_update:
			stmt = stmt.with_for_update()
		row = await self.session.execute(stmt)
		return row.scalar_one_or_none()

	async def save_alert(self, alert: Alert) -> Alert:
		await self.session.flush()
		await self.session.refresh(alert)
		return alert

	async def delete_alert(self, alert_id: uuid.UUID) -> Alert | None:
		alert = await self.get_alert(alert_id, for_update=True)
		if alert is None:
			return None
		await self.session.execute(delete(Alert).where(Alert.id == alert_id))
		return alert

	async def list_alerts(
		self,
		greenhouse_id: str,
		*,
		resolved: bool | None = None,
		limit: int = 50,
		offset: int = 0,
	) -> tuple[list[Alert], int]:
		filters: list[Any] = [Alert.greenhouse_id == greenhouse_id]
		if resolved is not None:
			filters.append(Alert.is_resolved.is_(resolved))
		total_row = await self.session.execute(select(func.count(Alert.id)).where(*filters))
		total = int(total_row.scalar_one())
		stmt = (
			select(Alert)
			.where(*filters)
			.order_by(Alert.created_at.desc())
			.limit(limit)
			.offset(offset)
		)
		rows = await self.session.execute(stmt)
		return list(rows.scalars().all()), total

	async def alerts_since(self, greenhouse_id: str, since: datetime) -> list[Alert]:
		stmt = select(Alert).where(Alert.greenhouse_id == greenhouse_id, Alert.created_at >= since)
		rows = await self.session.execute(stmt)
		return list(rows.scalars().all())

	# ── Threshold settings ──────────────────────────────────────────────────

	async def get_alert_settings(self, user_id: str, greenhouse_id: str) -> AlertSettings | None:
		stmt = select(AlertSettings).where(
			AlertSettings.user_id == user_id,
			AlertSettings.greenhouse_id == greenhouse_id,
		)
		row = await self.session.execute(stmt)
		return row.scalar_one_or_none()

	async def latest_alert_settings(self, greenhouse_id: str) -> AlertSettings | None:
		stmt = (
			select(AlertSettings)
			.where(AlertSettings.greenhouse_id == greenhouse_id)
			.order_by(AlertSettings.updated_at.desc())
			.limit(1)
		)
		row = await self.session.execute(stmt)
		return row.scalar_one_or_none()

	async def save_alert_settings(self, settings: AlertSettings) -> AlertSettings:
		self.session.add(settings)
		await self.session.flush()
		await self.session.refresh(settings)
		return settings

