"""Pydantic schemas for alerts and their resolve lifecycle."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import Field

from greenlink.models.enums import AlertSeverityEnum, AlertSourceEnum, AlertTypeEnum
from greenlink.schemas.base import WireModel

AlertStatusFilter = Literal["all", "active", "resolved"]


class AlertRead(WireModel):
	id: uuid.UUID
	greenhouse_id: str
	alert_type: AlertTypeEnum
	severity: AlertSeverityEnum
	message: str
	current_value: float
	threshold_value: float
	sensor_type: AlertSourceEnum
	device_id: str | None = None
	is_resolved: bool
	resolved_at: datetime | None = None
	resolved_by: str | None = None
	action_taken: str | None = None
	auto_resolved: bool = False
	created_at: datetime | None = None
	updated_at: datetime | None = None


class AlertCreate(WireModel):
	alert_type: AlertTypeEnum
	severity: AlertSeverityEnum = AlertSeverityEnum.medium
	message: str = Field(min_length=1)
	current_value: float
	threshold_value: float
	sensor_type: AlertSourceEnum
	device_id: str | None = None


class AlertResolve(WireModel):
	action_taken: str | None = None


class Pagination(WireModel):
	page: int
	limit: int
	total: int
	pages: int


class AlertPage(WireModel):
	greenhouse_id: str
	alerts: list[AlertRead]
	pagination: Pagination


class AlertList(WireModel):
	greenhouse_id: str
	count: int
	alerts: list[AlertRead]


class AlertBucket(WireModel):
	alert_type: AlertTypeEnum | None = None
	severity: AlertSeverityEnum | None = None
	count: int = 0
	resolved: int = 0


class AlertStats(WireModel):
	greenhouse_id: str
	hours: int
	since: datetime
	by_type_and_severity: list[AlertBucket] = Field(default_factory=list)
	by_severity: list[AlertBucket] = Field(default_factory=list)
	total_alerts: int = 0
	total_resolved: int = 0
	total_active: int = 0
