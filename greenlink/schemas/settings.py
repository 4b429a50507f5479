"""Pydantic schemas for per-user alert threshold settings."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from greenlink.schemas.base import WireModel


class HighLowBound(WireModel):
	high: float | None = None
	low: float | None = None


class LowBound(WireModel):
	low: float | None = None


class AlertThresholds(WireModel):
	"""Nullable bounds per environmental dimension.

	``None`` means "do not alert on this bound"; it is never replaced with a
	numeric default.
	"""

	temperature: HighLowBound = Field(default_factory=HighLowBound)
	humidity: HighLowBound = Field(default_factory=HighLowBound)
	soil_moisture: LowBound = Field(default_factory=LowBound)
	light_level: LowBound = Field(default_factory=LowBound)


class AlertSettingsRead(WireModel):
	user_id: str
	greenhouse_id: str
	alert_thresholds: AlertThresholds
	updated_at: datetime | None = None


class ThresholdsUpdate(WireModel):
	alert_thresholds: AlertThresholds
