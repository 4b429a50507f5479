"""Per-user alert threshold settings."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from greenlink.auth.dependencies import AuthPrincipal, get_current_principal
from greenlink.database import get_store
from greenlink.models.alerts import AlertSettings
from greenlink.repositories import SqlStore
from greenlink.schemas.settings import AlertSettingsRead, AlertThresholds, ThresholdsUpdate

router = APIRouter(tags=["settings"])


@router.get("/greenhouses/{greenhouse_id}/settings", response_model=AlertSettingsRead)
async def get_alert_settings(
	greenhouse_id: str,
	store: SqlStore = Depends(get_store),
	principal: AuthPrincipal = Depends(get_current_principal),
) -> AlertSettingsRead:
	record = await store.get_alert_settings(principal.user_id, greenhouse_id)
	if record is None:
		return AlertSettingsRead(
			user_id=principal.user_id,
			greenhouse_id=greenhouse_id,
			alert_thresholds=AlertThresholds(),
		)
	return AlertSettingsRead(
		user_id=record.user_id,
		greenhouse_id=record.greenhouse_id,
		alert_thresholds=AlertThresholds.model_validate(record.thresholds),
		updated_at=record.updated_at,
	)


@router.put("/greenhouses/{greenhouse_id}/settings/thresholds", response_model=AlertSettingsRead)
async def update_thresholds(
	greenhouse_id: str,
	payload: ThresholdsUpdate,
	store: SqlStore = Depends(get_store),
	principal: AuthPrincipal = Depends(get_current_principal),
) -> AlertSettingsRead:
	thresholds = payload.alert_thresholds.model_dump(mode="json", by_alias=True)
	record = await store.get_alert_settings(principal.user_id, greenhouse_id)
	if record is None:
		record = AlertSettings(user_id=principal.user_id, greenhouse_id=greenhouse_id, thresholds=thresholds)
	else:
		record.thresholds = thresholds
	record = await store.save_alert_settings(record)
	await store.commit()
	return AlertSettingsRead(
		user_id=record.user_id,
		greenhouse_id=record.greenhouse_id,
		alert_thresholds=AlertThresholds.model_validate(record.thresholds),
		updated_at=record.updated_at,
	)
