"""Read-only sensor reading routes."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends, Query

from greenlink.auth.dependencies import AuthPrincipal, get_current_principal
from greenlink.database import get_store
from greenlink.repositories import SqlStore
from greenlink.schemas.sensor import ReadingHistory, ReadingRead

router = APIRouter(tags=["sensors"])


@router.get("/greenhouses/{greenhouse_id}/sensors/latest", response_model=list[ReadingRead])
async def latest_readings(
	greenhouse_id: str,
	store: SqlStore = Depends(get_store),
	_principal: AuthPrincipal = Depends(get_current_principal),
) -> list[ReadingRead]:
	return [ReadingRead.model_validate(reading) for reading in await store.latest_readings(greenhouse_id)]


@router.get("/greenhouses/{greenhouse_id}/sensors/history", response_model=ReadingHistory)
async def reading_history(
	greenhouse_id: str,
	hours: int = Query(default=24, ge=1, le=24 * 30),
	store: SqlStore = Depends(get_store),
	_principal: AuthPrincipal = Depends(get_current_principal),
) -> ReadingHistory:
	since = datetime.now(UTC) - timedelta(hours=hours)
	readings = await store.readings_since(greenhouse_id, since)
	return ReadingHistory(
		greenhouse_id=greenhouse_id,
		hours=hours,
		count=len(readings),
		readings=[ReadingRead.model_validate(reading) for reading in readings],
	)
