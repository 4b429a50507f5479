"""Alert listing, statistics and resolve lifecycle routes."""

from __future__ import annotations

import math
import uuid
from collections import Counter
from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends, Query, status

from greenlink.auth.dependencies import AuthPrincipal, get_current_principal, require_role
from greenlink.database import get_store
from greenlink.errors import GreenLinkError, to_http_exception
from greenlink.models.enums import CONTROL_ROLES, UserRoleEnum
from greenlink.repositories import SqlStore
from greenlink.schemas.alert import (
	AlertBucket,
	AlertCreate,
	AlertList,
	AlertPage,
	AlertRead,
	AlertResolve,
	AlertStats,
	AlertStatusFilter,
	Pagination,
)
from greenlink.services.dispatcher import EventDispatcher, get_dispatcher

router = APIRouter(tags=["alerts"])

_operators = require_role(*CONTROL_ROLES)

_RESOLVED_FILTER: dict[str, bool | None] = {"all": None, "active": False, "resolved": True}


@router.get("/greenhouses/{greenhouse_id}/alerts", response_model=AlertPage)
async def list_alerts(
	greenhouse_id: str,
	status_filter: AlertStatusFilter = Query(default="all", alias="status"),
	limit: int = Query(default=50, ge=1, le=200),
	page: int = Query(default=1, ge=1),
	store: SqlStore = Depends(get_store),
	_principal: AuthPrincipal = Depends(get_current_principal),
) -> AlertPage:
	alerts, total = await store.list_alerts(
		greenhouse_id,
		resolved=_RESOLVED_FILTER[status_filter],
		limit=limit,
		offset=(page - 1) * limit,
	)
	return AlertPage(
		greenhouse_id=greenhouse_id,
		alerts=[AlertRead.model_validate(alert) for alert in alerts],
		pagination=Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
	)


@router.get("/greenhouses/{greenhouse_id}/alerts/active", response_model=AlertList)
async def list_active_alerts(
	greenhouse_id: str,
	store: SqlStore = Depends(get_store),
	_principal: AuthPrincipal = Depends(get_current_principal),
) -> AlertList:
	alerts, _total = await store.list_alerts(greenhouse_id, resolved=False, limit=200)
	return AlertList(
		greenhouse_id=greenhouse_id,
		count=len(alerts),
		alerts=[AlertRead.model_validate(alert) for alert in alerts],
	)


@router.get("/greenhouses/{greenhouse_id}/alerts/stats", response_model=AlertStats)
async def alert_stats(
	greenhouse_id: str,
	hours: int = Query(default=24, ge=1, le=24 * 90),
	store: SqlStore = Depends(get_store),
	_principal: AuthPrincipal = Depends(get_current_principal),
) -> AlertStats:
	since = datetime.now(UTC) - timedelta(hours=hours)
	alerts = await store.alerts_since(greenhouse_id, since)

	pair_totals: Counter = Counter()
	pair_resolved: Counter = Counter()
	severity_totals: Counter = Counter()
	severity_resolved: Counter = Counter()
	for alert in alerts:
		pair = (alert.alert_type, alert.severity)
		pair_totals[pair] += 1
		severity_totals[alert.severity] += 1
		if alert.is_resolved:
			pair_resolved[pair] += 1
			severity_resolved[alert.severity] += 1

	total_resolved = sum(severity_resolved.values())
	return AlertStats(
		greenhouse_id=greenhouse_id,
		hours=hours,
		since=since,
		by_type_and_severity=[
			AlertBucket(alert_type=alert_type, severity=severity, count=count, resolved=pair_resolved[(alert_type, severity)])
			for (alert_type, severity), count in pair_totals.most_common()
		],
		by_severity=[
			AlertBucket(severity=severity, count=count, resolved=severity_resolved[severity])
			for severity, count in severity_totals.most_common()
		],
		total_alerts=len(alerts),
		total_resolved=total_resolved,
		total_active=len(alerts) - total_resolved,
	)


@router.post(
	"/greenhouses/{greenhouse_id}/alerts",
	response_model=AlertRead,
	status_code=status.HTTP_201_CREATED,
)
async def create_alert(
	greenhouse_id: str,
	payload: AlertCreate,
	dispatcher: EventDispatcher = Depends(get_dispatcher),
	_principal: AuthPrincipal = Depends(_operators),
) -> AlertRead:
	try:
		alert = await dispatcher.create_alert(greenhouse_id, payload)
	except GreenLinkError as exc:
		raise to_http_exception(exc) from exc
	return AlertRead.model_validate(alert)


@router.put("/alerts/{alert_id}/resolve", response_model=AlertRead)
async def resolve_alert(
	alert_id: uuid.UUID,
	payload: AlertResolve | None = None,
	dispatcher: EventDispatcher = Depends(get_dispatcher),
	principal: AuthPrincipal = Depends(_operators),
) -> AlertRead:
	note = payload.action_taken if payload is not None else None
	try:
		alert = await dispatcher.resolve_alert(alert_id, principal.username, note)
	except GreenLinkError as exc:
		raise to_http_exception(exc) from exc
	return AlertRead.model_validate(alert)


@router.delete("/alerts/{alert_id}", response_model=AlertRead)
async def delete_alert(
	alert_id: uuid.UUID,
	dispatcher: EventDispatcher = Depends(get_dispatcher),
	_principal: AuthPrincipal = Depends(require_role(UserRoleEnum.admin)),
) -> AlertRead:
	try:
		alert = await dispatcher.delete_alert(alert_id)
	except GreenLinkError as exc:
		raise to_http_exception(exc) from exc
	return AlertRead.model_validate(alert)
