"""Redis-backed per-greenhouse rate limiting."""

from __future__ import annotations

from datetime import UTC, datetime

import structlog
from fastapi import Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware

from greenlink.auth.dependencies import extract_identity_hint, extract_request_greenhouse_id
from greenlink.config import get_settings

logger = structlog.get_logger("greenlink.ratelimit")

BYPASS_PREFIXES = ("/docs", "/redoc", "/openapi", "/health", "/ws")


class RateLimitMiddleware(BaseHTTPMiddleware):
	"""Fixed one-minute window per (greenhouse, caller kind), counted in Redis.

	Requests outside a greenhouse path, and every request while Redis is
	unreachable, pass through unlimited.
	"""

	async def dispatch(self, request: Request, call_next):  # type: ignore[override]
		if request.url.path.startswith(BYPASS_PREFIXES):
			return await call_next(request)

		greenhouse_id = extract_request_greenhouse_id(request)
		if greenhouse_id is None:
			return await call_next(request)

		redis_client = getattr(request.app.state, "redis", None)
		if redis_client is None:
			return await call_next(request)

		quota = get_settings().rate_limit_per_minute
		identity = extract_identity_hint(request)
		minute_bucket = datetime.now(UTC).strftime("%Y%m%d%H%M")
		key = f"ratelimit:greenhouse:{greenhouse_id}:{identity}:{minute_bucket}"
		try:
			current = await redis_client.incr(key)
			if current == 1:
				await redis_client.expire(key, 65)
		except RedisError as exc:
			logger.warning("rate_limit_unavailable", error=str(exc))
			return await call_next(request)

		if current > quota:
			return JSONResponse(
				status_code=429,
				content={
					"detail": {
						"error": "rate_limited",
						"message": "Greenhouse quota exceeded",
						"greenhouse_id": greenhouse_id,
						"quota": quota,
					}
				},
			)

		return await call_next(request)
