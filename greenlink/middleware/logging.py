"""Structured logging setup and per-request log context."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from greenlink.auth.dependencies import extract_request_greenhouse_id
from greenlink.config import LogFormat, get_settings

_configured = False

QUIET_PATHS = ("/health",)


def configure_structured_logging() -> None:
	"""Configure stdlib + structlog once per process."""
	global _configured
	if _configured:
		return

	settings = get_settings()
	log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

	shared_processors: list[Any] = [
		structlog.contextvars.merge_contextvars,
		structlog.processors.add_log_level,
		structlog.processors.TimeStamper(fmt="iso", utc=True),
	]

	if settings.log_format == LogFormat.json:
		renderer: Any = structlog.processors.JSONRenderer()
		logging.basicConfig(level=log_level, format="%(message)s")
		# Request lines come from RequestLoggingMiddleware instead.
		logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
	else:
		renderer = structlog.dev.ConsoleRenderer()
		logging.basicConfig(level=log_level)

	structlog.configure(
		processors=[
			*shared_processors,
			structlog.processors.format_exc_info,
			renderer,
		],
		wrapper_class=structlog.make_filtering_bound_logger(log_level),
		logger_factory=structlog.PrintLoggerFactory(),
		cache_logger_on_first_use=True,
	)
	_configured = True


class RequestLoggingMiddleware(BaseHTTPMiddleware):
	"""Bind request id and greenhouse to the log context; time each request."""

	async def dispatch(self, request: Request, call_next):  # type: ignore[override]
		request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
		request.state.request_id = request_id

		structlog.contextvars.clear_contextvars()
		context: dict[str, Any] = {"request_id": request_id}
		greenhouse_id = extract_request_greenhouse_id(request)
		if greenhouse_id is not None:
			context["greenhouse_id"] = greenhouse_id
		structlog.contextvars.bind_contextvars(**context)

		logger = structlog.get_logger("greenlink.request")
		started = time.perf_counter()
		try:
			response = await call_next(request)
		except Exception:
			logger.exception(
				"http_request_failed",
				method=request.method,
				path=request.url.path,
				duration_ms=round((time.perf_counter() - started) * 1000.0, 2),
			)
			raise

		response.headers["x-request-id"] = request_id
		log = logger.debug if request.url.path in QUIET_PATHS else logger.info
		log(
			"http_request",
			method=request.method,
			path=request.url.path,
			status_code=response.status_code,
			duration_ms=round((time.perf_counter() - started) * 1000.0, 2),
		)
		return response
