"""FastAPI application entrypoint: lifespan, routers and middleware."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import text

from greenlink.config import get_settings
from greenlink.database import engine, store_scope
from greenlink.middleware.logging import RequestLoggingMiddleware, configure_structured_logging
from greenlink.middleware.rate_limit import RateLimitMiddleware
from greenlink.realtime.rooms import RoomRegistry
from greenlink.routes import alerts, devices, iot, sensors, settings, ws
from greenlink.services.dispatcher import EventDispatcher

logger = structlog.get_logger("greenlink")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application startup / shutdown lifecycle.

    Startup:
      1. Initialize structured logging
      2. Verify the database answers
      3. Connect to Redis (rate limiting is skipped while it is down)
      4. Build the room registry and the dispatcher

    Shutdown:
      1. Close Redis connection pool
      2. Dispose SQLAlchemy engine
    """
    configure_structured_logging()
    config = get_settings()
    logger.info("greenlink_starting", log_level=config.log_level, default_greenhouse=config.default_greenhouse_id)

    try:
        async with engine.connect() as connection:
            await connection.execute(text("SELECT 1"))
    except Exception as exc:
        logger.exception("startup_failure", error=str(exc))
        raise

    redis: Redis | None = Redis.from_url(config.redis_url, decode_responses=True)
    try:
        await redis.ping()
    except (RedisError, OSError) as exc:
        logger.warning("redis_unavailable", error=str(exc))
        await redis.aclose()
        redis = None
    app.state.redis = redis

    registry = RoomRegistry()
    app.state.registry = registry
    app.state.dispatcher = EventDispatcher(registry, store_scope, config)

    yield

    logger.info("greenlink_shutting_down", rooms=len(registry.rooms()))
    if redis is not None:
        await redis.aclose()
    await engine.dispose()


app = FastAPI(
    title="GreenLink API",
    description=(
        "Greenhouse telemetry ingestion and device control: ESP32 sensor "
        "readings, threshold alerts, actuator commands and live per-greenhouse "
        "WebSocket rooms."
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── Middleware ──────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestLoggingMiddleware)


# ── Health check ────────────────────────────────────────────────────────────
@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    """Basic health check; verifies the API process is alive."""
    return {
        "status": "ok",
        "service": "greenlink",
        "version": "0.1.0",
    }


# ── Router registration ────────────────────────────────────────────────────
app.include_router(iot.router, prefix="/api")
app.include_router(devices.router, prefix="/api/v1")
app.include_router(alerts.router, prefix="/api/v1")
app.include_router(sensors.router, prefix="/api/v1")
app.include_router(settings.router, prefix="/api/v1")
app.include_router(ws.router)
