"""FastAPI application entrypoint: lifespan, routers, middleware."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy import text

from batchqc import __version__
from batchqc.config import get_settings
from batchqc.database import engine
from batchqc.middleware.logging import RequestLoggingMiddleware, configure_structured_logging
from batchqc.middleware.rate_limit import RateLimitMiddleware
from batchqc.quality.catalog import get_catalog
from batchqc.routes import catalog, records, reports

logger = structlog.get_logger("batchqc")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application startup / shutdown lifecycle.

    Startup:
      1. Initialize structured logging
      2. Load and validate the standards catalog
      3. Verify the database connection
      4. Connect to Redis

    Shutdown:
      1. Close Redis connection pool
      2. Dispose SQLAlchemy engine
    """
    configure_structured_logging()
    settings = get_settings()

    redis: Redis | None = None
    try:
        standards = get_catalog()
        logger.info(
            "batchqc_starting",
            log_level=settings.log_level,
            lot_assignment_strategy=settings.lot_assignment_strategy.value,
            products=len(standards.product_codes),
        )

        async with engine.connect() as connection:
            await connection.execute(text("SELECT 1"))

        redis = Redis.from_url(settings.redis_url, decode_responses=True)
        if settings.check_redis_on_startup:
            await redis.ping()
        app.state.redis = redis
    except Exception as exc:
        logger.exception("startup_failure", error=str(exc))
        raise

    yield

    logger.info("batchqc_shutting_down")
    if redis is not None:
        await redis.aclose()
    await engine.dispose()


async def _run_readiness_checks(app: FastAPI) -> dict[str, dict[str, Any]]:
    checks: dict[str, dict[str, Any]] = {}

    try:
        async with engine.connect() as connection:
            await connection.execute(text("SELECT 1"))
        checks["database"] = {"ok": True, "message": "ok"}
    except Exception as exc:
        checks["database"] = {"ok": False, "message": str(exc)}

    redis_client = getattr(app.state, "redis", None)
    if redis_client is None:
        checks["redis"] = {"ok": False, "message": "not connected"}
    else:
        try:
            await redis_client.ping()
            checks["redis"] = {"ok": True, "message": "ok"}
        except Exception as exc:
            checks["redis"] = {"ok": False, "message": str(exc)}

    try:
        standards = get_catalog()
        checks["catalog"] = {"ok": True, "message": f"{len(standards.product_codes)} products"}
    except Exception as exc:
        checks["catalog"] = {"ok": False, "message": str(exc)}

    return checks


app = FastAPI(
    title="Batch Quality Logbook API",
    description=(
        "Batch logbook for consumer-goods production. Classifies pH, solids "
        "and appearance against product standards, assigns traceable lot "
        "identifiers and aggregates quality dashboards."
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── Middleware ──────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestLoggingMiddleware)


# ── Health checks ───────────────────────────────────────────────────────────
@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    """Basic health check: verifies the API process is alive."""
    return {
        "status": "ok",
        "service": "batchqc",
        "version": __version__,
    }


@app.get("/health/ready", tags=["system"])
async def readiness_check() -> JSONResponse:
    checks = await _run_readiness_checks(app)
    ready = all(check["ok"] for check in checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ok" if ready else "degraded", "checks": checks},
    )


# ── Router registration ────────────────────────────────────────────────────
app.include_router(catalog.router, prefix="/api/v1")
app.include_router(records.router, prefix="/api/v1")
app.include_router(reports.router, prefix="/api/v1")
