"""
StockPulse API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from alerts.content import build_content_generator
from alerts.engine import AlertingEngine
from alerts.heartbeat import AlertHeartbeat
from core.config import get_settings
from db.session import AsyncSessionLocal

settings = get_settings()
logger = structlog.get_logger()


async def run_alert_batch() -> int:
    """Operator-triggered global run with its own session."""
    async with AsyncSessionLocal() as db:
        return await AlertingEngine(db, build_content_generator()).process_all_enabled()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("StockPulse API starting up", version=settings.app_version)
    heartbeat = None
    if settings.heartbeat_enabled:
        heartbeat = AlertHeartbeat(
            interval_seconds=settings.heartbeat_interval_seconds,
            log_every_minutes=settings.heartbeat_log_every_minutes,
            batch_runner=run_alert_batch,
        )
        heartbeat.start()
    app.state.heartbeat = heartbeat
    yield
    if heartbeat is not None:
        await heartbeat.stop()
    logger.info("StockPulse API shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Daily low-stock alerting for merchants",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers (settings first so /settings never hits /{alert_id})
from api.v1.routers import alert_settings, alerts

app.include_router(alert_settings.router)
app.include_router(alerts.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    return {"status": "healthy", "version": settings.app_version}
