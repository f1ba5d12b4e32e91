"""SOS Alert FastAPI Application."""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sos_api import __version__
from sos_api.config import settings, validate_secret_key
from sos_api.core.errors import register_error_handlers
from sos_api.database import close_database
from sos_api.logging_config import get_logger, setup_logging
from sos_api.middleware import CorrelationIdMiddleware
from sos_api.routers import health, responder, sos
from sos_api.services.scheduler import MaintenanceScheduler

setup_logging(
    log_format=settings.log_format,
    log_level=settings.log_level,
    service_name=settings.service_name,
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Migrations are run by alembic before uvicorn starts
    validate_secret_key()
    logger.info("SOS Alert API started", version=__version__)

    app.state.scheduler = None
    if settings.maintenance_scheduler_enabled and not settings.testing:
        scheduler = MaintenanceScheduler()
        scheduler.start()
        app.state.scheduler = scheduler

    yield

    logger.info("Shutting down SOS Alert API...")
    if app.state.scheduler is not None:
        app.state.scheduler.stop()
    await close_database()
    logger.info("SOS Alert API shutdown complete")


app = FastAPI(
    title="SOS Alert API",
    description="Emergency alert intake, notification and responder coordination",
    version=__version__,
    lifespan=lifespan,
)

# First added = last executed
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

register_error_handlers(app)

app.include_router(health.router)
app.include_router(sos.router)
app.include_router(responder.router)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint."""
    return {
        "name": "SOS Alert API",
        "version": __version__,
        "docs": "/docs",
    }
