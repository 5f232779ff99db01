# backend/app/main.py
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import contextlib
import logging
import threading
import time
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.routing import APIRoute

from .core.config import settings
from .core.constants import API_DESCRIPTION, API_TITLE, API_VERSION, BRAND_NAME
from .database import SessionLocal
from .errors import register_error_handlers
from .events.worker import process_due_jobs
from .middleware.prometheus_middleware import PrometheusMiddleware
from .routes import prometheus
from .routes.v1 import (
    availability as availability_v1,
    bookings as bookings_v1,
    health as health_v1,
)

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


logger = logging.getLogger(__name__)


def _background_jobs_worker_sync(shutdown_event: threading.Event) -> None:
    """Drain the booking-event outbox in a dedicated thread until shutdown."""

    poll_interval = max(1, int(settings.jobs_poll_interval))
    batch_size = max(1, int(settings.jobs_batch))

    while not shutdown_event.is_set():
        try:
            time.sleep(poll_interval)
            if shutdown_event.is_set():
                break

            db = SessionLocal()
            try:
                processed = process_due_jobs(db, limit=batch_size)
                if processed:
                    logger.info("Processed %d background jobs", processed)
            finally:
                db.close()
        except Exception as exc:
            logger.error("Background job worker iteration failed: %s", exc, exc_info=True)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown without deprecated events."""
    # Startup
    logger.info(f"{BRAND_NAME} API starting up...")
    logger.info(
        "Environment: %s (buffer_policy=%s, staff_assignment_policy=%s, redis_lock=%s)",
        settings.environment,
        settings.buffer_policy,
        settings.staff_assignment_policy,
        settings.reservation_redis_lock_enabled,
    )

    job_worker_task: asyncio.Task[None] | None = None
    job_worker_stop_event: threading.Event | None = None
    if settings.jobs_worker_enabled and not settings.is_testing:
        job_worker_stop_event = threading.Event()
        job_worker_task = asyncio.create_task(
            asyncio.to_thread(_background_jobs_worker_sync, job_worker_stop_event)
        )

    yield

    # Shutdown
    logger.info(f"{BRAND_NAME} API shutting down...")

    if job_worker_task is not None:
        if job_worker_stop_event is not None:
            job_worker_stop_event.set()
        with contextlib.suppress(BaseException):
            await job_worker_task


def _unique_operation_id(route: APIRoute) -> str:
    methods = "_".join(sorted(m.lower() for m in route.methods or []))
    path = route.path_format.replace("/", "_").replace("{", "").replace("}", "").strip("_")
    name = (route.name or "operation").lower().replace(" ", "_")
    return f"{methods}__{path}__{name}".strip("_")


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
    generate_unique_id_function=_unique_operation_id,
)
# Register unified error envelope handlers
register_error_handlers(app)

if settings.prometheus_enabled:
    app.add_middleware(PrometheusMiddleware)

# Create API v1 router
api_v1 = APIRouter(prefix="/api/v1")

api_v1.include_router(health_v1.router, prefix="/health")
api_v1.include_router(availability_v1.router, prefix="/availability")
api_v1.include_router(bookings_v1.router, prefix="/bookings")

app.include_router(api_v1)
app.include_router(prometheus.router, prefix="/metrics")


__all__ = ["app"]
