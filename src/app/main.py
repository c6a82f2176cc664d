"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from zoneinfo import ZoneInfo

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from app.api import line, reports, settings as settings_api
from app.core.config import settings
from app.core.deps import build_legacy_source, build_relay_client
from app.core.logging import setup_logging
from app.db.schema import Base
from app.db.session import SessionLocal, engine
from app.services.scheduler import DailyReportScheduler

PREFIX = "/api"
RELAY_PATH = f"{PREFIX}/line/push"

logger = logging.getLogger(__name__)


def build_scheduler() -> DailyReportScheduler:
    """Scheduler for the configured organization, on the configured timezone's clock."""
    tz = ZoneInfo(settings.scheduler_timezone)
    return DailyReportScheduler(
        settings.scheduler_organization_id,
        SessionLocal,
        build_relay_client(),
        clock=lambda: datetime.now(tz),
        interval_seconds=settings.scheduler_interval_seconds,
        legacy_source=build_legacy_source(),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    setup_logging(verbose=settings.debug, log_file=settings.log_file, level=settings.log_level)
    Base.metadata.create_all(engine)

    scheduler = None
    if settings.scheduler_organization_id:
        scheduler = build_scheduler()
        scheduler.start()
    else:
        logger.info("SCHEDULER_ORGANIZATION_ID not set; daily LINE report disabled")

    yield

    if scheduler is not None:
        await scheduler.stop()


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan,
)

# CORS: dashboard dev servers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Outside CORSMiddleware: the relay answers every origin, the dashboard API only the configured ones
@app.middleware("http")
async def relay_cors(request: Request, call_next):
    if request.url.path != RELAY_PATH:
        return await call_next(request)
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=line.RELAY_CORS_HEADERS)
    response = await call_next(request)
    for key, value in line.RELAY_CORS_HEADERS.items():
        response.headers.setdefault(key, value)
    return response


app.include_router(line.router, prefix=PREFIX)
app.include_router(settings_api.router, prefix=PREFIX)
app.include_router(reports.router, prefix=PREFIX)


@app.get("/health")
def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}
