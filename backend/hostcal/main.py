"""HostCal API application."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hostcal.api.v1.blocks import router as blocks_router
from hostcal.api.v1.calendar import router as calendar_router
from hostcal.api.v1.feeds import router as feeds_router
from hostcal.config import settings
from hostcal.database import engine
from hostcal.engine.errors import InvalidWindowError
from hostcal.services.feed_scheduler import start_feed_refresh, stop_feed_refresh

logging.basicConfig(
    level=logging.DEBUG if settings.debug else settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("%s %s starting (%s)", settings.app_name, settings.app_version, settings.environment)
    start_feed_refresh()
    yield
    await stop_feed_refresh()
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Multi-source calendar aggregation and availability for short-term rental hosts.",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in (calendar_router, feeds_router, blocks_router):
    app.include_router(router)


@app.exception_handler(InvalidWindowError)
async def invalid_window_handler(request: Request, exc: InvalidWindowError) -> JSONResponse:
    """A date range whose end is not after its start is a client error."""
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str | bool]:
    return {
        "status": "healthy",
        "service": settings.app_name,
        "feed_auto_refresh": settings.feed_auto_refresh_enabled,
    }
