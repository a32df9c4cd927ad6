"""
EventVault API — application entry point.

Serves the admin routes and runs the periodic compaction job.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from eventvault.config import settings
from eventvault.routes import VERSION, router
from eventvault.services.compaction import compact_events, format_compaction_message

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)

logger = logging.getLogger(__name__)


async def run_scheduled_compaction() -> None:
    """One compaction pass with configured defaults; logs the outcome."""
    result = await compact_events()
    message = format_compaction_message(result)
    if not result.ok:
        logger.warning("⚠️  %s", message)
        return
    if message:
        logger.info("✅ %s", message)
    for warning in result.warnings:
        logger.warning("⚠️  %s", warning)


async def periodic_compaction(interval_hours: float) -> None:
    """Compact at startup, then every *interval_hours*."""
    while True:
        try:
            await run_scheduled_compaction()
        except Exception as e:
            logger.error("Scheduled compaction error: %s", e)
        await asyncio.sleep(interval_hours * 3600)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown hook."""
    logger.info("🚀 Starting EventVault API v%s", VERSION)
    logger.info("Hot store: %s — archive: %s", settings.events_dir, settings.archive_dir)

    compaction_task = None
    if settings.compaction_interval_hours > 0:
        compaction_task = asyncio.create_task(
            periodic_compaction(settings.compaction_interval_hours)
        )
    else:
        logger.info("ℹ️ Periodic compaction disabled")

    yield

    # Shutdown
    if compaction_task:
        compaction_task.cancel()
        try:
            await compaction_task
        except asyncio.CancelledError:
            pass
    logger.info("👋 Shutdown complete")


app = FastAPI(
    title="EventVault API",
    description="Append-only event store with monthly compaction into summarized archives.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "EventVault API",
        "version": VERSION,
        "docs": "/docs",
    }
