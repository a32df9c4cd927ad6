"""
EventVault — Admin API routes.
Manual compaction trigger, summary lookup, index rebuild and store counts.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from eventvault.config import settings
from eventvault.database import open_event_index
from eventvault.schemas import (
    PERIOD_PATTERN,
    CompactionOptions,
    EventFilter,
    EventType,
    PeriodSummary,
)
from eventvault.services.compaction import compact_events, format_compaction_message
from eventvault.services.event_index import query_summaries, rebuild_index
from eventvault.services.events import count_events, resolve_events_dir

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

router = APIRouter()


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: str


@router.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(
        status="ok",
        version=VERSION,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


# ═══════════════════════════════════════════════════════
#  Compaction
# ═══════════════════════════════════════════════════════

@router.post("/compaction/run")
async def run_compaction(options: CompactionOptions | None = None):
    """Run one compaction pass now and return its report."""
    logger.info("Manual compaction requested")
    result = await compact_events(options)
    body = result.model_dump(by_alias=True)
    body["message"] = format_compaction_message(result)
    return body


# ═══════════════════════════════════════════════════════
#  Index
# ═══════════════════════════════════════════════════════

@router.get("/summaries")
async def list_summaries(period: str | None = Query(None)):
    """Compacted period summaries from the index, optionally one period."""
    if period is not None and not PERIOD_PATTERN.match(period):
        raise HTTPException(status_code=422, detail="period must be YYYY-MM")

    async with open_event_index(resolve_events_dir()) as session:
        summaries: list[PeriodSummary] = await query_summaries(session, period)
    return [s.model_dump(mode="json", by_alias=True) for s in summaries]


@router.post("/index/rebuild")
async def rebuild(include_summaries: bool = Query(True, alias="includeSummaries")):
    """Wipe and replay the index from the hot store (and archived summaries)."""
    archive_dir = settings.archive_dir if include_summaries else None
    result = await rebuild_index(resolve_events_dir(), archive_dir)
    if not result.ok:
        raise HTTPException(status_code=500, detail=result.error)
    return result.model_dump(by_alias=True)


@router.get("/events/counts")
async def event_counts(
    type: EventType | None = Query(None),
    session_id: str | None = Query(None, alias="sessionId"),
):
    """Per-type counts straight from the canonical files."""
    return await count_events(EventFilter(
        events_dir=str(resolve_events_dir()),
        type=type,
        session_id=session_id,
    ))
