"""
Secondary Index — SQLite mirror of event metadata and period summaries.

The canonical JSONL files are the source of truth; this index only
accelerates lookups and can always be rebuilt with ``rebuild_index``.
CRUD helpers take an ``AsyncSession`` from ``open_event_index`` and raise
``SQLAlchemyError`` on failure after rolling back.
"""

import asyncio
import logging
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from eventvault.database import index_path, open_event_index, remove_index_files
from eventvault.models.event_index import IndexedEvent, IndexMeta, SummaryRow
from eventvault.schemas import (
    PeriodSummary,
    RebuildFailure,
    RebuildResult,
    RebuildSuccess,
    SystemEvent,
    iso_utc,
)
from eventvault.services.events import list_event_files, read_event_file, resolve_events_dir

logger = logging.getLogger(__name__)


def _event_row(event: SystemEvent) -> dict:
    return {
        "id": event.id,
        "timestamp": iso_utc(event.timestamp),
        "session_id": event.session_id,
        "type": event.type.value,
    }


# ─────────────────────────────────────────────────────────────────────
# events
# ─────────────────────────────────────────────────────────────────────

async def index_event(session: AsyncSession, event: SystemEvent) -> None:
    """Insert one event row; an already-indexed id is ignored."""
    await index_events(session, [event])


async def index_events(session: AsyncSession, events: Iterable[SystemEvent]) -> int:
    """Insert a batch in a single transaction — all rows or none."""
    rows = [_event_row(e) for e in events]
    if not rows:
        return 0
    stmt = sqlite_insert(IndexedEvent.__table__).on_conflict_do_nothing(index_elements=["id"])
    try:
        await session.execute(stmt, rows)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return len(rows)


async def remove_index_entries(session: AsyncSession, period: str) -> int:
    """Delete every event row whose timestamp falls in *period*."""
    try:
        result = await session.execute(
            delete(IndexedEvent.__table__).where(IndexedEvent.timestamp.like(f"{period}-%"))
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return result.rowcount or 0


async def count_indexed_events(session: AsyncSession) -> dict[str, int]:
    """Per-type row counts."""
    rows = await session.execute(
        select(IndexedEvent.type, func.count()).group_by(IndexedEvent.type)
    )
    return {event_type: count for event_type, count in rows.all()}


async def get_schema_version(session: AsyncSession) -> str | None:
    return (
        await session.execute(select(IndexMeta.value).where(IndexMeta.key == "schema_version"))
    ).scalar_one_or_none()


# ─────────────────────────────────────────────────────────────────────
# summaries
# ─────────────────────────────────────────────────────────────────────

async def insert_summary(session: AsyncSession, summary: PeriodSummary) -> None:
    """Upsert keyed by period; repeating it never duplicates a row."""
    values = {
        "id": summary.id,
        "period": summary.period,
        "created_at": iso_utc(summary.created_at),
        "event_count": summary.event_count,
        "data": summary.to_json(),
    }
    stmt = sqlite_insert(SummaryRow.__table__).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["period"],
        set_={k: stmt.excluded[k] for k in ("id", "created_at", "event_count", "data")},
    )
    try:
        await session.execute(stmt)
        await session.commit()
    except Exception:
        await session.rollback()
        raise


async def query_summaries(session: AsyncSession, period: str | None = None) -> list[PeriodSummary]:
    """Summaries ordered by period, optionally just one period."""
    stmt = select(SummaryRow.period, SummaryRow.data).order_by(SummaryRow.period)
    if period:
        stmt = stmt.where(SummaryRow.period == period)

    summaries = []
    for row_period, data in (await session.execute(stmt)).all():
        try:
            summaries.append(PeriodSummary.model_validate_json(data))
        except ValidationError as e:
            logger.warning("⚠️  Unreadable summary row for %s skipped: %s", row_period, e)
    return summaries


# ─────────────────────────────────────────────────────────────────────
# rebuild
# ─────────────────────────────────────────────────────────────────────

def _archived_summary_files(archive_dir: Path) -> list[Path]:
    if not archive_dir.is_dir():
        return []
    return sorted(archive_dir.glob("*/summary-*.json"))


async def rebuild_index(
    events_dir: str | Path | None = None,
    archive_dir: str | Path | None = None,
) -> RebuildResult:
    """
    Wipe the index and replay every canonical event file into it.

    Every parseable line is indexed (redaction markers included) so the
    index mirrors the files exactly.  With *archive_dir*, the archived
    ``summary-YYYY-MM.json`` artifacts are replayed too.
    """
    events_dir = resolve_events_dir(events_dir)
    try:
        remove_index_files(index_path(events_dir))

        events: list[SystemEvent] = []
        for name, _day in list_event_files(events_dir):
            events.extend(await read_event_file(events_dir / name))

        summaries: list[PeriodSummary] = []
        if archive_dir is not None:
            for path in _archived_summary_files(Path(archive_dir).expanduser()):
                try:
                    raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
                    summaries.append(PeriodSummary.model_validate_json(raw))
                except (OSError, ValidationError) as e:
                    logger.warning("⚠️  Skipping archived summary %s: %s", path.name, e)

        async with open_event_index(events_dir) as session:
            await index_events(session, events)
            for summary in summaries:
                await insert_summary(session, summary)
            # Duplicate ids collapse to one row
            events_indexed = sum((await count_indexed_events(session)).values())
    except Exception as e:
        logger.error("❌ Index rebuild for %s failed: %s", events_dir, e)
        return RebuildFailure(error=str(e))

    logger.info(
        "🔁 Index rebuilt for %s — %d events, %d summaries",
        events_dir, events_indexed, len(summaries),
    )
    return RebuildSuccess(events_indexed=events_indexed, summaries_indexed=len(summaries))
