"""
Tests for the secondary index — schema init, CRUD, rebuild from canonical files.
"""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError

from eventvault.database import index_path, init_event_index, open_event_index
from eventvault.models.event_index import IndexedEvent, SummaryRow
from eventvault.schemas import EventFilter
from eventvault.services.event_index import (
    count_indexed_events,
    get_schema_version,
    index_event,
    index_events,
    insert_summary,
    query_summaries,
    rebuild_index,
    remove_index_entries,
)
from eventvault.services.events import append_event, count_events
from eventvault.services.period_summary import generate_period_summary

FIXED_NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


async def _row_count(session, model) -> int:
    return (await session.execute(select(func.count()).select_from(model))).scalar_one()


class TestInitEventIndex:
    async def test_creates_schema(self, events_dir):
        engine = await init_event_index(events_dir)
        try:
            async with engine.connect() as conn:
                names = {
                    row[0] for row in await conn.execute(
                        text("SELECT name FROM sqlite_master WHERE type='table'")
                    )
                }
        finally:
            await engine.dispose()
        assert {"events", "summaries", "meta"} <= names
        assert index_path(events_dir).exists()

    async def test_open_twice_is_idempotent(self, events_dir):
        async with open_event_index(events_dir) as session:
            assert await get_schema_version(session) == "1"
        async with open_event_index(events_dir) as session:
            assert await get_schema_version(session) == "1"
            assert (await session.execute(text("SELECT COUNT(*) FROM meta"))).scalar_one() == 1

    async def test_existing_schema_version_preserved(self, events_dir):
        async with open_event_index(events_dir) as session:
            await session.execute(text("UPDATE meta SET value = '7' WHERE key = 'schema_version'"))
            await session.commit()
        async with open_event_index(events_dir) as session:
            assert await get_schema_version(session) == "7"

    async def test_corrupt_file_is_recreated(self, events_dir):
        index_path(events_dir).write_bytes(b"this is not a sqlite database at all" * 100)
        async with open_event_index(events_dir) as session:
            assert await get_schema_version(session) == "1"

    async def test_creates_missing_events_dir(self, tmp_path):
        target = tmp_path / "fresh" / "events"
        async with open_event_index(target) as session:
            assert await _row_count(session, IndexedEvent) == 0
        assert target.is_dir()


class TestIndexCrud:
    async def test_index_event_inserts_row(self, events_dir, make_event):
        async with open_event_index(events_dir) as session:
            await index_event(session, make_event("2025-10-01T10:00:00.000Z", id="one"))
            row = (await session.execute(select(IndexedEvent))).scalar_one()
        assert row.id == "one"
        assert row.timestamp == "2025-10-01T10:00:00.000Z"
        assert row.session_id == "sess-1"
        assert row.type == "session_start"

    async def test_duplicate_ids_ignored(self, events_dir, make_event):
        event = make_event("2025-10-01T10:00:00.000Z")
        async with open_event_index(events_dir) as session:
            await index_event(session, event)
            await index_event(session, event)
            assert await _row_count(session, IndexedEvent) == 1

    async def test_index_events_batch(self, events_dir, make_event):
        events = [make_event(f"2025-10-{d:02d}T10:00:00.000Z") for d in range(1, 11)]
        async with open_event_index(events_dir) as session:
            assert await index_events(session, events) == 10
            assert await _row_count(session, IndexedEvent) == 10

    async def test_index_events_empty_batch(self, events_dir):
        async with open_event_index(events_dir) as session:
            assert await index_events(session, []) == 0

    async def test_failed_batch_leaves_no_rows(self, events_dir, make_event):
        events = [make_event(f"2025-10-{d:02d}T10:00:00.000Z") for d in range(1, 6)]
        async with open_event_index(events_dir) as session:
            with patch.object(session, "commit", side_effect=SQLAlchemyError("disk I/O error")):
                with pytest.raises(SQLAlchemyError):
                    await index_events(session, events)
            assert await _row_count(session, IndexedEvent) == 0

    async def test_remove_index_entries_by_period(self, events_dir, make_event):
        events = [
            make_event("2025-09-30T23:59:59.000Z"),
            make_event("2025-10-01T00:00:00.000Z"),
            make_event("2025-10-31T23:59:59.000Z"),
            make_event("2025-11-01T00:00:00.000Z"),
        ]
        async with open_event_index(events_dir) as session:
            await index_events(session, events)
            assert await remove_index_entries(session, "2025-10") == 2
            remaining = (await session.execute(select(IndexedEvent.timestamp))).scalars().all()
        assert sorted(remaining) == ["2025-09-30T23:59:59.000Z", "2025-11-01T00:00:00.000Z"]

    async def test_insert_summary_stores_json(self, events_dir, make_event):
        summary = generate_period_summary("2025-10", [make_event("2025-10-01T10:00:00.000Z")])
        async with open_event_index(events_dir) as session:
            await insert_summary(session, summary)
            row = (await session.execute(select(SummaryRow))).scalar_one()
        assert row.period == "2025-10"
        assert row.event_count == 1
        assert '"eventCount":1' in row.data

    async def test_insert_summary_upserts_by_period(self, events_dir, make_event):
        first = generate_period_summary("2025-10", [make_event("2025-10-01T10:00:00.000Z")])
        second = generate_period_summary("2025-10", [
            make_event("2025-10-01T10:00:00.000Z"),
            make_event("2025-10-02T10:00:00.000Z"),
        ])
        async with open_event_index(events_dir) as session:
            await insert_summary(session, first)
            await insert_summary(session, second)
            await insert_summary(session, second)
            assert await _row_count(session, SummaryRow) == 1
            [stored] = await query_summaries(session, "2025-10")
        assert stored.event_count == 2
        assert stored.id == second.id

    async def test_query_summaries_round_trip(self, events_dir, make_event):
        summary = generate_period_summary(
            "2025-10",
            [make_event("2025-10-01T10:00:00.000Z", type="skill_invoked", data={"skill": "x"})],
            created_at=FIXED_NOW,
        )
        async with open_event_index(events_dir) as session:
            await insert_summary(session, summary)
            assert await query_summaries(session, "2025-10") == [summary]
            assert await query_summaries(session, "2025-11") == []

    async def test_default_created_at_survives_round_trip(self, events_dir, make_event):
        summary = generate_period_summary("2025-10", [make_event("2025-10-01T10:00:00.000Z")])
        assert summary.created_at.microsecond % 1000 == 0
        async with open_event_index(events_dir) as session:
            await insert_summary(session, summary)
            assert await query_summaries(session, "2025-10") == [summary]

    async def test_query_summaries_all_ordered(self, events_dir):
        async with open_event_index(events_dir) as session:
            for period in ("2025-09", "2025-07", "2025-08"):
                await insert_summary(session, generate_period_summary(period, []))
            periods = [s.period for s in await query_summaries(session)]
        assert periods == ["2025-07", "2025-08", "2025-09"]

    async def test_query_summaries_skips_unreadable_rows(self, events_dir):
        async with open_event_index(events_dir) as session:
            await insert_summary(session, generate_period_summary("2025-08", []))
            await session.execute(text(
                "INSERT INTO summaries (id, period, created_at, event_count, data) "
                "VALUES ('bad', '2025-09', 'x', 0, '{\"nope\": true}')"
            ))
            await session.commit()
            periods = [s.period for s in await query_summaries(session)]
        assert periods == ["2025-08"]


class TestRebuildIndex:
    async def test_rebuild_matches_canonical_counts(self, events_dir, seed_events):
        await seed_events(events_dir, ["2025-10"], per_day=3)

        result = await rebuild_index(events_dir)
        assert result.ok
        assert result.events_indexed == 93
        assert result.summaries_indexed == 0

        expected = await count_events(EventFilter(events_dir=str(events_dir), include_redacted=True))
        async with open_event_index(events_dir) as session:
            assert await count_indexed_events(session) == expected

    async def test_rebuild_replaces_stale_rows(self, events_dir, make_event):
        async with open_event_index(events_dir) as session:
            await index_event(session, make_event("2020-01-01T00:00:00.000Z", id="ghost"))
        await append_event(make_event("2025-10-01T10:00:00.000Z", id="real"), events_dir)

        assert (await rebuild_index(events_dir)).ok
        async with open_event_index(events_dir) as session:
            ids = (await session.execute(select(IndexedEvent.id))).scalars().all()
        assert ids == ["real"]

    async def test_rebuild_counts_duplicate_ids_once(self, events_dir, make_event):
        event = make_event("2025-10-01T10:00:00.000Z", id="dup")
        await append_event(event, events_dir)
        await append_event(event, events_dir)
        await append_event(make_event("2025-10-02T10:00:00.000Z", id="other"), events_dir)

        result = await rebuild_index(events_dir)
        assert result.ok
        assert result.events_indexed == 2

    async def test_rebuild_empty_directory(self, events_dir):
        result = await rebuild_index(events_dir)
        assert result.ok
        assert result.events_indexed == 0
        async with open_event_index(events_dir) as session:
            assert await count_indexed_events(session) == {}
            assert await query_summaries(session) == []

    async def test_rebuild_replays_archived_summaries(self, events_dir, archive_dir):
        year_dir = archive_dir / "2025"
        year_dir.mkdir()
        summary = generate_period_summary("2025-08", [], created_at=FIXED_NOW)
        (year_dir / "summary-2025-08.json").write_text(summary.to_json(indent=2))
        (year_dir / "summary-2025-09.json").write_text("{broken")

        result = await rebuild_index(events_dir, archive_dir)
        assert result.ok
        assert result.summaries_indexed == 1
        async with open_event_index(events_dir) as session:
            assert await query_summaries(session) == [summary]

    async def test_rebuild_reports_failure(self, events_dir):
        with patch(
            "eventvault.services.event_index.open_event_index",
            side_effect=SQLAlchemyError("unable to open database file"),
        ):
            result = await rebuild_index(events_dir)
        assert not result.ok
        assert "unable to open" in result.error
