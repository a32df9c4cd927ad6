"""
Compaction Orchestrator — one bounded, reportable compaction run.

Finds calendar months entirely older than the cutoff, then for each one
not yet archived (oldest first, at most ``max_periods_per_run``):
summarize → archive → remove hot files → update the index.  A long backlog
drains across repeated runs; months already archived never take a slot.

Every parsed line of a month's day files is summarized and counted, so
``events_archived`` always matches what was moved to the archive.  A month
whose files hold no readable lines is archived with an empty summary.

Each period is an independent unit of work: a failure is recorded as a
warning for that period only, and periods already finished in the same run
stay finished.  Interrupted runs are safe to repeat because the summary
artifact, written last, decides whether a period is done.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import SQLAlchemyError

from eventvault.config import settings
from eventvault.database import open_event_index
from eventvault.schemas import (
    CompactionFailure,
    CompactionOptions,
    CompactionReport,
    CompactionResult,
)
from eventvault.services.archiver import (
    archive_period,
    is_already_archived,
    remove_source_files,
    resolve_archive_dir,
)
from eventvault.services.eligibility import find_eligible_periods, group_files_by_period
from eventvault.services.event_index import insert_summary, remove_index_entries
from eventvault.services.events import read_event_file, resolve_events_dir
from eventvault.services.period_summary import generate_period_summary

logger = logging.getLogger("eventvault.compaction")


async def compact_events(
    options: CompactionOptions | None = None,
    now: datetime | None = None,
) -> CompactionResult:
    """
    Run one compaction pass.

    Parameters
    ----------
    options : CompactionOptions, optional
        Directory and throttle overrides; unset fields use ``settings``.
    now : datetime, optional
        Reference instant for the cutoff (defaults to the current UTC time).

    Returns
    -------
    CompactionReport, or CompactionFailure when the archive or index
    cannot be opened.  Never raises.
    """
    options = options or CompactionOptions()
    try:
        events_dir = resolve_events_dir(options.events_dir)
        archive_dir = resolve_archive_dir(options.archive_dir)
        cutoff_days = options.cutoff_days if options.cutoff_days is not None else settings.cutoff_days
        max_periods = options.max_periods_per_run or settings.max_periods_per_run

        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=cutoff_days)
        eligible = find_eligible_periods(events_dir, cutoff)
        if not eligible:
            return CompactionReport()

        # Archived periods are passed over without taking a slot from the throttle
        report = CompactionReport()
        pending = []
        for period in eligible:
            if await is_already_archived(archive_dir, period):
                logger.info("⏭️  %s already archived — skip", period)
                report.periods_skipped += 1
            else:
                pending.append(period)

        batch = pending[:max_periods]
        if not batch:
            return report

        logger.info(
            "📦 Compacting %d of %d pending period(s): %s",
            len(batch), len(pending), ", ".join(batch),
        )

        try:
            archive_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return CompactionFailure(error=f"Archive directory unavailable: {e}")

        period_files = group_files_by_period(events_dir)

        try:
            async with open_event_index(events_dir) as session:
                for period in batch:
                    try:
                        files = period_files.get(period, [])
                        events = []
                        for name in files:
                            events.extend(await read_event_file(events_dir / name))

                        if not events:
                            report.warnings.append(
                                f"No readable events for {period}; archived with an empty summary"
                            )
                        strays = sum(1 for e in events if e.period != period)
                        if strays:
                            logger.warning(
                                "⚠️  %d event(s) in %s files are timestamped outside the month",
                                strays, period,
                            )

                        summary = generate_period_summary(period, events).model_copy(
                            update={"source_files": list(files)}
                        )

                        archived = await archive_period(period, files, events_dir, archive_dir, summary)
                        if not archived.ok:
                            report.warnings.append(f"Archive failed for {period}: {archived.error}")
                            continue

                        removal = await remove_source_files(events_dir, files)
                        report.warnings.extend(removal.warnings)

                        try:
                            await remove_index_entries(session, period)
                            await insert_summary(session, summary)
                        except SQLAlchemyError as e:
                            report.warnings.append(f"Index update failed for {period}: {e}")

                        report.periods_processed += 1
                        report.events_archived += len(events)
                        report.summaries_created += 1
                    except Exception as e:
                        logger.exception("❌ Compaction of %s failed", period)
                        report.warnings.append(f"Failed to compact {period}: {e}")
        except SQLAlchemyError as e:
            return CompactionFailure(error=f"Event index unavailable: {e}")

        logger.info(
            "📦 Compaction complete — %d processed, %d skipped, %d events archived, %d warning(s)",
            report.periods_processed, report.periods_skipped,
            report.events_archived, len(report.warnings),
        )
        return report
    except Exception as e:
        logger.error("❌ Compaction run failed: %s", e)
        return CompactionFailure(error=str(e))


def format_compaction_message(result: CompactionResult) -> str | None:
    """One-line status for session output; None when there is nothing to say."""
    if not result.ok:
        return f"Compaction warning: {result.error}"
    if result.periods_processed == 0:
        return None
    plural = "s" if result.periods_processed > 1 else ""
    return (
        f"Compacted {result.events_archived} events "
        f"({result.periods_processed} period{plural}) → archive"
    )
