"""
Archiver — hot store → per-year cold archive.

For one period, copies every day file into ``{archive_dir}/{YYYY}/`` and then
writes ``summary-YYYY-MM.json`` beside them.  The summary is written last and
atomically, so its presence is the idempotency marker: if it exists, every
copy before it completed and was verified.

Source files are removed only by ``remove_source_files``, which the
orchestrator calls after a successful ``archive_period``.
"""

from __future__ import annotations

import asyncio
import filecmp
import logging
import os
import shutil
from pathlib import Path

from eventvault.config import settings
from eventvault.schemas import (
    ArchiveFailure,
    ArchiveResult,
    ArchiveSuccess,
    PeriodSummary,
    RemoveResult,
)

logger = logging.getLogger("eventvault.archiver")


# ─────────────────────────────────────────────────────────────────────
# helpers
# ─────────────────────────────────────────────────────────────────────

def resolve_archive_dir(archive_dir: str | Path | None = None) -> Path:
    """Explicit directory if given, else the configured archive root."""
    return Path(archive_dir or settings.archive_dir).expanduser().resolve()


def summary_path(archive_dir: str | Path, period: str) -> Path:
    return Path(archive_dir) / period[:4] / f"summary-{period}.json"


def _copy_verified(src: Path, dest: Path) -> None:
    """Copy through a temp file + rename, then compare bytes."""
    tmp = dest.with_name(dest.name + ".tmp")
    shutil.copyfile(src, tmp)
    os.replace(tmp, dest)
    if not filecmp.cmp(src, dest, shallow=False):
        raise OSError(f"archived copy of {src.name} does not match its source")


def _write_atomic(path: Path, content: str) -> None:
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(content, encoding="utf-8")
    os.replace(tmp, path)


# ─────────────────────────────────────────────────────────────────────
# core
# ─────────────────────────────────────────────────────────────────────

async def is_already_archived(archive_dir: str | Path, period: str) -> bool:
    """True iff the period's summary artifact exists."""
    return await asyncio.to_thread(summary_path(archive_dir, period).is_file)


async def archive_period(
    period: str,
    source_files: list[str],
    events_dir: str | Path,
    archive_dir: str | Path,
    summary: PeriodSummary,
) -> ArchiveResult:
    """
    Copy *source_files* into the period's year directory and write *summary*.

    Returns
    -------
    ArchiveSuccess with ``files_archived`` — files newly copied this call.
    A file already archived with identical bytes is not copied again and
    not counted.  Any failure yields ArchiveFailure and no summary.
    """
    events_dir = Path(events_dir)
    year_dir = Path(archive_dir) / period[:4]

    try:
        await asyncio.to_thread(year_dir.mkdir, parents=True, exist_ok=True)

        files_archived = 0
        for name in source_files:
            src = events_dir / name
            dest = year_dir / name

            if dest.exists():
                if await asyncio.to_thread(filecmp.cmp, src, dest, False):
                    logger.debug("⏭️  %s already archived — skip", name)
                    continue
                logger.warning("⚠️  Archived %s differs from its source — refreshing", name)

            await asyncio.to_thread(_copy_verified, src, dest)
            files_archived += 1

        await asyncio.to_thread(
            _write_atomic, summary_path(archive_dir, period), summary.to_json(indent=2)
        )
    except OSError as e:
        logger.error("❌ Archive of %s failed: %s", period, e)
        return ArchiveFailure(error=str(e))

    logger.info("📦 Archived %s — %d new file(s) in %s", period, files_archived, year_dir)
    return ArchiveSuccess(files_archived=files_archived)


async def remove_source_files(events_dir: str | Path, filenames: list[str]) -> RemoveResult:
    """Delete hot-store files; each failure becomes a warning, never an abort."""
    result = RemoveResult()
    for name in filenames:
        try:
            await asyncio.to_thread(os.remove, Path(events_dir) / name)
            result.removed += 1
        except OSError as e:
            reason = e.strerror or str(e)
            result.warnings.append(f"Could not remove {name}: {reason}")
            logger.warning("⚠️  Could not remove %s: %s", name, reason)
    return result
