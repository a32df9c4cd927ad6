"""
Event Store adapter — append-only, day-partitioned JSONL files.

Each UTC calendar day gets one ``events-YYYY-MM-DD.jsonl`` file holding one
JSON object per line.  Reads are lenient: a malformed or invalid line is
skipped, never fatal.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import uuid
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from eventvault.config import settings
from eventvault.schemas import (
    AppendFailure,
    AppendResult,
    AppendSuccess,
    EventFilter,
    EventType,
    SystemEvent,
)

logger = logging.getLogger(__name__)

EVENT_FILE_PATTERN = re.compile(r"^events-(\d{4}-\d{2}-\d{2})\.jsonl$")


def resolve_events_dir(events_dir: str | Path | None = None) -> Path:
    """Explicit directory if given, else the configured hot store."""
    return Path(events_dir or settings.events_dir).expanduser().resolve()


def event_filename(ts: datetime) -> str:
    return f"events-{ts.astimezone(timezone.utc):%Y-%m-%d}.jsonl"


def list_event_files(events_dir: str | Path) -> list[tuple[str, str]]:
    """Return sorted ``(filename, YYYY-MM-DD)`` pairs; a missing dir yields []."""
    try:
        names = [p.name for p in Path(events_dir).iterdir()]
    except (FileNotFoundError, NotADirectoryError):
        return []
    files = []
    for name in names:
        match = EVENT_FILE_PATTERN.match(name)
        if match:
            files.append((name, match.group(1)))
    return sorted(files)


def parse_event_lines(content: str, source: str = "") -> list[SystemEvent]:
    """Parse JSONL text, dropping blank, malformed and invalid lines."""
    events: list[SystemEvent] = []
    for lineno, line in enumerate(content.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            events.append(SystemEvent.model_validate(json.loads(line)))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.debug("Skipping malformed line %s:%d (%s)", source, lineno, type(e).__name__)
    return events


async def read_event_file(path: Path) -> list[SystemEvent]:
    try:
        content = await asyncio.to_thread(path.read_text, encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("⚠️  Could not read %s: %s", path.name, e)
        return []
    return parse_event_lines(content, path.name)


# ─────────────────────────────────────────────────────────────────────
# write
# ─────────────────────────────────────────────────────────────────────

def _append_line(path: Path, line: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as fh:
        fh.write(line)


async def append_event(
    event: SystemEvent | dict[str, Any],
    events_dir: str | Path | None = None,
) -> AppendResult:
    """Validate *event* and append it to the file for its UTC date."""
    try:
        if not isinstance(event, SystemEvent):
            event = SystemEvent.model_validate(event)
    except ValidationError as e:
        return AppendFailure(error=str(e))

    try:
        filename = event_filename(event.timestamp)
        path = resolve_events_dir(events_dir) / filename
        line = event.model_dump_json(by_alias=True) + "\n"
        await asyncio.to_thread(_append_line, path, line)
    except OSError as e:
        logger.error("❌ Append of event %s failed: %s", event.id, e)
        return AppendFailure(error=str(e))

    return AppendSuccess(event_id=event.id, file=filename)


async def log_event(
    event_type: EventType | str,
    data: dict[str, Any] | None = None,
    session_id: str | None = None,
    events_dir: str | Path | None = None,
) -> AppendResult:
    """Stamp a new event with a fresh id and the current time, then append it."""
    try:
        event = SystemEvent(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc),
            session_id=session_id or settings.session_id or "unknown",
            type=event_type,
            data=data or {},
        )
    except ValidationError as e:
        return AppendFailure(error=str(e))
    return await append_event(event, events_dir)


# ─────────────────────────────────────────────────────────────────────
# read
# ─────────────────────────────────────────────────────────────────────

def _redacted_ids(events: list[SystemEvent]) -> set[str]:
    ids = set()
    for event in events:
        if event.type is EventType.REDACTION:
            target = event.data_text("redactedEventId")
            if target:
                ids.add(target)
    return ids


async def read_events(filters: EventFilter | None = None) -> list[SystemEvent]:
    """
    Read events matching *filters*, oldest first.

    Files outside the ``since``/``until`` dates are not opened.  Redacted
    records and the redaction markers themselves are dropped unless
    ``include_redacted`` is set.  Redaction markers are honoured only when
    they fall inside the scanned date range.
    """
    filters = filters or EventFilter()
    events_dir = resolve_events_dir(filters.events_dir)

    since_day = filters.since.strftime("%Y-%m-%d") if filters.since else None
    until_day = filters.until.strftime("%Y-%m-%d") if filters.until else None

    events: list[SystemEvent] = []
    for name, day in list_event_files(events_dir):
        if since_day and day < since_day:
            continue
        if until_day and day > until_day:
            continue
        events.extend(await read_event_file(events_dir / name))

    if not filters.include_redacted:
        redacted = _redacted_ids(events)
        events = [
            e for e in events
            if e.type is not EventType.REDACTION and e.id not in redacted
        ]

    selected = []
    for event in events:
        if filters.type and event.type is not filters.type:
            continue
        if filters.session_id and event.session_id != filters.session_id:
            continue
        if filters.since and event.timestamp < filters.since:
            continue
        if filters.until and event.timestamp > filters.until:
            continue
        selected.append(event)

    selected.sort(key=lambda e: e.timestamp)
    if filters.limit is not None:
        return selected[: filters.limit]
    return selected


async def count_events(filters: EventFilter | None = None) -> dict[str, int]:
    """Per-type counts over ``read_events(filters)``."""
    counts = Counter(e.type.value for e in await read_events(filters))
    return dict(counts)
