"""
EventVault — Pydantic models for event records, period summaries and
operation results.

On-disk JSON (event lines, summary artifacts, the index ``data`` column)
uses camelCase keys; Python code uses the snake_case attribute names.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

PERIOD_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def iso_utc(ts: datetime) -> str:
    """Render an aware datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    ts = ts.astimezone(timezone.utc)
    return ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── events ──────────────────────────────────────────────

class EventType(str, Enum):
    SESSION_START = "session_start"
    SESSION_END = "session_end"
    SKILL_INVOKED = "skill_invoked"
    ISC_VERIFIED = "isc_verified"
    LEARNING_EXTRACTED = "learning_extracted"
    PROPOSAL_ACCEPTED = "proposal_accepted"
    PROPOSAL_REJECTED = "proposal_rejected"
    ERROR = "error"
    CUSTOM = "custom"
    REDACTION = "redaction"


class SystemEvent(CamelModel):
    """One immutable line of a hot-store file."""

    id: str = Field(..., min_length=1)
    timestamp: datetime
    session_id: str = Field(..., min_length=1)
    type: EventType
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def _require_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError("timestamp must carry a timezone")
        return value.astimezone(timezone.utc)

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        return iso_utc(value)

    @property
    def day(self) -> str:
        """UTC calendar date, ``YYYY-MM-DD``."""
        return self.timestamp.strftime("%Y-%m-%d")

    @property
    def period(self) -> str:
        return self.timestamp.strftime("%Y-%m")

    def data_text(self, key: str) -> str | None:
        """``data[key]`` when present and a non-empty string, else None."""
        value = self.data.get(key)
        if isinstance(value, str) and value:
            return value
        return None


class EventFilter(CamelModel):
    """Filters accepted by ``read_events`` / ``count_events``."""

    events_dir: str | None = None
    type: EventType | None = None
    session_id: str | None = None
    since: datetime | None = None
    until: datetime | None = None
    limit: int | None = Field(None, ge=0)
    include_redacted: bool = False

    @field_validator("since", "until")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class AppendSuccess(CamelModel):
    ok: Literal[True] = True
    event_id: str
    file: str


class AppendFailure(CamelModel):
    ok: Literal[False] = False
    error: str


AppendResult = Union[AppendSuccess, AppendFailure]


# ── period summaries ────────────────────────────────────

class PatternCount(CamelModel):
    name: str
    count: int


class TopPatterns(CamelModel):
    skills: list[PatternCount] = Field(default_factory=list)
    errors: list[PatternCount] = Field(default_factory=list)


class TimeDistribution(CamelModel):
    by_day_of_week: dict[str, int]
    by_hour: dict[str, int]


class LongestSession(CamelModel):
    session_id: str
    event_count: int


class SessionStats(CamelModel):
    total_sessions: int
    avg_events_per_session: float
    longest_session: LongestSession


class DayCount(CamelModel):
    date: str
    count: int


class Anomalies(CamelModel):
    zero_days: list[str] = Field(default_factory=list)
    high_count_days: list[DayCount] = Field(default_factory=list)


class PeriodSummary(CamelModel):
    """Aggregate statistics for one compacted calendar month."""

    id: str = Field(..., min_length=1)
    period: str = Field(..., pattern=PERIOD_PATTERN.pattern)
    created_at: datetime
    event_count: int
    event_counts: dict[str, int]
    top_patterns: TopPatterns
    time_distribution: TimeDistribution
    session_stats: SessionStats
    anomalies: Anomalies
    source_files: list[str] = Field(default_factory=list)

    @field_serializer("created_at")
    def _serialize_created_at(self, value: datetime) -> str:
        return iso_utc(value)

    def to_json(self, indent: int | None = None) -> str:
        return self.model_dump_json(by_alias=True, indent=indent)


# ── archiver / index results ────────────────────────────

class ArchiveSuccess(CamelModel):
    ok: Literal[True] = True
    files_archived: int


class ArchiveFailure(CamelModel):
    ok: Literal[False] = False
    error: str


ArchiveResult = Union[ArchiveSuccess, ArchiveFailure]


class RemoveResult(CamelModel):
    removed: int = 0
    warnings: list[str] = Field(default_factory=list)


class RebuildSuccess(CamelModel):
    ok: Literal[True] = True
    events_indexed: int
    summaries_indexed: int


class RebuildFailure(CamelModel):
    ok: Literal[False] = False
    error: str


RebuildResult = Union[RebuildSuccess, RebuildFailure]


# ── compaction ──────────────────────────────────────────

class CompactionOptions(CamelModel):
    """Per-run overrides; unset fields fall back to ``settings``."""

    events_dir: str | None = None
    archive_dir: str | None = None
    cutoff_days: int | None = Field(None, ge=0)
    max_periods_per_run: int | None = Field(None, ge=1)


class CompactionReport(CamelModel):
    ok: Literal[True] = True
    periods_processed: int = 0
    periods_skipped: int = 0
    events_archived: int = 0
    summaries_created: int = 0
    warnings: list[str] = Field(default_factory=list)


class CompactionFailure(CamelModel):
    ok: Literal[False] = False
    error: str


CompactionResult = Union[CompactionReport, CompactionFailure]
