"""
Period Summary Generator — aggregate statistics for one calendar month.

Pure: the result depends only on the period and the set of events (plus the
``created_at`` stamp).  Events are sorted by ``(timestamp, id)`` first, so
input order never changes any field.
"""

from __future__ import annotations

import calendar
import math
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Iterable

from eventvault.schemas import (
    Anomalies,
    DayCount,
    EventType,
    LongestSession,
    PatternCount,
    PeriodSummary,
    SessionStats,
    SystemEvent,
    TimeDistribution,
    TopPatterns,
)

# ── tunables ──
TOP_PATTERNS_LIMIT = 10
# A day is "high-count" when it exceeds mean + 2σ of the month's daily counts
HIGH_COUNT_STDDEV_MULTIPLIER = 2.0

DAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
HOURS = tuple(f"{h:02d}" for h in range(24))

_SUMMARY_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "eventvault:period-summary")


def parse_period(period: str) -> tuple[int, int]:
    """``"2025-08"`` → ``(2025, 8)``."""
    year, month = int(period[:4]), int(period[5:7])
    if len(period) != 7 or period[4] != "-" or not 1 <= month <= 12:
        raise ValueError(f"invalid period {period!r}, expected YYYY-MM")
    return year, month


def days_in_period(period: str) -> list[str]:
    """Every ``YYYY-MM-DD`` of the month, leap years included."""
    year, month = parse_period(period)
    last_day = calendar.monthrange(year, month)[1]
    return [f"{period}-{d:02d}" for d in range(1, last_day + 1)]


def period_bounds(period: str) -> tuple[datetime, datetime]:
    """First and last instant (UTC) of the month."""
    year, month = parse_period(period)
    last_day = calendar.monthrange(year, month)[1]
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    end = datetime(year, month, last_day, 23, 59, 59, 999999, tzinfo=timezone.utc)
    return start, end


def _top_n(values: list[str], n: int = TOP_PATTERNS_LIMIT) -> list[PatternCount]:
    # Counter preserves first-seen order and sorted() is stable, so equal
    # counts stay in order of first occurrence.
    counts = Counter(values)
    ranked = sorted(counts.items(), key=lambda item: -item[1])
    return [PatternCount(name=name, count=count) for name, count in ranked[:n]]


def _session_stats(events: list[SystemEvent]) -> SessionStats:
    per_session = Counter(e.session_id for e in events)
    total = len(per_session)
    if not total:
        return SessionStats(
            total_sessions=0,
            avg_events_per_session=0,
            longest_session=LongestSession(session_id="none", event_count=0),
        )

    longest_id, longest_count = "", 0
    for session_id, count in per_session.items():
        if count > longest_count:
            longest_id, longest_count = session_id, count

    return SessionStats(
        total_sessions=total,
        avg_events_per_session=round(len(events) / total, 2),
        longest_session=LongestSession(session_id=longest_id, event_count=longest_count),
    )


def _anomalies(period: str, events: list[SystemEvent]) -> Anomalies:
    daily = {day: 0 for day in days_in_period(period)}
    for event in events:
        if event.day in daily:
            daily[event.day] += 1

    zero_days = [day for day, count in daily.items() if count == 0]

    counts = list(daily.values())
    mean = sum(counts) / len(counts)
    stddev = math.sqrt(sum((c - mean) ** 2 for c in counts) / len(counts))
    high_count_days = []
    if stddev > 0:
        threshold = mean + HIGH_COUNT_STDDEV_MULTIPLIER * stddev
        high_count_days = [
            DayCount(date=day, count=count)
            for day, count in daily.items()
            if count > threshold
        ]

    return Anomalies(zero_days=zero_days, high_count_days=high_count_days)


def _summary_id(period: str, events: list[SystemEvent]) -> str:
    key = period + ":" + ",".join(sorted(e.id for e in events))
    return str(uuid.uuid5(_SUMMARY_NAMESPACE, key))


def generate_period_summary(
    period: str,
    events: Iterable[SystemEvent],
    created_at: datetime | None = None,
) -> PeriodSummary:
    """
    Summarize *events* for *period* (``"YYYY-MM"``).

    The caller is responsible for passing only events of that month; events
    outside it still count toward type, pattern, time and session totals but
    not toward the per-day anomaly buckets.
    """
    ordered = sorted(events, key=lambda e: (e.timestamp, e.id))

    # Stored forms keep milliseconds only
    created_at = created_at or datetime.now(timezone.utc)
    created_at = created_at.replace(microsecond=created_at.microsecond // 1000 * 1000)

    event_counts = dict(Counter(e.type.value for e in ordered))

    skills = [
        e.data_text("skill") for e in ordered
        if e.type is EventType.SKILL_INVOKED and e.data_text("skill")
    ]
    errors = [
        e.data_text("error") for e in ordered
        if e.type is EventType.ERROR and e.data_text("error")
    ]

    by_day_of_week = {name: 0 for name in DAY_NAMES}
    by_hour = {hour: 0 for hour in HOURS}
    for e in ordered:
        # datetime.weekday(): Monday == 0
        by_day_of_week[DAY_NAMES[(e.timestamp.weekday() + 1) % 7]] += 1
        by_hour[f"{e.timestamp.hour:02d}"] += 1

    source_files = sorted({f"events-{e.day}.jsonl" for e in ordered})

    return PeriodSummary(
        id=_summary_id(period, ordered),
        period=period,
        created_at=created_at,
        event_count=len(ordered),
        event_counts=event_counts,
        top_patterns=TopPatterns(skills=_top_n(skills), errors=_top_n(errors)),
        time_distribution=TimeDistribution(by_day_of_week=by_day_of_week, by_hour=by_hour),
        session_stats=_session_stats(ordered),
        anomalies=_anomalies(period, ordered),
        source_files=source_files,
    )
