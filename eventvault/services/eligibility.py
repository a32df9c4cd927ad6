"""
Eligibility Scanner — which calendar months are entirely older than the cutoff.
"""

import logging
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path

from eventvault.services.events import list_event_files

logger = logging.getLogger(__name__)


def group_files_by_period(events_dir: str | Path) -> dict[str, list[str]]:
    """``{"YYYY-MM": [day filenames, sorted]}`` for the hot store."""
    periods: dict[str, list[str]] = defaultdict(list)
    for name, day in list_event_files(events_dir):
        periods[day[:7]].append(name)
    return dict(periods)


def find_eligible_periods(events_dir: str | Path, cutoff: datetime) -> list[str]:
    """
    Months whose newest day file is dated strictly before the cutoff's UTC date.

    Day files are named by the UTC date of the events they hold, so a file
    dated before the cutoff day contains only events older than the cutoff.
    A month with any file on or after that day is left alone.
    """
    if cutoff.tzinfo is None:
        cutoff = cutoff.replace(tzinfo=timezone.utc)
    cutoff_day = cutoff.astimezone(timezone.utc).strftime("%Y-%m-%d")

    latest: dict[str, str] = {}
    for _name, day in list_event_files(events_dir):
        period = day[:7]
        if day > latest.get(period, ""):
            latest[period] = day

    eligible = sorted(period for period, day in latest.items() if day < cutoff_day)
    logger.debug("Eligible periods before %s: %s", cutoff_day, eligible)
    return eligible
