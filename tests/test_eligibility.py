"""
Tests for the eligibility scanner — whole months older than the cutoff.
"""

from datetime import datetime, timezone

from eventvault.services.eligibility import find_eligible_periods, group_files_by_period


def _touch(events_dir, *days):
    for day in days:
        (events_dir / f"events-{day}.jsonl").write_text("")


class TestFindEligiblePeriods:
    def test_months_fully_past_cutoff(self, events_dir):
        _touch(events_dir, "2025-07-01", "2025-07-31", "2025-08-15")
        cutoff = datetime(2025, 9, 1, tzinfo=timezone.utc)
        assert find_eligible_periods(events_dir, cutoff) == ["2025-07", "2025-08"]

    def test_excludes_month_with_recent_day(self, events_dir):
        _touch(events_dir, "2025-08-01", "2025-08-20")
        cutoff = datetime(2025, 8, 15, tzinfo=timezone.utc)
        assert find_eligible_periods(events_dir, cutoff) == []

    def test_cutoff_day_itself_is_not_eligible(self, events_dir):
        _touch(events_dir, "2025-08-01", "2025-08-31")
        assert find_eligible_periods(events_dir, datetime(2025, 8, 31, 23, tzinfo=timezone.utc)) == []
        assert find_eligible_periods(events_dir, datetime(2025, 9, 1, tzinfo=timezone.utc)) == ["2025-08"]

    def test_sorted_ascending(self, events_dir):
        _touch(events_dir, "2025-03-02", "2024-12-31", "2025-01-10")
        cutoff = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert find_eligible_periods(events_dir, cutoff) == ["2024-12", "2025-01", "2025-03"]

    def test_all_recent(self, events_dir):
        now = datetime.now(timezone.utc)
        _touch(events_dir, now.strftime("%Y-%m-%d"))
        assert find_eligible_periods(events_dir, now) == []

    def test_empty_directory(self, events_dir):
        assert find_eligible_periods(events_dir, datetime.now(timezone.utc)) == []

    def test_missing_directory(self, tmp_path):
        assert find_eligible_periods(tmp_path / "nope", datetime.now(timezone.utc)) == []

    def test_ignores_unrelated_files(self, events_dir):
        _touch(events_dir, "2025-01-05")
        (events_dir / "index.db").write_bytes(b"")
        (events_dir / "events-2025-02.jsonl").write_text("")
        cutoff = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert find_eligible_periods(events_dir, cutoff) == ["2025-01"]

    def test_naive_cutoff_treated_as_utc(self, events_dir):
        _touch(events_dir, "2025-01-05")
        assert find_eligible_periods(events_dir, datetime(2025, 2, 1)) == ["2025-01"]


class TestGroupFilesByPeriod:
    def test_groups_sorted_filenames(self, events_dir):
        _touch(events_dir, "2025-08-02", "2025-08-01", "2025-09-01")
        assert group_files_by_period(events_dir) == {
            "2025-08": ["events-2025-08-01.jsonl", "events-2025-08-02.jsonl"],
            "2025-09": ["events-2025-09-01.jsonl"],
        }
