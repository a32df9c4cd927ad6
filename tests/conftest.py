"""
Shared test fixtures — temp hot store/archive, event builders, API client.
"""

import calendar
import itertools

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from eventvault.config import settings
from eventvault.schemas import SystemEvent
from eventvault.services.events import append_event


# ── Temp directories ────────────────────────────────────

@pytest.fixture
def events_dir(tmp_path):
    d = tmp_path / "events"
    d.mkdir()
    return d


@pytest.fixture
def archive_dir(tmp_path):
    d = tmp_path / "archive"
    d.mkdir()
    return d


# ── Settings override ───────────────────────────────────

@pytest.fixture(autouse=True)
def test_settings(monkeypatch, tmp_path):
    """Point every settings consumer at the temp dirs (same object at all import points)."""
    monkeypatch.setattr(settings, "events_dir", str(tmp_path / "events"))
    monkeypatch.setattr(settings, "archive_dir", str(tmp_path / "archive"))
    monkeypatch.setattr(settings, "cutoff_days", 90)
    monkeypatch.setattr(settings, "max_periods_per_run", 3)
    monkeypatch.setattr(settings, "compaction_interval_hours", 0)
    monkeypatch.setattr(settings, "session_id", "")
    yield settings


# ── Event builders ──────────────────────────────────────

SEED_TYPES = [
    "session_start", "skill_invoked", "isc_verified",
    "learning_extracted", "error", "session_end",
]


@pytest.fixture
def make_event():
    """Build a SystemEvent with sensible defaults and a unique id."""
    counter = itertools.count(1)

    def _make(timestamp: str, **overrides) -> SystemEvent:
        fields = {
            "id": f"evt-{next(counter):05d}",
            "timestamp": timestamp,
            "sessionId": "sess-1",
            "type": "session_start",
            "data": {},
        }
        fields.update(overrides)
        return SystemEvent.model_validate(fields)

    return _make


@pytest.fixture
def seed_events(make_event):
    """Append ``per_day`` events for every day of each month to a hot store."""

    async def _seed(events_dir, months: list[str], per_day: int = 3) -> list[SystemEvent]:
        seeded = []
        for month in months:
            year, m = int(month[:4]), int(month[5:7])
            for day in range(1, calendar.monthrange(year, m)[1] + 1):
                for i in range(per_day):
                    event_type = SEED_TYPES[i % len(SEED_TYPES)]
                    data = {}
                    if event_type == "skill_invoked":
                        data = {"skill": f"skill-{i % 3 + 1}"}
                    elif event_type == "error":
                        data = {"error": f"err-{i % 2 + 1}"}
                    event = make_event(
                        f"{month}-{day:02d}T{10 + i % 14:02d}:00:00.000Z",
                        type=event_type,
                        sessionId=f"sess-{day}-{i}",
                        data=data,
                    )
                    result = await append_event(event, events_dir)
                    assert result.ok
                    seeded.append(event)
        return seeded

    return _seed


# ── API client ──────────────────────────────────────────

@pytest_asyncio.fixture()
async def client():
    """FastAPI test client (lifespan not started, so no background job)."""
    from eventvault.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
