"""
EventVault — Secondary index tables.

Everything here is derived from the canonical JSONL files and the archive's
summary artifacts; ``rebuild_index`` can recreate it from scratch.
"""

from sqlalchemy import Column, String, Integer, Text, Index

from eventvault.database import Base


class IndexedEvent(Base):
    """Denormalized metadata for one hot-store event."""
    __tablename__ = "events"

    id = Column(String, primary_key=True)

    # ISO-8601 UTC text ("2025-08-01T10:00:00.000Z"), so a "YYYY-MM" prefix selects a period
    timestamp = Column(String, nullable=False)

    session_id = Column(String, nullable=False)
    type = Column(String, nullable=False)

    __table_args__ = (
        Index("idx_events_type", "type"),
        Index("idx_events_session", "session_id"),
        Index("idx_events_timestamp", "timestamp"),
    )

    def __repr__(self):
        return f"<IndexedEvent {self.id} {self.type} @ {self.timestamp}>"


class SummaryRow(Base):
    """One compacted period; ``data`` holds the full serialized PeriodSummary."""
    __tablename__ = "summaries"

    id = Column(String, primary_key=True)
    period = Column(String(7), nullable=False, unique=True)
    created_at = Column(String, nullable=False)

    # Hoisted from ``data`` for cheap aggregate queries
    event_count = Column(Integer, nullable=False, default=0)

    data = Column(Text, nullable=False)

    def __repr__(self):
        return f"<SummaryRow {self.period} ({self.event_count} events)>"


class IndexMeta(Base):
    """Key/value markers, e.g. ``schema_version``."""
    __tablename__ = "meta"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=False)
