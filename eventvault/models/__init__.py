from eventvault.models.event_index import IndexedEvent, SummaryRow, IndexMeta  # noqa: F401
