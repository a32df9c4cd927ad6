"""
EventVault — Configuration via environment variables.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """All settings read from env / .env file."""

    # Hot store + archive
    events_dir: str = Field(
        default="~/.eventvault/events",
        description="Directory of day-partitioned events-YYYY-MM-DD.jsonl files",
    )
    archive_dir: str = Field(
        default="~/.eventvault/archive",
        description="Root of the per-year cold archive",
    )
    index_filename: str = Field(
        default="index.db",
        description="SQLite secondary index, stored beside the hot store",
    )

    # Compaction
    cutoff_days: int = Field(default=90, ge=0, description="Events younger than this stay hot")
    max_periods_per_run: int = Field(default=3, ge=1, description="Months compacted per run")
    compaction_interval_hours: float = Field(
        default=24, ge=0, description="Background compaction period (0 disables the job)"
    )

    # Event logging
    session_id: str = Field(default="", description="Session id stamped on log_event() records")

    log_level: str = Field(default="INFO")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
