"""Persisted record shapes and read models.

Field names are snake_case in Python and camelCase on disk / on the wire
(`documentId`, `totalDurationMs`, ...). Use `to_record()` to produce the
stored form and `Model.model_validate(record)` to load it back.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

GLOBAL_ID = "global"
WEEK_LENGTH = 7


class Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ── Sessions ─────────────────────────────────────────────────────────────────

class PageDwell(Record):
    """Accumulated time on one page within one session."""
    page: int = Field(ge=1)
    duration_ms: int = Field(ge=0)
    visit_count: int = Field(default=1, ge=1)


class ReadingSessionRecord(Record):
    id: str
    document_id: str
    started_at: datetime
    ended_at: datetime | None = None
    total_duration_ms: int = 0
    pages_read: int = 0
    page_history: list[PageDwell] = Field(default_factory=list)
    avg_time_per_page_ms: float = 0.0
    fastest_page_ms: int = 0
    slowest_page_ms: int = 0


# ── Aggregates ───────────────────────────────────────────────────────────────

class DocumentStats(Record):
    document_id: str
    document_name: str = "Unknown"
    total_reading_time_ms: int = 0
    total_session_count: int = 0
    total_pages_read: int = 0
    unique_pages_read: int = 0
    avg_session_duration_ms: float = 0.0
    avg_time_per_page_ms: float = 0.0
    first_read_at: datetime | None = None
    last_read_at: datetime | None = None
    page_heatmap: dict[str, int] = Field(default_factory=dict)  # page number -> total ms


class DailyReadingSummary(Record):
    date: str  # YYYY-MM-DD, local time
    total_reading_time_ms: int = 0
    total_pages_read: int = 0
    session_count: int = 0
    documents_read: list[str] = Field(default_factory=list)


class GlobalAnalytics(Record):
    id: Literal["global"] = GLOBAL_ID
    total_lifetime_reading_ms: int = 0
    total_lifetime_pages_read: int = 0
    total_lifetime_sessions: int = 0
    avg_reading_time_per_day_ms: float = 0.0
    avg_pages_per_day: float = 0.0
    longest_session_ms: int = 0
    longest_streak: int = 0
    current_streak: int = 0
    last_active_date: str = ""  # YYYY-MM-DD, empty until the first session
    weekly_data: list[int] = Field(default_factory=lambda: [0] * WEEK_LENGTH)  # minutes, Monday=0

    @field_validator("weekly_data")
    @classmethod
    def _seven_days(cls, value: list[int]) -> list[int]:
        if len(value) != WEEK_LENGTH:
            raise ValueError(f"weeklyData must have {WEEK_LENGTH} entries, got {len(value)}")
        return value


# ── Read models ──────────────────────────────────────────────────────────────

class LiveStats(Record):
    """Snapshot of the live session for display."""
    state: str
    session_id: str | None = None
    document_id: str | None = None
    started_at: datetime | None = None
    total_duration_ms: int = 0
    current_page: int | None = None
    current_page_duration_ms: int = 0
    pages_read: int = 0
    avg_time_per_page_ms: float = 0.0
    history: list[PageDwell] = Field(default_factory=list)


class Dashboard(Record):
    total_lifetime_reading_ms: int = 0
    total_lifetime_pages_read: int = 0
    total_lifetime_sessions: int = 0
    longest_session_ms: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    weekly_data: list[int] = Field(default_factory=lambda: [0] * WEEK_LENGTH)
    document_stats: list[DocumentStats] = Field(default_factory=list)
    recent_sessions: list[ReadingSessionRecord] = Field(default_factory=list)
