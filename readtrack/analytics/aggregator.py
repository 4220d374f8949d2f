"""Folds finalized reading sessions into per-document, daily and lifetime aggregates."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TypeVar

from pydantic import ValidationError

from ..clock import Clock, weekday_index
from ..errors import StoreReadFailed
from ..models import (
    GLOBAL_ID, DailyReadingSummary, DocumentStats, GlobalAnalytics, Record, ReadingSessionRecord,
)
from ..storage.base import AnalyticsStore, Collection

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Record)

MS_PER_MINUTE = 60000


@dataclass
class AggregationResult:
    document_stats: DocumentStats
    daily_summary: DailyReadingSummary
    global_analytics: GlobalAnalytics


# ── Merge rules ──────────────────────────────────────────────────────────────

def minutes(duration_ms: int) -> int:
    """Whole minutes, halves rounded up (90 s -> 2, 150 s -> 3)."""
    return (duration_ms + MS_PER_MINUTE // 2) // MS_PER_MINUTE


def merge_document_stats(existing: DocumentStats | None, session: ReadingSessionRecord,
                         now: datetime, document_name: str | None = None) -> DocumentStats:
    """Add one session chunk to a document's running totals."""
    base = existing or DocumentStats(document_id=session.document_id)
    duration = session.total_duration_ms

    heatmap = dict(base.page_heatmap)
    for dwell in session.page_history:
        key = str(dwell.page)
        heatmap[key] = heatmap.get(key, 0) + dwell.duration_ms

    if existing is None:
        avg_session = float(duration)
        avg_page = session.avg_time_per_page_ms
    else:
        count = base.total_session_count
        avg_session = (base.avg_session_duration_ms * count + duration) / (count + 1)
        pages = base.total_pages_read + session.pages_read
        avg_page = (base.avg_time_per_page_ms * base.total_pages_read + duration) / pages if pages else 0.0

    name = base.document_name
    if document_name and document_name != "Unknown":
        name = document_name

    return DocumentStats(
        document_id=session.document_id,
        document_name=name,
        total_reading_time_ms=base.total_reading_time_ms + duration,
        total_session_count=base.total_session_count + 1,
        total_pages_read=base.total_pages_read + session.pages_read,
        unique_pages_read=len(heatmap),
        avg_session_duration_ms=avg_session,
        avg_time_per_page_ms=avg_page,
        first_read_at=base.first_read_at or now,
        last_read_at=now,
        page_heatmap=heatmap,
    )


def merge_daily_summary(existing: DailyReadingSummary | None, session: ReadingSessionRecord,
                        day: str) -> DailyReadingSummary:
    base = existing or DailyReadingSummary(date=day)
    documents = list(base.documents_read)
    if session.document_id not in documents:
        documents.append(session.document_id)
    return DailyReadingSummary(
        date=day,
        total_reading_time_ms=base.total_reading_time_ms + session.total_duration_ms,
        total_pages_read=base.total_pages_read + session.pages_read,
        session_count=base.session_count + 1,
        documents_read=documents,
    )


def next_streak(last_active_date: str, current_streak: int, today: str, yesterday: str) -> int:
    """Day streak after activity on `today`.

    Same day: unchanged. Day after the last active day: +1. Anything else
    (a gap, or no activity yet) starts a new streak at 1.
    """
    if last_active_date == today:
        return current_streak
    if last_active_date == yesterday:
        return current_streak + 1
    return 1


def merge_global(existing: GlobalAnalytics | None, session: ReadingSessionRecord, today: str,
                 yesterday: str, weekday: int, active_days: int | None = None,
                 saved_ms: int = 0) -> GlobalAnalytics:
    """Add one session chunk to the lifetime record.

    `saved_ms` is how much of the same session earlier chunks already
    added; weekly minutes are rounded over the whole session so chunks sum
    to what a single save would have given.
    """
    base = existing or GlobalAnalytics()
    duration = session.total_duration_ms

    streak = next_streak(base.last_active_date, base.current_streak, today, yesterday)

    weekly = list(base.weekly_data)
    weekly[weekday] += minutes(saved_ms + duration) - minutes(saved_ms)

    total_ms = base.total_lifetime_reading_ms + duration
    total_pages = base.total_lifetime_pages_read + session.pages_read
    if active_days:
        avg_ms_per_day = total_ms / active_days
        avg_pages_per_day = total_pages / active_days
    else:
        avg_ms_per_day = base.avg_reading_time_per_day_ms
        avg_pages_per_day = base.avg_pages_per_day

    return GlobalAnalytics(
        id=GLOBAL_ID,
        total_lifetime_reading_ms=total_ms,
        total_lifetime_pages_read=total_pages,
        total_lifetime_sessions=base.total_lifetime_sessions + 1,
        avg_reading_time_per_day_ms=avg_ms_per_day,
        avg_pages_per_day=avg_pages_per_day,
        longest_session_ms=max(base.longest_session_ms, duration),
        longest_streak=max(base.longest_streak, streak),
        current_streak=streak,
        last_active_date=today,
        weekly_data=weekly,
    )


# ── Engine ───────────────────────────────────────────────────────────────────

class AggregationEngine:
    """Applies one finalized session to all four collections in a single transaction.

    Passes are serialized, so two finalizes never read the same aggregate
    before either has written it back.
    """

    def __init__(self, store: AnalyticsStore, clock: Clock | None = None):
        self.store = store
        self.clock = clock or Clock()
        self._lock = asyncio.Lock()

    async def apply(self, delta: ReadingSessionRecord, cumulative: ReadingSessionRecord | None = None,
                    document_name: str | None = None) -> AggregationResult:
        """Persist a session chunk and fold it into the aggregates.

        `delta` is what gets added to the aggregates; `cumulative` (defaults
        to `delta`) is the row stored in `sessions` under the session id.
        Raises StoreWriteFailed / StoreUnavailable; nothing is applied then.
        """
        session_row = cumulative or delta
        now = self.clock.now()
        today = self.clock.today_string()

        async with self._lock:
            async with self.store.transaction():
                await self.store.sessions.put(session_row.to_record())

                doc_existing = await self._load(self.store.document_stats, delta.document_id, DocumentStats)
                doc_stats = merge_document_stats(doc_existing, delta, now, document_name)
                await self.store.document_stats.put(doc_stats.to_record())

                daily_existing = await self._load(self.store.daily_summaries, today, DailyReadingSummary)
                daily = merge_daily_summary(daily_existing, delta, today)
                await self.store.daily_summaries.put(daily.to_record())

                global_existing = await self._load(self.store.global_, GLOBAL_ID, GlobalAnalytics)
                global_analytics = merge_global(
                    global_existing, delta,
                    today=today,
                    yesterday=self.clock.yesterday_string(),
                    weekday=weekday_index(self.clock.today()),
                    active_days=await self._count_active_days(),
                    saved_ms=session_row.total_duration_ms - delta.total_duration_ms,
                )
                await self.store.global_.put(global_analytics.to_record())

        logger.info(
            "Aggregated session %s (%s): %d ms, %d pages; streak %d",
            delta.id, delta.document_id, delta.total_duration_ms, delta.pages_read,
            global_analytics.current_streak,
        )
        return AggregationResult(doc_stats, daily, global_analytics)

    async def _load(self, collection: Collection, key: str, model: type[R]) -> R | None:
        """Read an existing aggregate; a failed or unreadable read counts as absent."""
        try:
            record = await collection.get(key)
        except StoreReadFailed as e:
            logger.warning(
                "Could not read %s '%s' (%s); merging into defaults, totals may undercount",
                collection.name, key, e,
            )
            return None
        if record is None:
            return None
        try:
            return model.model_validate(record)
        except ValidationError as e:
            logger.warning("Discarding malformed %s '%s': %s", collection.name, key, e)
            return None

    async def _count_active_days(self) -> int | None:
        try:
            return len(await self.store.daily_summaries.get_all())
        except StoreReadFailed as e:
            logger.warning("Could not count active days (%s); keeping previous daily averages", e)
            return None
