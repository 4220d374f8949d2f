"""Read-only views over the analytics collections."""

import logging

from pydantic import ValidationError

from ..clock import Clock
from ..errors import StoreError
from ..models import (
    GLOBAL_ID, Dashboard, DailyReadingSummary, DocumentStats, GlobalAnalytics, ReadingSessionRecord,
)
from ..storage.base import AnalyticsStore

logger = logging.getLogger(__name__)


class DashboardProjection:
    """Builds the dashboard read model. Never writes.

    With no store (or a failing one) every query falls back to defaults.
    """

    def __init__(self, store: AnalyticsStore | None, clock: Clock | None = None):
        self.store = store
        self.clock = clock or Clock()

    async def get_global(self) -> GlobalAnalytics:
        if self.store is None:
            return GlobalAnalytics()
        try:
            record = await self.store.global_.get(GLOBAL_ID)
            return GlobalAnalytics.model_validate(record) if record else GlobalAnalytics()
        except (StoreError, ValidationError) as e:
            logger.error("Failed to load global analytics: %s", e)
            return GlobalAnalytics()

    async def get_all_document_stats(self) -> list[DocumentStats]:
        if self.store is None:
            return []
        try:
            records = await self.store.document_stats.get_all()
            stats = [DocumentStats.model_validate(r) for r in records]
        except (StoreError, ValidationError) as e:
            logger.error("Failed to load document stats: %s", e)
            return []
        return sorted(stats, key=lambda s: s.total_reading_time_ms, reverse=True)

    async def get_document_stats(self, document_id: str) -> DocumentStats | None:
        if self.store is None:
            return None
        try:
            record = await self.store.document_stats.get(document_id)
            return DocumentStats.model_validate(record) if record else None
        except (StoreError, ValidationError) as e:
            logger.error("Failed to load stats for %s: %s", document_id, e)
            return None

    async def get_recent_sessions(self, limit: int = 10) -> list[ReadingSessionRecord]:
        """The `limit` most recently started sessions, newest first."""
        if self.store is None or limit <= 0:
            return []
        try:
            records = await self.store.sessions.get_all()
            sessions = [ReadingSessionRecord.model_validate(r) for r in records]
        except (StoreError, ValidationError) as e:
            logger.error("Failed to load recent sessions: %s", e)
            return []
        sessions.sort(key=lambda s: s.started_at, reverse=True)
        return sessions[:limit]

    async def get_sessions_for_document(self, document_id: str) -> list[ReadingSessionRecord]:
        if self.store is None:
            return []
        try:
            records = await self.store.sessions.get_all_by_index("documentId", document_id)
            sessions = [ReadingSessionRecord.model_validate(r) for r in records]
        except (StoreError, ValidationError) as e:
            logger.error("Failed to load sessions for %s: %s", document_id, e)
            return []
        sessions.sort(key=lambda s: s.started_at, reverse=True)
        return sessions

    async def get_weekly_summaries(self) -> list[DailyReadingSummary]:
        """Daily summaries for today and the six days before, newest first."""
        if self.store is None:
            return []
        days = self.clock.last_days(7)
        try:
            records = await self.store.daily_summaries.get_all()
            summaries = [DailyReadingSummary.model_validate(r) for r in records]
        except (StoreError, ValidationError) as e:
            logger.error("Failed to load daily summaries: %s", e)
            return []
        wanted = [s for s in summaries if s.date in days]
        return sorted(wanted, key=lambda s: s.date, reverse=True)

    async def get_dashboard(self, recent_limit: int = 10) -> Dashboard:
        global_analytics = await self.get_global()
        document_stats = await self.get_all_document_stats()
        recent = await self.get_recent_sessions(recent_limit)

        logger.debug(
            "Dashboard: %d documents, %d recent sessions",
            len(document_stats), len(recent),
        )
        return Dashboard(
            total_lifetime_reading_ms=global_analytics.total_lifetime_reading_ms,
            total_lifetime_pages_read=global_analytics.total_lifetime_pages_read,
            total_lifetime_sessions=global_analytics.total_lifetime_sessions,
            longest_session_ms=global_analytics.longest_session_ms,
            current_streak=global_analytics.current_streak,
            longest_streak=global_analytics.longest_streak,
            weekly_data=list(global_analytics.weekly_data),
            document_stats=document_stats,
            recent_sessions=recent,
        )
