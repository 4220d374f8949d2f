"""Tests for the dashboard read model."""

from datetime import datetime, timedelta

from readtrack.analytics.dashboard import DashboardProjection
from readtrack.errors import StoreReadFailed

from conftest import make_session


def started(record, minutes):
    record.started_at = datetime(2024, 1, 3, 10, 0).astimezone() + timedelta(minutes=minutes)
    return record


class TestWithoutStore:
    async def test_defaults(self, clock):
        projection = DashboardProjection(None, clock)
        dashboard = await projection.get_dashboard()
        assert dashboard.total_lifetime_reading_ms == 0
        assert dashboard.weekly_data == [0] * 7
        assert dashboard.document_stats == []
        assert dashboard.recent_sessions == []
        assert await projection.get_document_stats("doc-A") is None
        assert await projection.get_weekly_summaries() == []


class TestQueries:
    async def test_dashboard_after_sessions(self, engine, store, clock):
        await engine.apply(started(make_session({1: 3000}, "doc-A", "s1"), 0))
        await engine.apply(started(make_session({1: 12000}, "doc-B", "s2"), 10))
        await engine.apply(started(make_session({2: 6000}, "doc-A", "s3"), 20))

        dashboard = await DashboardProjection(store, clock).get_dashboard(recent_limit=2)
        assert dashboard.total_lifetime_reading_ms == 21000
        assert dashboard.total_lifetime_sessions == 3
        assert dashboard.current_streak == 1
        assert dashboard.longest_session_ms == 12000
        assert [s.document_id for s in dashboard.document_stats] == ["doc-B", "doc-A"]
        assert [s.id for s in dashboard.recent_sessions] == ["s3", "s2"]

    async def test_zero_recent(self, engine, store, clock):
        await engine.apply(make_session({1: 6000}))
        assert await DashboardProjection(store, clock).get_recent_sessions(0) == []

    async def test_sessions_for_document(self, engine, store, clock):
        await engine.apply(started(make_session({1: 6000}, "doc-A", "s1"), 0))
        await engine.apply(started(make_session({1: 6000}, "doc-B", "s2"), 5))
        await engine.apply(started(make_session({1: 6000}, "doc-A", "s3"), 10))

        sessions = await DashboardProjection(store, clock).get_sessions_for_document("doc-A")
        assert [s.id for s in sessions] == ["s3", "s1"]

    async def test_weekly_summaries(self, store, clock):
        for day in ("2024-01-03", "2024-01-01", "2023-12-20"):
            await store.daily_summaries.put({"date": day, "totalReadingTimeMs": 60000})

        summaries = await DashboardProjection(store, clock).get_weekly_summaries()
        assert [s.date for s in summaries] == ["2024-01-03", "2024-01-01"]

    async def test_read_failure_shows_defaults(self, engine, store, clock, monkeypatch):
        await engine.apply(make_session({1: 6000}))

        async def failing_get(key):
            raise StoreReadFailed("read error")

        monkeypatch.setattr(store.global_, "get", failing_get)
        dashboard = await DashboardProjection(store, clock).get_dashboard()
        assert dashboard.total_lifetime_sessions == 0
        assert len(dashboard.document_stats) == 1
