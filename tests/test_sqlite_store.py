"""Tests for the SQLite analytics store."""

import asyncio
import sqlite3

import pytest

from readtrack.analytics.aggregator import AggregationEngine
from readtrack.errors import StoreUnavailable, StoreWriteFailed
from readtrack.storage.sqlite_store import SQLiteAnalyticsStore

from conftest import make_session


@pytest.fixture
async def db(tmp_path):
    store = SQLiteAnalyticsStore(tmp_path / "analytics.db")
    await store.open()
    yield store
    await store.close()


def session_row(session_id, document_id, started_at="2024-01-03T10:00:00+00:00"):
    return {"id": session_id, "documentId": document_id, "startedAt": started_at, "totalDurationMs": 6000}


class TestCollections:
    async def test_put_and_get(self, db):
        await db.sessions.put(session_row("s1", "doc-A"))
        assert (await db.sessions.get("s1"))["documentId"] == "doc-A"
        assert await db.sessions.get("missing") is None

    async def test_put_replaces(self, db):
        await db.document_stats.put({"documentId": "doc-A", "totalSessionCount": 1})
        await db.document_stats.put({"documentId": "doc-A", "totalSessionCount": 2})
        records = await db.document_stats.get_all()
        assert records == [{"documentId": "doc-A", "totalSessionCount": 2}]

    async def test_index_lookup(self, db):
        await db.sessions.put(session_row("s1", "doc-A"))
        await db.sessions.put(session_row("s2", "doc-B"))
        await db.sessions.put(session_row("s3", "doc-A"))
        found = await db.sessions.get_all_by_index("documentId", "doc-A")
        assert sorted(r["id"] for r in found) == ["s1", "s3"]

    async def test_unknown_index(self, db):
        with pytest.raises(ValueError):
            await db.sessions.get_all_by_index("pagesRead", 3)

    async def test_missing_key(self, db):
        with pytest.raises(ValueError):
            await db.daily_summaries.put({"totalReadingTimeMs": 100})


class TestTransactions:
    async def test_commit(self, db):
        async with db.transaction():
            await db.global_.put({"id": "global", "totalLifetimeSessions": 1})
            assert (await db.global_.get("global"))["totalLifetimeSessions"] == 1
        assert (await db.global_.get("global"))["totalLifetimeSessions"] == 1

    async def test_rollback(self, db):
        with pytest.raises(RuntimeError):
            async with db.transaction():
                await db.global_.put({"id": "global", "totalLifetimeSessions": 1})
                raise RuntimeError("boom")
        assert await db.global_.get("global") is None

    async def test_failed_rollback_is_a_store_error(self, db, monkeypatch):
        async def failing_rollback():
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(db.connection, "rollback", failing_rollback)
        with pytest.raises(StoreWriteFailed):
            async with db.transaction():
                await db.global_.put({"id": "global", "totalLifetimeSessions": 1})
                raise RuntimeError("boom")

    async def test_other_tasks_wait_for_open_transaction(self, db):
        await db.global_.put({"id": "global", "totalLifetimeSessions": 1})
        writing = asyncio.Event()
        release = asyncio.Event()

        async def abandoned_write():
            async with db.transaction():
                await db.global_.put({"id": "global", "totalLifetimeSessions": 2})
                writing.set()
                await release.wait()
                raise RuntimeError("abort")

        writer = asyncio.create_task(abandoned_write())
        await writing.wait()
        reader = asyncio.create_task(db.global_.get("global"))
        await asyncio.sleep(0.01)
        assert not reader.done()

        release.set()
        with pytest.raises(RuntimeError):
            await writer
        assert (await reader)["totalLifetimeSessions"] == 1


class TestLifecycle:
    async def test_data_survives_reopen(self, tmp_path):
        path = tmp_path / "analytics.db"
        store = SQLiteAnalyticsStore(path)
        await store.open()
        await store.daily_summaries.put({"date": "2024-01-03", "sessionCount": 2})
        await store.close()

        store = SQLiteAnalyticsStore(path)
        await store.open()
        assert (await store.daily_summaries.get("2024-01-03"))["sessionCount"] == 2
        await store.close()

    async def test_unopenable_path(self, tmp_path):
        store = SQLiteAnalyticsStore(tmp_path)
        with pytest.raises(StoreUnavailable):
            await store.open()

    async def test_use_before_open(self, tmp_path):
        store = SQLiteAnalyticsStore(tmp_path / "analytics.db")
        with pytest.raises(StoreUnavailable):
            await store.sessions.get("s1")

    async def test_engine_on_sqlite(self, db, clock):
        engine = AggregationEngine(db, clock)
        await engine.apply(make_session({1: 3000, 2: 4000}))
        await engine.apply(make_session({2: 5000}, session_id="session_2"))

        doc = await db.document_stats.get("doc-A")
        assert doc["totalSessionCount"] == 2
        assert doc["pageHeatmap"] == {"1": 3000, "2": 9000}
        sessions = await db.sessions.get_all_by_index("documentId", "doc-A")
        assert len(sessions) == 2
