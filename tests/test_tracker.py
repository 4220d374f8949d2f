"""Tests for the reading tracker: lifecycle, signals and timers."""

import asyncio

import pytest

from readtrack.config import StorageSettings, TrackerSettings
from readtrack.core.coordinator import FlushStatus
from readtrack.core.flush_policy import FlushTrigger
from readtrack.core.recorder import RecorderState
from readtrack.core.tracker import ReadingTracker, open_store
from readtrack.reader.signals import ActivityKind
from readtrack.storage.memory_store import MemoryAnalyticsStore


@pytest.fixture
async def tracker(store, clock):
    tracker = ReadingTracker(TrackerSettings(), store, clock)
    yield tracker
    await tracker.shutdown()


async def sessions_of(store, document_id="doc-A"):
    record = await store.document_stats.get(document_id)
    return record["totalSessionCount"] if record else 0


class TestLifecycle:
    async def test_open_starts_timers(self, tracker):
        await tracker.open_document("doc-A")
        assert tracker.state == RecorderState.ACTIVE
        assert tracker.watchdog.armed
        assert tracker.autosave.running

    async def test_switching_documents_finalizes_previous(self, tracker, store, clock):
        await tracker.open_document("doc-A", document_name="First")
        clock.advance(8000)
        result = await tracker.open_document("doc-B")

        assert result.trigger == FlushTrigger.DOCUMENT_SWITCH
        assert result.status == FlushStatus.PERSISTED
        assert tracker.recorder.session.document_id == "doc-B"
        stats = await store.document_stats.get("doc-A")
        assert stats["documentName"] == "First"
        assert stats["totalReadingTimeMs"] == 8000

    async def test_reopening_same_document_resumes(self, tracker, clock):
        await tracker.open_document("doc-A")
        clock.advance(2000)
        await tracker.set_paused()
        assert tracker.state == RecorderState.PAUSED

        session_id = tracker.recorder.session.session_id
        assert await tracker.open_document("doc-A", 5) is None
        assert tracker.state == RecorderState.ACTIVE
        assert tracker.recorder.session.session_id == session_id
        assert tracker.recorder.session.current_page == 5

    async def test_close(self, tracker, store, clock):
        await tracker.open_document("doc-A")
        clock.advance(6000)
        result = await tracker.close_document()
        assert result.status == FlushStatus.PERSISTED
        assert tracker.state == RecorderState.IDLE_NO_DOCUMENT
        assert not tracker.watchdog.armed
        assert not tracker.autosave.running

    async def test_shutdown_flushes(self, store, clock):
        tracker = ReadingTracker(TrackerSettings(), store, clock)
        await tracker.open_document("doc-A")
        clock.advance(7000)
        result = await tracker.shutdown()
        assert result.trigger == FlushTrigger.TEARDOWN
        assert result.status == FlushStatus.PERSISTED
        assert await sessions_of(store) == 1


class TestSignals:
    async def test_pause_and_resume(self, tracker, store, clock):
        await tracker.open_document("doc-A")
        clock.advance(6000)
        result = await tracker.toggle_pause()
        assert result.status == FlushStatus.PERSISTED
        assert tracker.state == RecorderState.PAUSED
        assert not tracker.watchdog.armed

        assert await tracker.toggle_pause() is True
        assert tracker.state == RecorderState.ACTIVE
        assert tracker.watchdog.armed

    async def test_focus_lost_pauses(self, tracker, clock):
        await tracker.open_document("doc-A")
        clock.advance(6000)
        result = await tracker.set_focus(False)
        assert result.trigger == FlushTrigger.FOCUS_LOST
        assert tracker.state == RecorderState.PAUSED
        assert await tracker.set_focus(True) is True
        assert tracker.state == RecorderState.ACTIVE

    async def test_activity_only_counts_while_active(self, tracker):
        assert tracker.report_activity(ActivityKind.KEY) is False
        await tracker.open_document("doc-A")
        assert tracker.report_activity("pointer") is True
        with pytest.raises(ValueError):
            tracker.report_activity("blink")

    async def test_page_change(self, tracker, clock):
        await tracker.open_document("doc-A")
        clock.advance(3000)
        assert tracker.report_page_change(2) is True
        assert tracker.watchdog.last_activity_ms == clock.now_ms()
        assert tracker.get_live_stats().current_page == 2


class TestTimers:
    async def test_idle_timeout_pauses_and_saves(self, store, clock):
        tracker = ReadingTracker(TrackerSettings(idle_timeout_ms=50), store, clock)
        await tracker.open_document("doc-A")
        clock.advance(6000)
        await asyncio.sleep(0.2)

        assert tracker.state == RecorderState.PAUSED
        assert tracker.last_flush.trigger == FlushTrigger.IDLE
        assert tracker.last_flush.status == FlushStatus.PERSISTED
        assert not tracker.autosave.running
        await tracker.shutdown()

    async def test_autosave_keeps_reading(self, store, clock):
        tracker = ReadingTracker(TrackerSettings(autosave_interval_ms=50), store, clock)
        await tracker.open_document("doc-A")
        clock.advance(6000)
        await asyncio.sleep(0.12)

        assert tracker.state == RecorderState.ACTIVE
        assert await sessions_of(store) == 1
        await tracker.shutdown()


class TestWithoutStore:
    async def test_runs_in_memory(self, clock):
        tracker = ReadingTracker(TrackerSettings(), None, clock)
        assert not tracker.persistent
        await tracker.open_document("doc-A")
        clock.advance(6000)
        assert tracker.get_live_stats().total_duration_ms == 6000

        result = await tracker.close_document()
        assert result.status == FlushStatus.STORE_UNAVAILABLE
        dashboard = await tracker.get_dashboard()
        assert dashboard.total_lifetime_sessions == 0
        await tracker.shutdown()

    async def test_open_store(self, tmp_path):
        assert isinstance(await open_store(StorageSettings(backend="memory")), MemoryAnalyticsStore)
        assert await open_store(StorageSettings(db_path=str(tmp_path))) is None
