"""The reading tracker: recorder, timers, flush coordinator and dashboard wired together."""

import asyncio
import logging

from ..analytics.aggregator import AggregationEngine
from ..analytics.dashboard import DashboardProjection
from ..clock import Clock
from ..config import StorageSettings, TrackerSettings
from ..errors import StoreUnavailable
from ..models import Dashboard, LiveStats
from ..reader.signals import ActivityKind, IdleWatchdog, IntervalTimer
from ..storage.base import AnalyticsStore
from ..storage.memory_store import MemoryAnalyticsStore
from ..storage.sqlite_store import SQLiteAnalyticsStore
from .coordinator import FlushCoordinator, FlushResult, FlushStatus
from .flush_policy import FlushTrigger
from .recorder import RecorderState, SessionRecorder

logger = logging.getLogger(__name__)


async def open_store(settings: StorageSettings) -> AnalyticsStore | None:
    """Open the configured store, or None if it cannot be opened."""
    if settings.backend == "memory":
        return MemoryAnalyticsStore()
    store = SQLiteAnalyticsStore(settings.db_path)
    try:
        await store.open()
    except StoreUnavailable as e:
        logger.warning("Analytics store unavailable, recording in memory only: %s", e)
        return None
    return store


class ReadingTracker:
    """Consumer-facing entry point for one reader.

    `store=None` runs in memory only: sessions are timed but never persisted
    and the dashboard shows defaults.
    """

    def __init__(self, settings: TrackerSettings | None = None, store: AnalyticsStore | None = None,
                 clock: Clock | None = None):
        self.settings = settings or TrackerSettings()
        self.store = store
        self.clock = clock or Clock()
        self.recorder = SessionRecorder(
            self.clock,
            page_noise_ms=self.settings.page_noise_ms,
            closing_page_noise_ms=self.settings.closing_page_noise_ms,
            min_session_ms=self.settings.min_session_ms,
        )
        engine = AggregationEngine(store, self.clock) if store is not None else None
        self.coordinator = FlushCoordinator(self.recorder, engine)
        self.dashboard = DashboardProjection(store, self.clock)
        self.watchdog = IdleWatchdog(self.settings.idle_timeout_ms, self._on_idle, self.clock)
        self.autosave = IntervalTimer(self.settings.autosave_interval_ms, self._on_autosave)
        self.last_flush: FlushResult | None = None
        self._lifecycle_lock = asyncio.Lock()
        self._timer_tasks: set[asyncio.Task] = set()

    @property
    def state(self) -> RecorderState:
        return self.recorder.state

    @property
    def persistent(self) -> bool:
        return self.store is not None

    # ── Document lifecycle ───────────────────────────────────────────────

    async def open_document(self, document_id: str, page: int = 1,
                            document_name: str | None = None) -> FlushResult | None:
        """Start tracking `document_id`.

        Re-opening the document already being tracked resumes it. Opening a
        different one finalizes the current session first; that result is
        returned.
        """
        async with self._lifecycle_lock:
            session = self.recorder.session
            if session is not None and session.document_id == document_id:
                if self.recorder.resume():
                    self._start_timers()
                self.recorder.change_page(page)
                return None

            result = None
            if session is not None:
                self._stop_timers()
                result = await self._flush(FlushTrigger.DOCUMENT_SWITCH)

            self.recorder.open(document_id, page, document_name)
            self._start_timers()
            logger.info("Tracking %s from page %d", document_id, page)
            return result

    async def close_document(self) -> FlushResult:
        async with self._lifecycle_lock:
            self._stop_timers()
            return await self._flush(FlushTrigger.DOCUMENT_CLOSE)

    async def shutdown(self) -> FlushResult:
        """Process teardown: flush the live session and anything queued, stop timers."""
        async with self._lifecycle_lock:
            self._stop_timers()
            result = await self._flush(FlushTrigger.TEARDOWN)
            if self._timer_tasks:
                await asyncio.wait(set(self._timer_tasks))
            await self.coordinator.wait_idle()
            await self.coordinator.retry_backlog()
            if self.coordinator.backlog_size:
                logger.error("%d session chunk(s) could not be saved before shutdown",
                             self.coordinator.backlog_size)
            return result

    # ── Reading signals ──────────────────────────────────────────────────

    def report_page_change(self, page: int) -> bool:
        committed = self.recorder.change_page(page)
        if self.state == RecorderState.ACTIVE:
            self.watchdog.record(ActivityKind.SCROLL)
        return committed

    def report_activity(self, kind: ActivityKind | str) -> bool:
        return self.watchdog.record(kind)

    async def set_paused(self) -> FlushResult:
        self._stop_timers()
        return await self._flush(FlushTrigger.PAUSE)

    async def set_active(self) -> bool:
        resumed = self.recorder.resume()
        if resumed:
            self._start_timers()
        return resumed

    async def toggle_pause(self) -> FlushResult | bool:
        if self.state == RecorderState.PAUSED:
            return await self.set_active()
        return await self.set_paused()

    async def set_focus(self, focused: bool) -> FlushResult | bool:
        """The host reports whether a document is focused."""
        if focused:
            return await self.set_active()
        self._stop_timers()
        return await self._flush(FlushTrigger.FOCUS_LOST)

    # ── Views ────────────────────────────────────────────────────────────

    def get_live_stats(self) -> LiveStats:
        return self.recorder.live_stats()

    async def get_dashboard(self, recent_limit: int | None = None) -> Dashboard:
        limit = recent_limit if recent_limit is not None else self.settings.recent_sessions_limit
        return await self.dashboard.get_dashboard(limit)

    # ── Timers ───────────────────────────────────────────────────────────

    def _start_timers(self) -> None:
        self.watchdog.arm()
        self.autosave.start()

    def _stop_timers(self) -> None:
        self.watchdog.disarm()
        self.autosave.stop()

    def _on_idle(self) -> None:
        self.autosave.stop()
        self._spawn(FlushTrigger.IDLE)

    def _on_autosave(self) -> None:
        if self.state != RecorderState.ACTIVE:
            return
        self._spawn(FlushTrigger.AUTOSAVE)

    def _spawn(self, trigger: FlushTrigger) -> None:
        task = asyncio.create_task(self._flush(trigger))
        self._timer_tasks.add(task)
        task.add_done_callback(self._timer_tasks.discard)

    async def _flush(self, trigger: FlushTrigger) -> FlushResult:
        result = await self.coordinator.finalize(trigger)
        self.last_flush = result
        if result.status == FlushStatus.FAILED:
            logger.warning("Reading stats not saved (%s): %s", trigger.value, result.error)
        return result
