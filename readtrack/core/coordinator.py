"""Serializes session finalization across independent flush triggers."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from ..analytics.aggregator import AggregationEngine
from ..errors import StoreError
from .flush_policy import FlushRouter, FlushTrigger
from .recorder import FinalizeSnapshot, SessionRecorder

logger = logging.getLogger(__name__)


class FlushStatus(str, Enum):
    PERSISTED = "persisted"
    TOO_SHORT = "too_short"                  # chunk below the minimum, left in place
    NO_SESSION = "no_session"
    COALESCED = "coalesced"                  # another finalize for this session was in flight
    FAILED = "failed"                        # storage error; time kept for the next trigger
    STORE_UNAVAILABLE = "store_unavailable"  # running without a store


@dataclass
class FlushResult:
    trigger: FlushTrigger
    status: FlushStatus
    session_id: str | None = None
    duration_ms: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != FlushStatus.FAILED


class FlushCoordinator:
    """Runs at most one finalize per session id at a time.

    A non-terminal trigger (pause, idle, autosave) arriving while a finalize
    for the same session is in flight is a no-op; terminal triggers (switch,
    close, teardown) wait for it and then flush whatever remains. Storage
    errors are reported in the result and never raised.
    """

    def __init__(self, recorder: SessionRecorder, engine: AggregationEngine | None,
                 router: FlushRouter | None = None):
        self.recorder = recorder
        self.engine = engine
        self.router = router or FlushRouter()
        self._in_flight: dict[str, asyncio.Task] = {}
        self._backlog: list[FinalizeSnapshot] = []
        self._backlog_lock = asyncio.Lock()

    @property
    def backlog_size(self) -> int:
        return len(self._backlog)

    def in_flight(self, session_id: str) -> bool:
        return session_id in self._in_flight

    async def finalize(self, trigger: FlushTrigger) -> FlushResult:
        policy = self.router.route(trigger)
        session = self.recorder.session
        if session is None:
            return FlushResult(trigger, FlushStatus.NO_SESSION)
        session_id = session.session_id

        if policy.pause_first:
            self.recorder.pause()

        while session_id in self._in_flight:
            if not policy.waits_in_flight:
                logger.debug("Finalize (%s) coalesced into in-flight finalize of %s", trigger.value, session_id)
                return FlushResult(trigger, FlushStatus.COALESCED, session_id)
            await asyncio.wait({self._in_flight[session_id]})
            session = self.recorder.session
            if session is None or session.session_id != session_id:
                return FlushResult(trigger, FlushStatus.NO_SESSION, session_id)

        if self.engine is None:
            if policy.ends_session:
                self.recorder.close()
            return FlushResult(trigger, FlushStatus.STORE_UNAVAILABLE, session_id)

        snapshot = self.recorder.begin_finalize(final=policy.ends_session)
        if policy.ends_session:
            self.recorder.close()
        if snapshot is None:
            return FlushResult(trigger, FlushStatus.TOO_SHORT, session_id)

        # Registered before the first suspension point, so any trigger that
        # runs while this one is persisting sees it.
        task = asyncio.create_task(self._persist(snapshot, trigger))
        self._in_flight[session_id] = task
        task.add_done_callback(lambda t: self._release(session_id, t))
        return await asyncio.shield(task)

    def _release(self, session_id: str, task: asyncio.Task) -> None:
        if self._in_flight.get(session_id) is task:
            del self._in_flight[session_id]

    async def _persist(self, snapshot: FinalizeSnapshot, trigger: FlushTrigger) -> FlushResult:
        await self.retry_backlog()
        try:
            await self.engine.apply(snapshot.delta, snapshot.cumulative, snapshot.document_name)
        except StoreError as e:
            if self.recorder.restore(snapshot):
                logger.error("Failed to save session %s (%s), keeping it for the next save: %s",
                             snapshot.session_id, trigger.value, e)
            else:
                self._backlog.append(snapshot)
                logger.error("Failed to save closed session %s (%s), queued for retry: %s",
                             snapshot.session_id, trigger.value, e)
            return FlushResult(trigger, FlushStatus.FAILED, snapshot.session_id,
                               snapshot.delta.total_duration_ms, error=str(e))

        self.recorder.commit(snapshot)
        logger.info("Session %s saved (%s, %d ms)", snapshot.session_id, trigger.value,
                    snapshot.delta.total_duration_ms)
        return FlushResult(trigger, FlushStatus.PERSISTED, snapshot.session_id,
                           snapshot.delta.total_duration_ms)

    async def retry_backlog(self) -> int:
        """Re-apply chunks of closed sessions whose save failed. Returns how many succeeded."""
        if self.engine is None:
            return 0
        saved = 0
        async with self._backlog_lock:
            while self._backlog:
                snapshot = self._backlog[0]
                try:
                    await self.engine.apply(snapshot.delta, snapshot.cumulative, snapshot.document_name)
                except StoreError as e:
                    logger.warning("Retry of session %s failed, %d still queued: %s",
                                   snapshot.session_id, len(self._backlog), e)
                    break
                self._backlog.pop(0)
                saved += 1
                logger.info("Queued session %s saved on retry", snapshot.session_id)
        return saved

    async def wait_idle(self) -> None:
        """Wait for every in-flight finalize to finish."""
        if self._in_flight:
            await asyncio.wait(set(self._in_flight.values()))
