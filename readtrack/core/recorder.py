"""Reading-session state machine: active / paused / no document."""

from dataclasses import dataclass
from enum import Enum
import logging

from ..clock import Clock, to_datetime
from ..models import LiveStats, ReadingSessionRecord
from ..reader.session import LiveSession, PageLedger, PendingChunk, make_session_id

logger = logging.getLogger(__name__)


class RecorderState(str, Enum):
    IDLE_NO_DOCUMENT = "idle_no_document"
    ACTIVE = "active"
    PAUSED = "paused"


@dataclass
class FinalizeSnapshot:
    """What one finalize hands to the aggregation engine.

    `delta` covers only the chunk since the previous successful finalize of
    this session; `cumulative` is the whole session so far and is what the
    `sessions` collection stores.
    """
    delta: ReadingSessionRecord
    cumulative: ReadingSessionRecord
    document_name: str
    chunk: PageLedger
    pending: PendingChunk

    @property
    def session_id(self) -> str:
        return self.delta.id


class SessionRecorder:
    """Owns the live session and its per-page dwell ledger.

    Everything here is synchronous; time comes from the injected clock.
    """

    # Thresholds (tunable)
    PAGE_NOISE_MS = 2000          # dwell below this is dropped on page change
    CLOSING_PAGE_NOISE_MS = 1000  # same, for the in-progress page at finalize
    MIN_SESSION_MS = 5000         # shorter chunks are never persisted

    def __init__(self, clock: Clock | None = None, page_noise_ms: int = PAGE_NOISE_MS,
                 closing_page_noise_ms: int = CLOSING_PAGE_NOISE_MS,
                 min_session_ms: int = MIN_SESSION_MS):
        self.clock = clock or Clock()
        self.page_noise_ms = page_noise_ms
        self.closing_page_noise_ms = closing_page_noise_ms
        self.min_session_ms = min_session_ms
        self._session: LiveSession | None = None
        self._visit_seq = 0

    @property
    def session(self) -> LiveSession | None:
        return self._session

    @property
    def state(self) -> RecorderState:
        if self._session is None:
            return RecorderState.IDLE_NO_DOCUMENT
        if self._session.is_paused:
            return RecorderState.PAUSED
        return RecorderState.ACTIVE

    def _next_visit(self) -> int:
        self._visit_seq += 1
        return self._visit_seq

    # ── Transitions ──────────────────────────────────────────────────────

    def open(self, document_id: str, page: int = 1, document_name: str | None = None) -> LiveSession:
        """Start a fresh session. Any previous session is discarded; finalize it first."""
        if page < 1:
            raise ValueError(f"Page numbers start at 1, got {page}")
        now = self.clock.now_ms()
        self._session = LiveSession(
            session_id=make_session_id(),
            document_id=document_id,
            document_name=document_name or "Unknown",
            opened_at_ms=now,
            started_at_ms=now,
            current_page=page,
            page_started_at_ms=now,
            visit_id=self._next_visit(),
        )
        logger.debug("Session %s started for %s on page %d", self._session.session_id, document_id, page)
        return self._session

    def close(self) -> LiveSession | None:
        """Drop the live session and return to no-document."""
        session, self._session = self._session, None
        if session:
            logger.debug("Session %s closed", session.session_id)
        return session

    def change_page(self, page: int) -> bool:
        """Move the page cursor. Returns True if the previous page's dwell was committed."""
        s = self._session
        if s is None:
            return False
        if page < 1:
            raise ValueError(f"Page numbers start at 1, got {page}")
        if page == s.current_page:
            return False

        ref = s.reference_time(self.clock.now_ms())
        dwell = ref - s.page_started_at_ms
        committed = dwell > self.page_noise_ms
        if committed:
            s.ledger.add(s.current_page, dwell, s.visit_id)
        logger.debug("Page %d -> %d (%d ms%s)", s.current_page, page, dwell, "" if committed else ", dropped")

        s.current_page = page
        s.page_started_at_ms = ref
        s.visit_id = self._next_visit()
        return committed

    def pause(self) -> bool:
        s = self._session
        if s is None or s.is_paused:
            return False
        s.pause_started_at_ms = self.clock.now_ms()
        logger.debug("Session %s paused", s.session_id)
        return True

    def resume(self) -> bool:
        s = self._session
        if s is None or not s.is_paused:
            return False
        interval = self.clock.now_ms() - s.pause_started_at_ms
        s.accumulated_pause_ms += interval
        s.page_started_at_ms += interval
        s.pause_started_at_ms = None
        logger.debug("Session %s resumed after %d ms", s.session_id, interval)
        return True

    # ── Finalization ─────────────────────────────────────────────────────

    def begin_finalize(self, final: bool = False) -> FinalizeSnapshot | None:
        """Cut the unpersisted chunk off the live session.

        Returns None when there is no session or the chunk is shorter than
        `min_session_ms` (it then stays in place and keeps accruing). With
        `final` (the session is ending), a shorter remainder is still cut if
        the session as a whole already reached the minimum. After a cut the
        live session only holds time after the cut; call `commit` or
        `restore` once persistence has finished.
        """
        s = self._session
        if s is None:
            return None

        now = self.clock.now_ms()
        cut = s.reference_time(now)
        duration = s.chunk_duration(now)
        if final and s.committed_duration_ms >= self.min_session_ms:
            too_short = duration <= 0
        else:
            too_short = duration < self.min_session_ms
        if too_short:
            logger.debug("Session %s chunk too short to keep (%d ms)", s.session_id, duration)
            return None

        closing = s.current_page_duration(now)
        chunk = s.ledger.copy()
        if closing > self.closing_page_noise_ms:
            chunk.add(s.current_page, closing, s.visit_id)
        if not len(chunk):
            chunk.add(s.current_page, duration, s.visit_id)

        cumulative_ledger = s.committed.copy()
        cumulative_ledger.merge(chunk)

        snapshot = FinalizeSnapshot(
            delta=self._build_record(s, chunk, s.started_at_ms, cut, duration),
            cumulative=self._build_record(
                s, cumulative_ledger, s.opened_at_ms, cut, s.committed_duration_ms + duration,
            ),
            document_name=s.document_name,
            chunk=chunk,
            pending=PendingChunk(
                session_id=s.session_id,
                started_at_ms=s.started_at_ms,
                pause_ms=s.accumulated_pause_ms,
                ledger=s.ledger,
                page=s.current_page,
                visit_id=s.visit_id,
                closing_ms=closing,
            ),
        )

        s.ledger = PageLedger()
        s.started_at_ms = cut
        s.accumulated_pause_ms = 0
        s.page_started_at_ms += closing
        return snapshot

    def commit(self, snapshot: FinalizeSnapshot) -> None:
        """Record that `snapshot` was persisted."""
        s = self._session
        if s is None or s.session_id != snapshot.session_id:
            return
        s.committed.merge(snapshot.chunk)
        s.committed_duration_ms += snapshot.delta.total_duration_ms

    def restore(self, snapshot: FinalizeSnapshot) -> bool:
        """Put a chunk whose persistence failed back into the live session.

        Returns False when the session is gone (closed or switched).
        """
        s = self._session
        p = snapshot.pending
        if s is None or s.session_id != p.session_id:
            return False

        ledger = p.ledger.copy()
        ledger.merge(s.ledger)
        s.ledger = ledger
        s.started_at_ms = p.started_at_ms
        s.accumulated_pause_ms += p.pause_ms
        if s.visit_id == p.visit_id:
            s.page_started_at_ms -= p.closing_ms
        elif p.closing_ms > 0:
            s.ledger.add(p.page, p.closing_ms, p.visit_id)
        return True

    def _build_record(self, s: LiveSession, ledger: PageLedger, started_ms: int,
                      ended_ms: int, duration: int) -> ReadingSessionRecord:
        history = ledger.to_history()
        durations = [p.duration_ms for p in history]
        pages_read = len(history)
        return ReadingSessionRecord(
            id=s.session_id,
            document_id=s.document_id,
            started_at=to_datetime(started_ms),
            ended_at=to_datetime(ended_ms),
            total_duration_ms=duration,
            pages_read=pages_read,
            page_history=history,
            avg_time_per_page_ms=duration / pages_read if pages_read else 0.0,
            fastest_page_ms=min(durations) if durations else 0,
            slowest_page_ms=max(durations) if durations else 0,
        )

    # ── Live view ────────────────────────────────────────────────────────

    def live_stats(self) -> LiveStats:
        s = self._session
        if s is None:
            return LiveStats(state=self.state.value)

        now = self.clock.now_ms()
        recorded = s.committed.copy()
        recorded.merge(s.ledger)
        pages_read = len(recorded)
        return LiveStats(
            state=self.state.value,
            session_id=s.session_id,
            document_id=s.document_id,
            started_at=to_datetime(s.opened_at_ms),
            total_duration_ms=s.total_duration(now),
            current_page=s.current_page,
            current_page_duration_ms=s.current_page_duration(now),
            pages_read=pages_read,
            avg_time_per_page_ms=recorded.total_ms / pages_read if pages_read else 0.0,
            history=recorded.to_history(),
        )
