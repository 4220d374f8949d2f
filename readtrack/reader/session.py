import uuid
from dataclasses import dataclass, field

from ..models import PageDwell


def make_session_id() -> str:
    return f"session_{uuid.uuid4().hex[:12]}"


@dataclass
class _LedgerEntry:
    duration_ms: int = 0
    visits: set[int] = field(default_factory=set)


class PageLedger:
    """Per-page dwell time for one session (or one chunk of a session).

    Dwell fragments are merged per page. A page's visit count is the number of
    distinct visit ids that contributed to it, so a visit that is committed in
    more than one fragment still counts once.
    """

    def __init__(self):
        self._entries: dict[int, _LedgerEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, page: int) -> bool:
        return page in self._entries

    def add(self, page: int, duration_ms: int, visit_id: int) -> None:
        entry = self._entries.setdefault(page, _LedgerEntry())
        entry.duration_ms += duration_ms
        entry.visits.add(visit_id)

    def merge(self, other: "PageLedger") -> None:
        for page, entry in other._entries.items():
            mine = self._entries.setdefault(page, _LedgerEntry())
            mine.duration_ms += entry.duration_ms
            mine.visits |= entry.visits

    def copy(self) -> "PageLedger":
        clone = PageLedger()
        clone.merge(self)
        return clone

    @property
    def pages(self) -> list[int]:
        return list(self._entries)

    @property
    def total_ms(self) -> int:
        return sum(e.duration_ms for e in self._entries.values())

    def to_history(self) -> list[PageDwell]:
        return [
            PageDwell(page=page, duration_ms=entry.duration_ms, visit_count=max(1, len(entry.visits)))
            for page, entry in self._entries.items()
        ]


@dataclass
class PendingChunk:
    """The part of a live session detached for an in-flight finalize.

    Kept until persistence succeeds so it can be put back on failure.
    """
    session_id: str
    started_at_ms: int
    pause_ms: int
    ledger: PageLedger
    page: int
    visit_id: int
    closing_ms: int


@dataclass
class LiveSession:
    """Timing state of the session currently being recorded.

    `started_at_ms`, `accumulated_pause_ms` and `ledger` cover only the chunk
    that has not been persisted yet; `committed` and `committed_duration_ms`
    hold what earlier finalizes of the same session id already stored.
    """
    session_id: str
    document_id: str
    document_name: str
    opened_at_ms: int
    started_at_ms: int
    current_page: int
    page_started_at_ms: int
    visit_id: int = 0
    accumulated_pause_ms: int = 0
    pause_started_at_ms: int | None = None
    ledger: PageLedger = field(default_factory=PageLedger)
    committed: PageLedger = field(default_factory=PageLedger)
    committed_duration_ms: int = 0

    @property
    def is_paused(self) -> bool:
        return self.pause_started_at_ms is not None

    def reference_time(self, now_ms: int) -> int:
        """The instant time is measured to: frozen at the pause start while paused."""
        return self.pause_started_at_ms if self.pause_started_at_ms is not None else now_ms

    def chunk_duration(self, now_ms: int) -> int:
        return max(0, self.reference_time(now_ms) - self.started_at_ms - self.accumulated_pause_ms)

    def current_page_duration(self, now_ms: int) -> int:
        return max(0, self.reference_time(now_ms) - self.page_started_at_ms)

    def total_duration(self, now_ms: int) -> int:
        return self.committed_duration_ms + self.chunk_duration(now_ms)
