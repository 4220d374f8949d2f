"""Shared fixtures: a manual clock and in-memory stores."""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime

import pytest

from readtrack.analytics.aggregator import AggregationEngine
from readtrack.clock import Clock
from readtrack.core.coordinator import FlushCoordinator
from readtrack.core.recorder import SessionRecorder
from readtrack.errors import StoreWriteFailed
from readtrack.models import PageDwell, ReadingSessionRecord
from readtrack.storage.memory_store import MemoryAnalyticsStore

DAY_MS = 24 * 60 * 60 * 1000


class FakeClock(Clock):
    """Clock that only moves when told to. Starts on Wednesday 2024-01-03, 10:00 local."""

    def __init__(self, start: datetime = datetime(2024, 1, 3, 10, 0)):
        self.ms = int(start.timestamp() * 1000)

    def now_ms(self) -> int:
        return self.ms

    def advance(self, ms: int) -> None:
        self.ms += ms


class FlakyStore(MemoryAnalyticsStore):
    """Memory store whose next `failures` transactions fail at commit."""

    def __init__(self, failures: int = 0):
        super().__init__()
        self.failures = failures

    @asynccontextmanager
    async def transaction(self):
        async with super().transaction():
            yield
            if self.failures:
                self.failures -= 1
                raise StoreWriteFailed("disk full")


class GatedStore(MemoryAnalyticsStore):
    """Memory store whose transactions block until `gate` is set."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()

    @asynccontextmanager
    async def transaction(self):
        await self.gate.wait()
        async with super().transaction():
            yield


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryAnalyticsStore()


@pytest.fixture
def recorder(clock):
    return SessionRecorder(clock)


@pytest.fixture
def engine(store, clock):
    return AggregationEngine(store, clock)


@pytest.fixture
def coordinator(recorder, engine):
    return FlushCoordinator(recorder, engine)


def make_session(pages: dict[int, int], document_id="doc-A", session_id="session_1") -> ReadingSessionRecord:
    """A finalized session with `pages` mapping page number to dwell ms."""
    total = sum(pages.values())
    return ReadingSessionRecord(
        id=session_id,
        document_id=document_id,
        started_at=datetime(2024, 1, 3, 10, 0).astimezone(),
        total_duration_ms=total,
        pages_read=len(pages),
        page_history=[PageDwell(page=p, duration_ms=ms) for p, ms in pages.items()],
        avg_time_per_page_ms=total / len(pages),
        fastest_page_ms=min(pages.values()),
        slowest_page_ms=max(pages.values()),
    )
