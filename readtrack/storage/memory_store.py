"""Dict-backed analytics store (not persistent)."""

import asyncio
import copy
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from .base import COLLECTIONS, AnalyticsStore, Collection, CollectionSpec

logger = logging.getLogger(__name__)


class MemoryCollection(Collection):

    def __init__(self, spec: CollectionSpec, store: "MemoryAnalyticsStore"):
        super().__init__(spec)
        self._store = store
        self._records: dict[str, dict[str, Any]] = {}

    def _visible(self) -> dict[str, dict[str, Any]]:
        staged = self._store.staged_for(self.name)
        if not staged:
            return self._records
        return {**self._records, **staged}

    async def get(self, key: str) -> dict[str, Any] | None:
        record = self._visible().get(str(key))
        return copy.deepcopy(record) if record is not None else None

    async def put(self, record: dict[str, Any]) -> None:
        key = self.key_of(record)
        staged = self._store.staged_for(self.name, create=True)
        target = staged if staged is not None else self._records
        target[key] = copy.deepcopy(record)

    async def get_all(self) -> list[dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._visible().values()]

    async def get_all_by_index(self, index_name: str, value: Any) -> list[dict[str, Any]]:
        self.check_index(index_name)
        return [copy.deepcopy(r) for r in self._visible().values() if r.get(index_name) == value]

    def apply(self, staged: dict[str, dict[str, Any]]) -> None:
        self._records.update(staged)


class MemoryAnalyticsStore(AnalyticsStore):
    """In-memory store with staged transactional writes."""

    def __init__(self):
        self._collections = {name: MemoryCollection(spec, self) for name, spec in COLLECTIONS.items()}
        self._tx_lock = asyncio.Lock()
        self._staged: dict[str, dict[str, dict[str, Any]]] | None = None
        self._tx_owner: asyncio.Task | None = None

    def collection(self, name: str) -> MemoryCollection:
        try:
            return self._collections[name]
        except KeyError:
            raise ValueError(f"Unknown collection '{name}'") from None

    def staged_for(self, name: str, create: bool = False) -> dict[str, dict[str, Any]] | None:
        """Writes staged by the open transaction; other tasks only see committed records."""
        if self._staged is None or self._tx_owner is not asyncio.current_task():
            return None
        if create:
            return self._staged.setdefault(name, {})
        return self._staged.get(name)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        async with self._tx_lock:
            self._staged = {}
            self._tx_owner = asyncio.current_task()
            try:
                yield
            except BaseException:
                logger.debug("Memory store transaction rolled back")
                raise
            else:
                for name, records in self._staged.items():
                    self._collections[name].apply(records)
            finally:
                self._staged = None
                self._tx_owner = None
