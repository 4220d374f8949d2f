from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any

SESSIONS = "sessions"
DOCUMENT_STATS = "document_stats"
DAILY_SUMMARIES = "daily_summaries"
GLOBAL = "global"


@dataclass(frozen=True)
class CollectionSpec:
    name: str
    key_path: str
    indexes: tuple[str, ...] = ()


COLLECTIONS: dict[str, CollectionSpec] = {
    SESSIONS: CollectionSpec(SESSIONS, "id", ("documentId", "startedAt")),
    DOCUMENT_STATS: CollectionSpec(DOCUMENT_STATS, "documentId"),
    DAILY_SUMMARIES: CollectionSpec(DAILY_SUMMARIES, "date"),
    GLOBAL: CollectionSpec(GLOBAL, "id"),
}


class Collection(ABC):
    """One named collection of JSON records, keyed by `spec.key_path`."""

    def __init__(self, spec: CollectionSpec):
        self.spec = spec

    @property
    def name(self) -> str:
        return self.spec.name

    def key_of(self, record: dict[str, Any]) -> str:
        key = record.get(self.spec.key_path)
        if key is None or key == "":
            raise ValueError(f"{self.name} record is missing key field '{self.spec.key_path}'")
        return str(key)

    def check_index(self, index_name: str) -> None:
        if index_name not in self.spec.indexes:
            raise ValueError(f"{self.name} has no index '{index_name}'")

    @abstractmethod
    async def get(self, key: str) -> dict[str, Any] | None:
        """Return the record stored under `key`, or None."""
        ...

    @abstractmethod
    async def put(self, record: dict[str, Any]) -> None:
        """Insert or replace a record (keyed by its key field)."""
        ...

    @abstractmethod
    async def get_all(self) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    async def get_all_by_index(self, index_name: str, value: Any) -> list[dict[str, Any]]:
        """Return every record whose indexed field equals `value`."""
        ...


class AnalyticsStore(ABC):
    """Asynchronous transactional key-value store with four collections.

    Operations raise `StoreUnavailable`, `StoreReadFailed` or
    `StoreWriteFailed`; driver exceptions never escape.
    """

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        pass

    @abstractmethod
    def collection(self, name: str) -> Collection:
        ...

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Group writes so they apply together or not at all.

        Transactions are serialized; reads inside one see its own writes.
        """
        ...

    @property
    def sessions(self) -> Collection:
        return self.collection(SESSIONS)

    @property
    def document_stats(self) -> Collection:
        return self.collection(DOCUMENT_STATS)

    @property
    def daily_summaries(self) -> Collection:
        return self.collection(DAILY_SUMMARIES)

    @property
    def global_(self) -> Collection:
        return self.collection(GLOBAL)
