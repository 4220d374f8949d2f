"""SQLite-backed analytics store: sessions, per-document stats, daily summaries, global record."""

import asyncio
import json
import logging
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite

from ..errors import StoreReadFailed, StoreUnavailable, StoreWriteFailed
from .base import (
    COLLECTIONS, DAILY_SUMMARIES, DOCUMENT_STATS, GLOBAL, SESSIONS,
    AnalyticsStore, Collection, CollectionSpec,
)

logger = logging.getLogger(__name__)


# collection -> (table, key column, {index name: column})
TABLES: dict[str, tuple[str, str, dict[str, str]]] = {
    SESSIONS: ("sessions", "id", {"documentId": "document_id", "startedAt": "started_at"}),
    DOCUMENT_STATS: ("document_stats", "document_id", {}),
    DAILY_SUMMARIES: ("daily_summaries", "date", {}),
    GLOBAL: ("global_analytics", "id", {}),
}


class SQLiteCollection(Collection):

    def __init__(self, spec: CollectionSpec, store: "SQLiteAnalyticsStore"):
        super().__init__(spec)
        self._store = store
        self.table, self.key_column, self.index_columns = TABLES[spec.name]

    async def get(self, key: str) -> dict[str, Any] | None:
        conn = self._store.connection
        try:
            async with self._store.guard():
                async with conn.execute(
                    f"SELECT data FROM {self.table} WHERE {self.key_column} = ?", (str(key),)
                ) as cursor:
                    row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise StoreReadFailed(f"Failed to get {self.name} record '{key}'", cause=e) from e
        return self._decode(row["data"]) if row else None

    async def put(self, record: dict[str, Any]) -> None:
        conn = self._store.connection
        key = self.key_of(record)
        columns = [self.key_column, *self.index_columns.values(), "data"]
        try:
            values = [key, *(record.get(index) for index in self.index_columns), json.dumps(record)]
        except (TypeError, ValueError) as e:
            raise StoreWriteFailed(f"Failed to encode {self.name} record '{key}'", cause=e) from e
        placeholders = ", ".join("?" for _ in columns)
        try:
            async with self._store.guard():
                await conn.execute(
                    f"INSERT OR REPLACE INTO {self.table} ({', '.join(columns)}) VALUES ({placeholders})",
                    values,
                )
        except sqlite3.Error as e:
            raise StoreWriteFailed(f"Failed to save {self.name} record '{key}'", cause=e) from e

    async def get_all(self) -> list[dict[str, Any]]:
        return await self._select(f"SELECT data FROM {self.table}", ())

    async def get_all_by_index(self, index_name: str, value: Any) -> list[dict[str, Any]]:
        self.check_index(index_name)
        column = self.index_columns[index_name]
        return await self._select(f"SELECT data FROM {self.table} WHERE {column} = ?", (value,))

    async def _select(self, query: str, params: tuple) -> list[dict[str, Any]]:
        conn = self._store.connection
        try:
            async with self._store.guard():
                async with conn.execute(query, params) as cursor:
                    rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise StoreReadFailed(f"Failed to list {self.name} records", cause=e) from e
        return [self._decode(r["data"]) for r in rows]

    def _decode(self, data: str) -> dict[str, Any]:
        try:
            return json.loads(data)
        except ValueError as e:
            raise StoreReadFailed(f"Corrupt {self.name} record", cause=e) from e


class SQLiteAnalyticsStore(AnalyticsStore):
    """Persistent analytics storage backed by SQLite (via aiosqlite)."""

    SCHEMA = """
    CREATE TABLE IF NOT EXISTS sessions (
        id          TEXT PRIMARY KEY,
        document_id TEXT NOT NULL,
        started_at  TEXT NOT NULL,
        data        TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS document_stats (
        document_id TEXT PRIMARY KEY,
        data        TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS daily_summaries (
        date        TEXT PRIMARY KEY,
        data        TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS global_analytics (
        id          TEXT PRIMARY KEY,
        data        TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_sessions_document ON sessions(document_id);
    CREATE INDEX IF NOT EXISTS idx_sessions_started ON sessions(started_at);
    """

    def __init__(self, db_path: str | Path = "data/analytics.db"):
        self.db_path = Path(db_path)
        self._conn: aiosqlite.Connection | None = None
        self._tx_lock = asyncio.Lock()
        self._tx_owner: asyncio.Task | None = None
        self._collections = {name: SQLiteCollection(spec, self) for name, spec in COLLECTIONS.items()}

    async def open(self) -> None:
        if self._conn is not None:
            return
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            # Autocommit; multi-record writes go through transaction().
            conn = await aiosqlite.connect(str(self.db_path), isolation_level=None)
        except (sqlite3.Error, OSError) as e:
            raise StoreUnavailable(f"Failed to open analytics database {self.db_path}", cause=e) from e
        try:
            conn.row_factory = sqlite3.Row
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.executescript(self.SCHEMA)
        except sqlite3.Error as e:
            await conn.close()
            raise StoreUnavailable(f"Failed to initialise analytics database {self.db_path}", cause=e) from e
        self._conn = conn
        logger.info("Analytics store opened: %s", self.db_path)

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StoreUnavailable("Analytics database is not open")
        return self._conn

    def collection(self, name: str) -> SQLiteCollection:
        try:
            return self._collections[name]
        except KeyError:
            raise ValueError(f"Unknown collection '{name}'") from None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        async with self._tx_lock:
            conn = self.connection
            try:
                await conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StoreWriteFailed("Failed to begin transaction", cause=e) from e
            self._tx_owner = asyncio.current_task()
            try:
                try:
                    yield
                except BaseException:
                    await self._rollback(conn)
                    raise
                try:
                    await conn.commit()
                except sqlite3.Error as e:
                    await self._rollback(conn)
                    raise StoreWriteFailed("Failed to commit transaction", cause=e) from e
            finally:
                self._tx_owner = None

    async def _rollback(self, conn: aiosqlite.Connection) -> None:
        try:
            await conn.rollback()
        except sqlite3.Error as e:
            raise StoreWriteFailed("Failed to roll back transaction", cause=e) from e

    @asynccontextmanager
    async def guard(self) -> AsyncIterator[None]:
        """Wait out another task's open transaction; its owner passes straight through."""
        if self._tx_owner is not None and self._tx_owner is asyncio.current_task():
            yield
            return
        async with self._tx_lock:
            yield
