"""
SQLite-backed record store.

One connection is shared by worker threads (`asyncio.to_thread`). A thread
lock guards the connection so every statement, and every transaction, runs
alone; reads therefore only ever observe committed rows. Writes additionally
go through the store's async single-writer lock.
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, TypeVar

from recordflow.clock import utcnow
from recordflow.domain.errors import ConstraintViolation, NotFound, StorageUnavailable
from recordflow.domain.models import Owner, Record
from recordflow.infrastructure.db_factory import connect_sqlite
from recordflow.storage.abstract import AbstractRecordStore
from recordflow.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")

# Stay well below SQLite's host-parameter limit.
_IN_CHUNK = 500

_SCHEMA = """
CREATE TABLE IF NOT EXISTS owners (
    id          TEXT PRIMARY KEY,
    username    TEXT NOT NULL UNIQUE,
    created_at  TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS records (
    id          TEXT PRIMARY KEY,
    owner_id    TEXT NOT NULL REFERENCES owners(id) ON DELETE CASCADE,
    value       INTEGER NOT NULL,
    created_at  TEXT NOT NULL,
    ai_text     TEXT,
    synced      INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_records_unsynced ON records (synced) WHERE synced = 0;
CREATE INDEX IF NOT EXISTS idx_records_owner_created ON records (owner_id, created_at);
"""


def _row_to_record(row: sqlite3.Row) -> Record:
    return Record.model_validate(dict(row))


def _row_to_owner(row: sqlite3.Row) -> Owner:
    return Owner.model_validate(dict(row))


class SqliteRecordStore(AbstractRecordStore):
    """
    Record store on a single SQLite database file (or ":memory:").

    Example
    -------
        async with SqliteRecordStore("recordflow.sqlite3") as store:
            await store.insert(record)
    """

    name: str = "sqlite"

    def __init__(self, path: str | Path = ":memory:") -> None:
        super().__init__()
        self.path = str(path)
        self._conn: Optional[sqlite3.Connection] = None
        self._conn_lock = threading.Lock()

    # Lifecycle

    async def open(self) -> None:
        if self._conn is not None:
            return
        try:
            conn = await asyncio.to_thread(connect_sqlite, self.path)
        except (sqlite3.Error, OSError) as exc:
            raise StorageUnavailable(f"cannot open SQLite database {self.path!r}: {exc}") from exc
        self._conn = conn
        try:
            await self._call(self._create_schema)
        except StorageUnavailable:
            self._conn = None
            conn.close()
            raise
        log.info("[STORE OPEN] sqlite", extra={"path": self.path})

    async def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None

        def _close() -> None:
            with self._conn_lock:
                conn.close()

        await asyncio.to_thread(_close)
        log.info("[STORE CLOSED] sqlite", extra={"path": self.path})

    @staticmethod
    def _create_schema(conn: sqlite3.Connection) -> None:
        conn.executescript(_SCHEMA)

    # Plumbing

    def _locked(self, fn: Callable[..., T], *args: Any) -> T:
        with self._conn_lock:
            if self._conn is None:
                raise StorageUnavailable("store is not open")
            try:
                return fn(self._conn, *args)
            except sqlite3.IntegrityError as exc:
                raise ConstraintViolation(str(exc)) from exc
            except (OverflowError, ValueError) as exc:
                # Parameters SQLite cannot bind: oversized ints, unencodable text.
                raise ConstraintViolation(f"unstorable value: {exc}") from exc
            except sqlite3.Error as exc:
                raise StorageUnavailable(str(exc)) from exc

    async def _call(self, fn: Callable[..., T], *args: Any) -> T:
        return await asyncio.to_thread(self._locked, fn, *args)

    async def _write_call(self, fn: Callable[..., T], *args: Any) -> T:
        return await self._write(lambda: self._call(fn, *args))

    # Owners

    async def create_owner(self, username: str) -> Owner:
        owner = Owner(username=username, created_at=utcnow())

        def _insert(conn: sqlite3.Connection) -> None:
            with conn:
                conn.execute(
                    "INSERT INTO owners (id, username, created_at) VALUES (?, ?, ?)",
                    (owner.id, owner.username, owner.created_at.isoformat()),
                )

        await self._write_call(_insert)
        return owner

    async def get_owner(self, username: str) -> Optional[Owner]:
        def _select(conn: sqlite3.Connection) -> Optional[sqlite3.Row]:
            return conn.execute(
                "SELECT id, username, created_at FROM owners WHERE username = ?", (username,)
            ).fetchone()

        row = await self._call(_select)
        return _row_to_owner(row) if row is not None else None

    async def delete_owner(self, owner_id: str) -> None:
        def _delete(conn: sqlite3.Connection) -> int:
            with conn:
                return conn.execute("DELETE FROM owners WHERE id = ?", (owner_id,)).rowcount

        if await self._write_call(_delete) == 0:
            raise NotFound(f"owner {owner_id} not found")

    # Records

    async def insert(self, record: Record) -> None:
        def _insert(conn: sqlite3.Connection) -> None:
            with conn:
                conn.execute(
                    "INSERT INTO records (id, owner_id, value, created_at, ai_text, synced) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        record.id,
                        record.owner_id,
                        record.value,
                        record.created_at.isoformat(),
                        record.ai_text,
                        int(record.synced),
                    ),
                )

        await self._write_call(_insert)

    async def fetch_unsynced(self) -> List[Record]:
        def _select(conn: sqlite3.Connection) -> List[sqlite3.Row]:
            return conn.execute(
                "SELECT * FROM records WHERE synced = 0 ORDER BY created_at, rowid"
            ).fetchall()

        return [_row_to_record(row) for row in await self._call(_select)]

    async def mark_synced(self, ids: Iterable[str]) -> int:
        targets = self._unique_ids(ids)
        if not targets:
            return 0

        def _update(conn: sqlite3.Connection) -> int:
            changed = 0
            with conn:
                for start in range(0, len(targets), _IN_CHUNK):
                    chunk = targets[start : start + _IN_CHUNK]
                    placeholders = ",".join("?" for _ in chunk)
                    changed += conn.execute(
                        f"UPDATE records SET synced = 1 WHERE synced = 0 AND id IN ({placeholders})",
                        chunk,
                    ).rowcount
            return changed

        return await self._write_call(_update)

    async def update_ai_text(self, record_id: str, text: str) -> None:
        def _update(conn: sqlite3.Connection) -> int:
            with conn:
                return conn.execute(
                    "UPDATE records SET ai_text = ? WHERE id = ?", (text, record_id)
                ).rowcount

        if await self._write_call(_update) == 0:
            raise NotFound(f"record {record_id} not found")

    async def get_record(self, record_id: str) -> Record:
        def _select(conn: sqlite3.Connection) -> Optional[sqlite3.Row]:
            return conn.execute("SELECT * FROM records WHERE id = ?", (record_id,)).fetchone()

        row = await self._call(_select)
        if row is None:
            raise NotFound(f"record {record_id} not found")
        return _row_to_record(row)

    async def fetch_recent(self, owner_id: str, limit: int = 20) -> List[Record]:
        def _select(conn: sqlite3.Connection) -> List[sqlite3.Row]:
            return conn.execute(
                "SELECT * FROM records WHERE owner_id = ? "
                "ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (owner_id, limit),
            ).fetchall()

        return [_row_to_record(row) for row in await self._call(_select)]

    async def count_unsynced(self) -> int:
        def _count(conn: sqlite3.Connection) -> int:
            return conn.execute("SELECT COUNT(*) FROM records WHERE synced = 0").fetchone()[0]

        return await self._call(_count)


__all__ = ["SqliteRecordStore"]
