"""
PostgreSQL-backed record store.

Uses a psycopg 3 AsyncConnectionPool. Reads run concurrently on pooled
connections, each statement seeing a committed MVCC snapshot; writes are
serialized through the store's single-writer lock and commit when the pooled
connection is returned.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool, PoolTimeout

from recordflow.clock import utcnow
from recordflow.domain.errors import (
    ConstraintViolation,
    NotFound,
    StorageError,
    StorageUnavailable,
)
from recordflow.domain.models import Owner, Record
from recordflow.infrastructure.db_factory import open_async_pool
from recordflow.storage.abstract import AbstractRecordStore
from recordflow.utils.logging import get_logger

log = get_logger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS owners (
        id          TEXT PRIMARY KEY,
        username    TEXT NOT NULL UNIQUE,
        created_at  TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS records (
        id          TEXT PRIMARY KEY,
        owner_id    TEXT NOT NULL REFERENCES owners(id) ON DELETE CASCADE,
        value       INTEGER NOT NULL,
        created_at  TIMESTAMPTZ NOT NULL,
        ai_text     TEXT,
        synced      BOOLEAN NOT NULL DEFAULT FALSE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_records_unsynced ON records (synced) WHERE NOT synced",
    "CREATE INDEX IF NOT EXISTS idx_records_owner_created ON records (owner_id, created_at)",
)

_RECORD_COLUMNS = "id, owner_id, value, created_at, ai_text, synced"


@contextmanager
def _translate_errors() -> Iterator[None]:
    """Map psycopg exceptions onto the storage error taxonomy."""
    try:
        yield
    except (psycopg.IntegrityError, psycopg.DataError) as exc:
        raise ConstraintViolation(str(exc)) from exc
    except (psycopg.Error, PoolTimeout) as exc:
        raise StorageUnavailable(str(exc)) from exc
    except (OverflowError, ValueError) as exc:
        raise ConstraintViolation(f"unstorable value: {exc}") from exc


class PostgresRecordStore(AbstractRecordStore):
    """
    Record store on PostgreSQL.

    Parameters
    ----------
    dsn : str
        Connection string, see `build_dsn`.
    pool_min_size, pool_max_size : int
        Bounds of the async connection pool.
    connect_attempts : int
        Attempts made by `open()` before raising StorageUnavailable.
    """

    name: str = "postgres"

    def __init__(
        self,
        dsn: str,
        pool_min_size: int = 1,
        pool_max_size: int = 5,
        connect_attempts: int = 3,
    ) -> None:
        super().__init__()
        self.dsn = dsn
        self.pool_min_size = pool_min_size
        self.pool_max_size = pool_max_size
        self.connect_attempts = connect_attempts
        self._pool: Optional[AsyncConnectionPool] = None

    async def open(self) -> None:
        if self._pool is not None:
            return
        pool = await open_async_pool(
            self.dsn,
            min_size=self.pool_min_size,
            max_size=self.pool_max_size,
            attempts=self.connect_attempts,
        )
        try:
            with _translate_errors():
                async with pool.connection() as conn:
                    for statement in _SCHEMA:
                        await conn.execute(statement)
        except StorageError:
            await pool.close()
            log.error("[STORE OPEN FAILED] postgres schema setup", exc_info=True)
            raise
        self._pool = pool
        log.info(
            "[STORE OPEN] postgres",
            extra={"pool_min": self.pool_min_size, "pool_max": self.pool_max_size},
        )

    async def close(self) -> None:
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.close()
        log.info("[STORE CLOSED] postgres")

    def _get_pool(self) -> AsyncConnectionPool:
        if self._pool is None:
            raise StorageUnavailable("store is not open")
        return self._pool

    async def _fetch(self, sql: str, params: tuple = ()) -> List[Dict[str, Any]]:
        with _translate_errors():
            async with self._get_pool().connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(sql, params)
                    return await cur.fetchall()

    async def _execute(self, sql: str, params: tuple = ()) -> int:
        async def _run() -> int:
            with _translate_errors():
                async with self._get_pool().connection() as conn:
                    cur = await conn.execute(sql, params)
                    return cur.rowcount

        return await self._write(_run)

    # Owners

    async def create_owner(self, username: str) -> Owner:
        owner = Owner(username=username, created_at=utcnow())
        await self._execute(
            "INSERT INTO owners (id, username, created_at) VALUES (%s, %s, %s)",
            (owner.id, owner.username, owner.created_at),
        )
        return owner

    async def get_owner(self, username: str) -> Optional[Owner]:
        rows = await self._fetch(
            "SELECT id, username, created_at FROM owners WHERE username = %s", (username,)
        )
        return Owner.model_validate(rows[0]) if rows else None

    async def delete_owner(self, owner_id: str) -> None:
        if await self._execute("DELETE FROM owners WHERE id = %s", (owner_id,)) == 0:
            raise NotFound(f"owner {owner_id} not found")

    # Records

    async def insert(self, record: Record) -> None:
        await self._execute(
            f"INSERT INTO records ({_RECORD_COLUMNS}) VALUES (%s, %s, %s, %s, %s, %s)",
            (
                record.id,
                record.owner_id,
                record.value,
                record.created_at,
                record.ai_text,
                record.synced,
            ),
        )

    async def fetch_unsynced(self) -> List[Record]:
        rows = await self._fetch(
            f"SELECT {_RECORD_COLUMNS} FROM records WHERE NOT synced ORDER BY created_at, id"
        )
        return [Record.model_validate(row) for row in rows]

    async def mark_synced(self, ids: Iterable[str]) -> int:
        targets = self._unique_ids(ids)
        if not targets:
            return 0
        return await self._execute(
            "UPDATE records SET synced = TRUE WHERE NOT synced AND id = ANY(%s)", (targets,)
        )

    async def update_ai_text(self, record_id: str, text: str) -> None:
        changed = await self._execute(
            "UPDATE records SET ai_text = %s WHERE id = %s", (text, record_id)
        )
        if changed == 0:
            raise NotFound(f"record {record_id} not found")

    async def get_record(self, record_id: str) -> Record:
        rows = await self._fetch(
            f"SELECT {_RECORD_COLUMNS} FROM records WHERE id = %s", (record_id,)
        )
        if not rows:
            raise NotFound(f"record {record_id} not found")
        return Record.model_validate(rows[0])

    async def fetch_recent(self, owner_id: str, limit: int = 20) -> List[Record]:
        rows = await self._fetch(
            f"SELECT {_RECORD_COLUMNS} FROM records WHERE owner_id = %s "
            "ORDER BY created_at DESC, id DESC LIMIT %s",
            (owner_id, limit),
        )
        return [Record.model_validate(row) for row in rows]

    async def count_unsynced(self) -> int:
        rows = await self._fetch("SELECT COUNT(*) AS n FROM records WHERE NOT synced")
        return int(rows[0]["n"])


__all__ = ["PostgresRecordStore"]
