"""
Database connection factory utilities for recordflow.

Builds SQLite connections and PostgreSQL async pools, and constructs the
configured record store. Stores are created explicitly and passed to the
components that need them; there is no process-wide store instance.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import psycopg
from psycopg_pool import AsyncConnectionPool
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from recordflow.config import Settings, get_settings
from recordflow.domain.errors import StorageUnavailable
from recordflow.utils.logging import get_logger

if TYPE_CHECKING:
    from recordflow.storage.abstract import RecordStore

log = get_logger(__name__)

_SQLITE_PRAGMAS = (
    "PRAGMA foreign_keys = ON",
    "PRAGMA busy_timeout = 5000",
)


def build_dsn(settings: Optional[Settings] = None) -> str:
    """Compose a PostgreSQL DSN string from settings."""
    settings = settings or get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
    retry=retry_if_exception_type(sqlite3.OperationalError),
    reraise=True,
)
def connect_sqlite(path: str | Path) -> sqlite3.Connection:
    """
    Open a SQLite connection usable from worker threads.

    Foreign keys are enforced (owner cascade) and file databases switch to
    WAL journaling. Retries briefly when the file is locked.

    Parameters
    ----------
    path : str | Path
        Database file, or ":memory:".

    Returns
    -------
    sqlite3.Connection
        Connection with `sqlite3.Row` rows.
    """
    target = str(path)
    if target != ":memory:":
        Path(target).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(target, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    for pragma in _SQLITE_PRAGMAS:
        conn.execute(pragma)
    if target != ":memory:":
        conn.execute("PRAGMA journal_mode = WAL")
    return conn


async def open_async_pool(
    dsn: str,
    min_size: int = 1,
    max_size: int = 5,
    attempts: int = 3,
) -> AsyncConnectionPool:
    """
    Open a psycopg async pool, retrying transient connection failures.

    Raises
    ------
    StorageUnavailable
        If the pool cannot be opened after all retry attempts.
    """
    pool = AsyncConnectionPool(conninfo=dsn, min_size=min_size, max_size=max_size, open=False)
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type((psycopg.OperationalError, OSError)),
        ):
            with attempt:
                await pool.open(wait=True, timeout=10.0)
    except RetryError as exc:
        await pool.close()
        raise StorageUnavailable(f"PostgreSQL unreachable after {attempts} attempts") from exc
    except Exception as exc:
        await pool.close()
        raise StorageUnavailable(str(exc)) from exc
    return pool


def create_store(settings: Optional[Settings] = None) -> RecordStore:
    """
    Construct (but do not open) the record store selected by settings.

    Parameters
    ----------
    settings : Settings | None
        Effective configuration; defaults to the cached settings.
    """
    settings = settings or get_settings()
    log.debug("[STORE] backend selected", extra={"backend": settings.store_backend})
    if settings.store_backend == "postgres":
        from recordflow.storage.postgres_store import PostgresRecordStore

        return PostgresRecordStore(
            dsn=build_dsn(settings),
            pool_min_size=settings.db_pool_min_size,
            pool_max_size=settings.db_pool_max_size,
            connect_attempts=settings.db_connect_attempts,
        )

    from recordflow.storage.sqlite_store import SqliteRecordStore

    return SqliteRecordStore(path=settings.sqlite_path)


__all__ = [
    "build_dsn",
    "connect_sqlite",
    "create_store",
    "open_async_pool",
]
