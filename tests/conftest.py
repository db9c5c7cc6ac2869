"""
Pytest configuration for recordflow.

Provides fixtures for:
- Settings tuned for fast tests
- A temporary SQLite record store and a seeded owner
- A polling helper for asserting on background tasks
- PostgreSQL connection details for integration tests
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, List, Optional

import psycopg
import pytest
import pytest_asyncio

from recordflow.clock import CancelToken
from recordflow.config import Settings
from recordflow.domain.models import Owner
from recordflow.storage.sqlite_store import SqliteRecordStore


class StubEnrichment:
    """Enrichment client double: records calls, answers or fails on demand."""

    def __init__(self, reply: str = "ok", error: Optional[Exception] = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: List[tuple] = []

    async def generate(
        self,
        model,
        prompt: str,
        *,
        timeout: Optional[float] = None,
        cancel: Optional[CancelToken] = None,
    ) -> str:
        self.calls.append((model, prompt, timeout))
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """
    Settings with test-specific overrides.

    Timers are long so tests drive the generator by hand; the sync loop runs
    one cycle on start and then sleeps until stopped.
    """
    return Settings(
        sqlite_path=str(tmp_path / "records.sqlite3"),
        generator_interval_seconds=3600.0,
        sync_interval_seconds=3600.0,
        enrichment_timeout_seconds=1.0,
        log_level="DEBUG",
    )


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> AsyncIterator[SqliteRecordStore]:
    """An open SQLite store backed by a temporary file."""
    record_store = SqliteRecordStore(tmp_path / "records.sqlite3")
    await record_store.open()
    try:
        yield record_store
    finally:
        await record_store.close()


@pytest_asyncio.fixture
async def owner(store: SqliteRecordStore) -> Owner:
    return await store.create_owner("U1")


@pytest.fixture
def enrichment_stub() -> Callable[..., StubEnrichment]:
    """Factory for enrichment doubles: `enrichment_stub(reply=..., error=...)`."""
    return StubEnrichment


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """
    Poll `predicate` until it holds, failing the test after `timeout` seconds.
    """

    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                pytest.fail(f"condition not met within {timeout}s")
            await asyncio.sleep(0.005)

    return _wait


@pytest.fixture(scope="session")
def test_dsn() -> str:
    """
    Database connection string for integration tests.
    """
    return (
        f"postgresql://{os.getenv('DB_USER', 'postgres')}:{os.getenv('DB_PASSWORD', 'postgres')}"
        f"@{os.getenv('DB_HOST', 'localhost')}:{os.getenv('DB_PORT', '5432')}"
        f"/{os.getenv('DB_NAME', 'recordflow')}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if PostgreSQL is reachable.

    Used to conditionally skip integration tests when the database is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False
