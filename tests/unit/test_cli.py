from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import pytest
from typer.testing import CliRunner

from recordflow.config import get_settings
from recordflow.domain.models import Record
from recordflow.main import app
from recordflow.storage import SqliteRecordStore

runner = CliRunner()


@pytest.fixture
def cli_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point the CLI at a temporary SQLite file and restore logging afterwards."""
    db_path = tmp_path / "cli.sqlite3"
    monkeypatch.setenv("STORE_BACKEND", "sqlite")
    monkeypatch.setenv("SQLITE_PATH", str(db_path))
    monkeypatch.setenv("ENRICHMENT_BASE_URL", "http://127.0.0.1:9")
    get_settings.cache_clear()
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        yield db_path
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
        get_settings.cache_clear()


async def _seed_unsynced(path: Path, count: int) -> None:
    async with SqliteRecordStore(path) as store:
        owner = await store.create_owner("U1")
        for value in range(count):
            await store.insert(
                Record(owner_id=owner.id, value=value, created_at=datetime.now(timezone.utc))
            )


def test_info_reports_effective_configuration(cli_env: Path) -> None:
    result = runner.invoke(app, ["info"])

    assert result.exit_code == 0
    assert f"store=sqlite:{cli_env}" in result.output
    assert "every 61 ticks" in result.output


def test_sync_marks_backlog_synced(cli_env: Path) -> None:
    asyncio.run(_seed_unsynced(cli_env, 3))

    first = runner.invoke(app, ["sync"])
    second = runner.invoke(app, ["sync"])

    assert first.exit_code == 0
    assert "Synced 3 record(s)." in first.output
    assert "Synced 0 record(s)." in second.output


def test_status_for_unknown_owner_shows_nothing(cli_env: Path) -> None:
    result = runner.invoke(app, ["status", "--owner", "nobody"])

    assert result.exit_code == 0
    assert "No records to display." in result.output


def test_status_lists_owner_records(cli_env: Path) -> None:
    asyncio.run(_seed_unsynced(cli_env, 2))

    result = runner.invoke(app, ["status", "--owner", "U1", "--limit", "5"])

    assert result.exit_code == 0
    assert "Records for U1" in result.output
    assert "2 unsynced in store" in result.output


def test_run_for_a_bounded_time_persists_records(cli_env: Path) -> None:
    result = runner.invoke(
        app,
        ["run", "--owner", "U1", "--seconds", "0.3", "--interval", "0.02", "--sync-interval", "60"],
    )

    assert result.exit_code == 0, result.output
    assert "Pipeline Status" in result.output
    assert "Last Records" in result.output

    async def _count() -> int:
        async with SqliteRecordStore(cli_env) as store:
            owner = await store.get_owner("U1")
            return len(await store.fetch_recent(owner.id, limit=1_000))

    assert asyncio.run(_count()) > 0


def test_models_reports_unreachable_service(cli_env: Path) -> None:
    result = runner.invoke(app, ["models"])

    assert result.exit_code == 1
    assert "Enrichment service unavailable" in result.output


def test_unopenable_store_exits_with_error(
    cli_env: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    monkeypatch.setenv("SQLITE_PATH", str(blocker / "db.sqlite3"))
    get_settings.cache_clear()

    result = runner.invoke(app, ["sync"])

    assert result.exit_code == 1
    assert "Record store unavailable" in result.output
