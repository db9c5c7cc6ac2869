import io
from datetime import datetime, timezone

import pytest
from rich.console import Console

from recordflow import config
from recordflow.domain.models import PipelineState, PipelineStatus, Record
from recordflow.infrastructure.db_factory import build_dsn, create_store
from recordflow.reporter import print_records, print_status
from recordflow.storage import PostgresRecordStore, SqliteRecordStore
from scripts import generate_records

FIXED_START = datetime(2026, 1, 16, 12, 0, tzinfo=timezone.utc)


def _console() -> Console:
    return Console(file=io.StringIO(), width=160, color_system=None)


def test_settings_defaults():
    settings = config.Settings(_env_file=None)
    assert settings.store_backend == "sqlite"
    assert settings.db_port == 5432
    assert settings.db_name == "recordflow"
    assert settings.generator_interval_seconds == 1.0
    assert (settings.generator_value_min, settings.generator_value_max) == (0, 100)
    assert settings.enrichment_threshold == 60
    assert settings.enrichment_fallback == "AI unavailable"
    assert settings.sync_interval_seconds == 100.0


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("STORE_BACKEND", "postgres")
    monkeypatch.setenv("SYNC_INTERVAL_SECONDS", "5")
    settings = config.Settings(_env_file=None)
    assert settings.store_backend == "postgres"
    assert settings.sync_interval_seconds == 5.0


def test_build_dsn_uses_db_settings():
    settings = config.Settings(
        db_user="app", db_password="secret", db_host="db", db_port=6543, db_name="records"
    )
    assert build_dsn(settings) == "postgresql://app:secret@db:6543/records"


def test_create_store_selects_backend(tmp_path):
    sqlite = create_store(config.Settings(sqlite_path=str(tmp_path / "x.sqlite3")))
    postgres = create_store(config.Settings(store_backend="postgres", db_connect_attempts=1))

    assert isinstance(sqlite, SqliteRecordStore)
    assert sqlite.path == str(tmp_path / "x.sqlite3")
    assert isinstance(postgres, PostgresRecordStore)


def test_generate_records_is_deterministic():
    first = generate_records._generate_records("owner", rows=5, seed=123, start=FIXED_START)
    second = generate_records._generate_records("owner", rows=5, seed=123, start=FIXED_START)
    other = generate_records._generate_records("owner", rows=5, seed=7, start=FIXED_START)

    assert first == second
    assert first != other
    assert len({r.id for r in first}) == 5
    assert all(0 <= r.value <= 100 for r in first)
    assert [r.created_at for r in first] == sorted(r.created_at for r in first)


@pytest.mark.asyncio
async def test_seed_creates_owner_and_unsynced_backlog(store):
    inserted = await generate_records._seed(store, "demo", records_per_owner=25, seed=1)

    owner = await store.get_owner("demo")
    assert inserted == 25
    assert owner is not None
    assert await store.count_unsynced() == 25


def test_print_status_renders_fields():
    console = _console()
    status = PipelineStatus(
        state=PipelineState.RUNNING,
        owner_id="U1",
        processed=61,
        persisted=60,
        dropped=1,
        latest_annotation="ok",
        last_sync_count=3,
        last_sync_at=FIXED_START,
    )

    print_status(status, console=console)

    output = console.file.getvalue()
    assert "Pipeline Status" in output
    assert "running" in output
    assert "3 record(s) at 2026-01-16 12:00:00" in output


def test_print_records_handles_empty_and_rows():
    console = _console()
    print_records([], console=console)
    record = Record(owner_id="U1", value=42, created_at=FIXED_START, ai_text="hi")
    print_records([record], title="Last Records", console=console)

    output = console.file.getvalue()
    assert "No records to display." in output
    assert "Last Records" in output
    assert "42" in output
    assert record.id[:12] in output
