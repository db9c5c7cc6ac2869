"""
Synthetic backlog generator for recordflow.

Seeds deterministic pseudo-random records for an owner straight into the
configured record store, bypassing the timed generator. Useful to exercise
the sync loop against a large unsynced backlog.
"""

from __future__ import annotations

import asyncio
import random
import sys
import time
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import typer

from recordflow.config import get_settings
from recordflow.domain.errors import StorageUnavailable
from recordflow.domain.models import Record
from recordflow.infrastructure.db_factory import create_store
from recordflow.storage.abstract import RecordStore

app = typer.Typer(help="Seed synthetic unsynced records into the record store.")


def _generate_records(
    owner_id: str,
    rows: int,
    seed: int,
    value_min: int = 0,
    value_max: int = 100,
    start: Optional[datetime] = None,
) -> List[Record]:
    """Build `rows` records one second apart, reproducible for a given seed."""
    rng = random.Random(seed)
    origin = start or datetime.now(timezone.utc) - timedelta(seconds=rows)
    return [
        Record(
            id=f"{rng.getrandbits(128):032x}",
            owner_id=owner_id,
            value=rng.randint(value_min, value_max),
            created_at=origin + timedelta(seconds=i),
        )
        for i in range(rows)
    ]


async def _seed(store: RecordStore, username: str, records_per_owner: int, seed: int) -> int:
    owner = await store.get_owner(username)
    if owner is None:
        owner = await store.create_owner(username)
    settings = get_settings()
    records = _generate_records(
        owner.id,
        records_per_owner,
        seed,
        value_min=settings.generator_value_min,
        value_max=settings.generator_value_max,
    )
    for record in records:
        await store.insert(record)
    return len(records)


async def _seed_configured_store(username: str, rows: int, seed: int) -> int:
    store = create_store()
    await store.open()
    try:
        return await _seed(store, username, rows, seed)
    finally:
        await store.close()


@app.command()
def main(
    owner: str = typer.Option("demo", help="Owner username; created if missing."),
    rows: int = typer.Option(1_000, help="Number of records to insert."),
    seed: int = typer.Option(42, help="Random seed for deterministic output."),
) -> None:
    start = time.perf_counter()
    try:
        inserted = asyncio.run(_seed_configured_store(owner, rows, seed))
    except StorageUnavailable as exc:
        typer.echo(f"Record store unavailable: {exc}", err=True)
        sys.exit(1)
    elapsed = time.perf_counter() - start
    typer.echo(f"Inserted {inserted} record(s) for '{owner}' in {elapsed:.2f}s.")


if __name__ == "__main__":
    app()
