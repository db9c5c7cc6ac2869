from __future__ import annotations

import asyncio
import sys
from typing import List, Optional, Tuple

import typer

from recordflow.config import Settings, get_settings
from recordflow.coordinator import PipelineCoordinator
from recordflow.domain.errors import StorageUnavailable, TransportError
from recordflow.domain.models import Owner, PipelineStatus, Record
from recordflow.enrichment import OllamaClient
from recordflow.generator import RecordGenerator
from recordflow.infrastructure.db_factory import create_store
from recordflow.reporter import print_records, print_status
from recordflow.storage.abstract import RecordStore
from recordflow.sync import SyncTask
from recordflow.utils.logging import configure_logging

app = typer.Typer(help="recordflow: synthetic record pipeline with enrichment and sync.")


def _bootstrap(**overrides) -> Settings:
    settings = get_settings()
    updates = {key: value for key, value in overrides.items() if value is not None}
    if updates:
        settings = settings.model_copy(update=updates)
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    return settings


async def _ensure_owner(store: RecordStore, username: str) -> Owner:
    owner = await store.get_owner(username)
    if owner is None:
        owner = await store.create_owner(username)
    return owner


async def _run_pipeline(
    settings: Settings, username: str, seconds: Optional[float]
) -> Tuple[PipelineStatus, List[Record]]:
    store = create_store(settings)
    await store.open()
    try:
        owner = await _ensure_owner(store, username)
        async with OllamaClient(
            base_url=settings.enrichment_base_url,
            timeout=settings.enrichment_timeout_seconds,
        ) as client:
            coordinator = PipelineCoordinator(
                store,
                generator=RecordGenerator(
                    interval=settings.generator_interval_seconds,
                    value_min=settings.generator_value_min,
                    value_max=settings.generator_value_max,
                ),
                enrichment=client,
                sync_task=SyncTask(store, interval=settings.sync_interval_seconds),
                settings=settings,
            )
            coordinator.events.annotation_updated.connect(
                lambda text: typer.echo(f"annotation: {text}")
            )
            coordinator.events.sync_completed.connect(
                lambda count: typer.echo(f"synced {count} record(s)")
            )
            await coordinator.start(owner.id)
            try:
                if seconds is None:
                    await asyncio.Event().wait()
                else:
                    await asyncio.sleep(seconds)
            finally:
                await coordinator.stop()
            return coordinator.status(), coordinator.recent
    finally:
        await store.close()


async def _sync_once(settings: Settings) -> int:
    store = create_store(settings)
    await store.open()
    try:
        return await SyncTask(store, interval=settings.sync_interval_seconds).run_cycle()
    finally:
        await store.close()


async def _owner_report(settings: Settings, username: str, limit: int) -> Tuple[List[Record], int]:
    store = create_store(settings)
    await store.open()
    try:
        owner = await store.get_owner(username)
        if owner is None:
            return [], await store.count_unsynced()
        return await store.fetch_recent(owner.id, limit=limit), await store.count_unsynced()
    finally:
        await store.close()


async def _list_models(settings: Settings) -> List[str]:
    async with OllamaClient(base_url=settings.enrichment_base_url, timeout=5.0) as client:
        return await client.list_models()


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    store = (
        f"sqlite:{settings.sqlite_path}"
        if settings.store_backend == "sqlite"
        else f"postgres:{settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )
    typer.echo(
        f"store={store} | interval={settings.generator_interval_seconds}s "
        f"values=[{settings.generator_value_min},{settings.generator_value_max}] | "
        f"enrichment={settings.enrichment_base_url} model={settings.enrichment_model} "
        f"every {settings.enrichment_threshold + 1} ticks | sync every {settings.sync_interval_seconds}s"
    )


@app.command()
def models() -> None:
    """
    List the models offered by the enrichment service.
    """
    settings = _bootstrap()
    try:
        names = asyncio.run(_list_models(settings))
    except TransportError as exc:
        typer.echo(f"Enrichment service unavailable: {exc}", err=True)
        raise typer.Exit(code=1)
    if not names:
        typer.echo("No models installed.")
        return
    for name in names:
        typer.echo(name)


@app.command()
def run(
    owner: str = typer.Option(..., "--owner", "-o", help="Owner username; created if missing."),
    seconds: Optional[float] = typer.Option(
        None, "--seconds", "-s", help="Stop after this many seconds (default: until Ctrl-C)."
    ),
    interval: Optional[float] = typer.Option(
        None, "--interval", "-i", help="Override seconds between generated records."
    ),
    sync_interval: Optional[float] = typer.Option(
        None, "--sync-interval", help="Override seconds between sync cycles."
    ),
) -> None:
    """
    Run the pipeline for an owner and print its final status.
    """
    settings = _bootstrap(
        generator_interval_seconds=interval, sync_interval_seconds=sync_interval
    )
    typer.echo(
        f"Running pipeline for owner='{owner}' "
        f"(interval={settings.generator_interval_seconds}s, sync={settings.sync_interval_seconds}s)."
    )
    try:
        status, recent = asyncio.run(_run_pipeline(settings, owner, seconds))
    except StorageUnavailable as exc:
        typer.echo(f"Record store unavailable: {exc}", err=True)
        raise typer.Exit(code=1)
    print_status(status)
    print_records(list(reversed(recent))[:10], title="Last Records")


@app.command()
def sync() -> None:
    """
    Run a single sync cycle against the configured store.
    """
    settings = _bootstrap()
    try:
        count = asyncio.run(_sync_once(settings))
    except StorageUnavailable as exc:
        typer.echo(f"Record store unavailable: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Synced {count} record(s).")


@app.command()
def status(
    owner: str = typer.Option(..., "--owner", "-o", help="Owner username."),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of records to show."),
) -> None:
    """
    Show an owner's most recent records and the store-wide unsynced count.
    """
    settings = _bootstrap()
    try:
        records, unsynced = asyncio.run(_owner_report(settings, owner, limit))
    except StorageUnavailable as exc:
        typer.echo(f"Record store unavailable: {exc}", err=True)
        raise typer.Exit(code=1)
    print_records(records, title=f"Records for {owner}", caption=f"{unsynced} unsynced in store")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
