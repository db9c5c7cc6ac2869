from __future__ import annotations

from typing import List, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from recordflow.domain.models import PipelineState, PipelineStatus, Record


def _fmt_ts(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value is not None else "-"


def print_status(status: PipelineStatus, console: Optional[Console] = None) -> None:
    """
    Render a coordinator status snapshot as a two-column rich table.
    """
    console = console or Console()

    state_style = {
        PipelineState.RUNNING: "bold green",
        PipelineState.FAILED: "bold red",
    }.get(status.state, "dim")
    table = Table(title="Pipeline Status", box=box.ROUNDED, show_header=False)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right")

    table.add_row("State", f"[{state_style}]{status.state.value}[/{state_style}]")
    table.add_row("Owner", status.owner_id or "-")
    table.add_row("Processed", f"{status.processed:,}")
    table.add_row("Persisted", f"[green]{status.persisted:,}[/green]")
    table.add_row("Dropped", f"[red]{status.dropped:,}[/red]" if status.dropped else "0")
    table.add_row("Ticks since enrichment", str(status.ticks))
    table.add_row("Enrichment calls", str(status.enrichments))
    table.add_row("Latest annotation", f"[magenta]{status.latest_annotation}[/magenta]")
    table.add_row(
        "Last sync",
        "-" if status.last_sync_count is None
        else f"{status.last_sync_count} record(s) at {_fmt_ts(status.last_sync_at)}",
    )
    if status.last_error:
        table.add_row("Last error", f"[yellow]{status.last_error}[/yellow]")

    console.print(table)


def print_records(
    records: List[Record],
    title: str = "Recent Records",
    caption: Optional[str] = None,
    console: Optional[Console] = None,
) -> None:
    """
    Render records newest first, with their sync flag and annotation.
    """
    console = console or Console()

    if not records:
        console.print("[yellow]No records to display.[/yellow]")
        return

    table = Table(title=title, box=box.ROUNDED, caption=caption)
    table.add_column("Created", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right", style="magenta")
    table.add_column("Synced", justify="center")
    table.add_column("Annotation", style="green")
    table.add_column("Id", style="dim", no_wrap=True)

    for record in records:
        table.add_row(
            _fmt_ts(record.created_at),
            str(record.value),
            "[green]✓[/green]" if record.synced else "[yellow]…[/yellow]",
            record.ai_text or "",
            record.id[:12],
        )

    console.print(table)


__all__ = ["print_records", "print_status"]
