"""
recordflow - a small background record pipeline.

A generator emits synthetic records on a timer, a coordinator persists them
and periodically asks a text-generation service for an annotation, and an
independent sync task reconciles unsynced records against a remote target:

- Timer and cancellation primitives
- Record stores (SQLite, PostgreSQL) with single-writer discipline
- Ollama-compatible enrichment client
- Idle/Running pipeline coordinator
- Periodic, cancellable sync loop with observable signals
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from recordflow.clock import CancelToken, Ticker, utcnow
from recordflow.config import Settings, get_settings
from recordflow.coordinator import PipelineCoordinator
from recordflow.domain.models import Owner, PipelineState, PipelineStatus, Record
from recordflow.enrichment import EnrichmentClient, OllamaClient
from recordflow.events import PipelineEvents, Signal
from recordflow.generator import RecordGenerator
from recordflow.infrastructure.db_factory import create_store
from recordflow.storage.abstract import AbstractRecordStore, RecordStore
from recordflow.sync import NoopUploader, SyncTask, Uploader
from recordflow.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Clock
    "CancelToken",
    "Ticker",
    "utcnow",
    # Domain
    "Owner",
    "PipelineState",
    "PipelineStatus",
    "Record",
    # Pipeline
    "PipelineCoordinator",
    "RecordGenerator",
    "SyncTask",
    "Uploader",
    "NoopUploader",
    "EnrichmentClient",
    "OllamaClient",
    "PipelineEvents",
    "Signal",
    # Storage
    "AbstractRecordStore",
    "RecordStore",
    "create_store",
    # Logging
    "configure_logging",
    "get_logger",
]
