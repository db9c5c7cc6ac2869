"""
Storage package for recordflow.

Re-exports the store interfaces and the concrete backends so downstream code
can import from `recordflow.storage` directly.
"""

from recordflow.storage.abstract import AbstractRecordStore, RecordStore
from recordflow.storage.postgres_store import PostgresRecordStore
from recordflow.storage.sqlite_store import SqliteRecordStore

__all__ = [
    # Abstracts
    "AbstractRecordStore",
    "RecordStore",
    # Backends
    "PostgresRecordStore",
    "SqliteRecordStore",
]
