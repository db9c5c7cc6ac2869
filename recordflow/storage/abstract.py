"""
Record store interfaces for recordflow.

Concrete stores (SQLite, PostgreSQL) implement the RecordStore protocol,
usually by subclassing AbstractRecordStore, which supplies the single-writer
discipline: every write runs under one asyncio.Lock and is shielded from the
caller's cancellation so a stopped task never leaves a half-applied write.
"""

from __future__ import annotations

import abc
import asyncio
from typing import Awaitable, Callable, Iterable, List, Optional, Protocol, TypeVar, runtime_checkable

from recordflow.domain.models import Owner, Record

T = TypeVar("T")


@runtime_checkable
class RecordStore(Protocol):
    """
    Durable keyed storage for generated records.

    Errors are raised from one taxonomy: ConstraintViolation, NotFound and
    StorageUnavailable.
    """

    name: str

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def insert(self, record: Record) -> None:
        """Append one record. ConstraintViolation on duplicate id or unknown owner."""
        ...

    async def fetch_unsynced(self) -> List[Record]:
        """All records with synced == False, as one consistent snapshot."""
        ...

    async def mark_synced(self, ids: Iterable[str]) -> int:
        """Flip synced for the given ids that exist and are unsynced; ignore the rest."""
        ...

    async def update_ai_text(self, record_id: str, text: str) -> None:
        """Attach an annotation in place. NotFound if the record is gone."""
        ...

    async def create_owner(self, username: str) -> Owner: ...

    async def get_owner(self, username: str) -> Optional[Owner]: ...

    async def delete_owner(self, owner_id: str) -> None: ...

    async def get_record(self, record_id: str) -> Record: ...

    async def fetch_recent(self, owner_id: str, limit: int = 20) -> List[Record]: ...

    async def count_unsynced(self) -> int: ...


class AbstractRecordStore(abc.ABC):
    """
    ABC helper for class-based stores.

    Subclasses set `name`, implement the abstract methods, and route every
    mutating statement through `_write`.
    """

    name: str

    def __init__(self) -> None:
        self._write_lock = asyncio.Lock()

    async def __aenter__(self) -> "AbstractRecordStore":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _write(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run `operation` as the only writer, to completion even if the caller is cancelled."""

        async def _locked() -> T:
            async with self._write_lock:
                return await operation()

        return await asyncio.shield(asyncio.ensure_future(_locked()))

    @staticmethod
    def _unique_ids(ids: Iterable[str]) -> List[str]:
        return list(dict.fromkeys(ids))

    @abc.abstractmethod
    async def open(self) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def close(self) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def insert(self, record: Record) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def fetch_unsynced(self) -> List[Record]:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def mark_synced(self, ids: Iterable[str]) -> int:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def update_ai_text(self, record_id: str, text: str) -> None:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    async def create_owner(self, username: str) -> Owner:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def get_owner(self, username: str) -> Optional[Owner]:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_owner(self, owner_id: str) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def get_record(self, record_id: str) -> Record:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    async def fetch_recent(self, owner_id: str, limit: int = 20) -> List[Record]:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    async def count_unsynced(self) -> int:  # pragma: no cover - interface only
        raise NotImplementedError


__all__ = [
    "AbstractRecordStore",
    "RecordStore",
]
