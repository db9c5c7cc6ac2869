"""
Error taxonomy for recordflow.

Storage errors are raised by record stores, transport errors by the
enrichment client (and optionally by uploaders), and `Cancelled` by any
cooperative task that observes its cancellation token mid-operation.
"""

from __future__ import annotations

from typing import Optional


class RecordFlowError(Exception):
    """Base class for every error raised by the pipeline core."""


# Storage


class StorageError(RecordFlowError):
    """Base class for record store failures."""


class ConstraintViolation(StorageError):
    """A write broke a uniqueness or foreign-key constraint."""


class NotFound(StorageError):
    """The addressed row does not exist (or no longer exists)."""


class StorageUnavailable(StorageError):
    """The store could not be reached or the connection was lost."""


# Transport


class TransportError(RecordFlowError):
    """Base class for failures talking to an external HTTP service."""


class Unreachable(TransportError):
    """Transport-level failure: connection refused, DNS, timeout."""


class BadStatus(TransportError):
    """The service answered with a non-2xx status code."""

    def __init__(self, status_code: int, detail: Optional[str] = None) -> None:
        self.status_code = status_code
        self.detail = detail
        message = f"HTTP error: {status_code}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class Malformed(TransportError):
    """The response body could not be decoded into the expected shape."""


# Tasks


class Cancelled(RecordFlowError):
    """A cooperative task observed its cancellation signal."""


__all__ = [
    "RecordFlowError",
    "StorageError",
    "ConstraintViolation",
    "NotFound",
    "StorageUnavailable",
    "TransportError",
    "Unreachable",
    "BadStatus",
    "Malformed",
    "Cancelled",
]
