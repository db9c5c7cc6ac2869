"""
Domain package for recordflow.

Exports the core domain models and the error taxonomy used across the
generator, stores, coordinator and sync loop. Keep this package focused on
data definitions and validation concerns.
"""

from recordflow.domain.errors import (
    BadStatus,
    Cancelled,
    ConstraintViolation,
    Malformed,
    NotFound,
    RecordFlowError,
    StorageError,
    StorageUnavailable,
    TransportError,
    Unreachable,
)
from recordflow.domain.models import (
    LocalModel,
    Owner,
    PipelineState,
    PipelineStatus,
    Record,
)

__all__ = [
    # Models
    "LocalModel",
    "Owner",
    "PipelineState",
    "PipelineStatus",
    "Record",
    # Errors
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
