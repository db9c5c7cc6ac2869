"""
Domain models for recordflow.

Defines the record and owner schemas shared by the generator, the stores,
the coordinator and the sync loop, plus the observable pipeline status and
the wire models of the text-generation service.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


def new_record_id() -> str:
    """Return a fresh globally unique record id."""
    return uuid.uuid4().hex


class Record(BaseModel):
    """
    A single generated record, as held in the `records` table.
    """

    id: str = Field(default_factory=new_record_id, description="Unique, immutable id.")
    owner_id: str = Field(..., description="Owner the record is scoped to.")
    value: int = Field(..., description="Random integer value.")
    created_at: datetime = Field(..., description="Generation timestamp (UTC).")
    ai_text: Optional[str] = Field(None, description="Annotation attached after creation.")
    synced: bool = Field(False, description="Whether the remote target confirmed delivery.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
    }


class Owner(BaseModel):
    """
    Identity a record is scoped to. Credentials live with the auth collaborator.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    username: str
    created_at: datetime

    model_config = {"frozen": True}


class LocalModel(str, Enum):
    """Models known to be served by a local Ollama install."""

    TINYLLAMA = "tinyllama"
    MISTRAL = "mistral"
    LLAMA3 = "llama3"


class PipelineState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    FAILED = "failed"


class PipelineStatus(BaseModel):
    """
    Point-in-time snapshot of the coordinator, for the presentation layer.
    """

    state: PipelineState
    owner_id: Optional[str] = None
    processed: int = 0
    persisted: int = 0
    dropped: int = 0
    ticks: int = 0
    enrichments: int = 0
    latest_annotation: str
    last_error: Optional[str] = None
    last_sync_count: Optional[int] = None
    last_sync_at: Optional[datetime] = None


class GenerateRequest(BaseModel):
    model: str
    prompt: str
    stream: bool = False


class GenerateResponse(BaseModel):
    response: str


class ModelTag(BaseModel):
    name: str
    size: Optional[int] = None
    modified_at: Optional[str] = None


class TagsResponse(BaseModel):
    models: List[ModelTag] = Field(default_factory=list)


__all__ = [
    "GenerateRequest",
    "GenerateResponse",
    "LocalModel",
    "ModelTag",
    "Owner",
    "PipelineState",
    "PipelineStatus",
    "Record",
    "TagsResponse",
    "new_record_id",
]
