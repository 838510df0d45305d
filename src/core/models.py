# src/core/models.py - v1
"""Shared Pydantic domain models: BatchItem, OCRConfig, ItemEvent.

No module redefines these types; all imports come from core.models.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ItemStatus = Literal["pending", "processing", "completed", "error"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "error"})


def new_item_id() -> str:
    """Opaque item identifier, stable for the item's lifetime."""
    return uuid.uuid4().hex[:12]


class OCRConfig(BaseModel):
    """Immutable snapshot of transcription parameters.

    Passed by value into every transcription call of a run. The batch
    pipeline never inspects it.
    """

    model_config = ConfigDict(frozen=True)

    language: str = "eng"
    grayscale: bool = True
    contrast: float = Field(default=1.2, gt=0)
    threshold: int = Field(default=128, ge=0, le=255)


class BatchItem(BaseModel):
    """One ingested image plus its processing state and result.

    ``result_text`` is set iff ``status`` is terminal. For failed items it
    holds the placeholder chunk and ``error_message`` keeps the cause.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=new_item_id)
    source_image: bytes = Field(repr=False)
    filename: str = ""
    media_type: str = "image/jpeg"
    status: ItemStatus = "pending"
    progress: float = Field(default=0.0, ge=0.0, le=1.0)
    result_text: str | None = None
    error_message: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ItemEvent(BaseModel):
    """Change notification emitted by the item store for a single item."""

    kind: Literal["added", "updated", "removed", "cleared"]
    index: int | None = None
    item_id: str | None = None
    status: ItemStatus | None = None
    progress: float | None = None
