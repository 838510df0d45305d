# src/logging/context.py - v1
"""Contextual logging support: attach run_id, item_id and step to log records.

Each batch worker runs in its own asyncio task, which copies the context at
creation, so item-level values set by one worker never leak into another.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_item_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "item_id", default=None
)
_step: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "step", default=None
)


@dataclass
class LogContext:
    """Snapshot of current logging context."""

    run_id: str | None = None
    item_id: str | None = None
    step: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    return LogContext(
        run_id=_run_id.get(),
        item_id=_item_id.get(),
        step=_step.get(),
    )


def set_run_context(run_id: str) -> None:
    """Set run-level context (called once per batch run)."""
    _run_id.set(run_id)


def set_item_context(item_id: str, step: str | None = None) -> None:
    """Set item-level context (called by the worker owning the item)."""
    _item_id.set(item_id)
    _step.set(step)


def clear_context() -> None:
    _run_id.set(None)
    _item_id.set(None)
    _step.set(None)
