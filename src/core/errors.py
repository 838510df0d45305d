# src/core/errors.py - v1
"""Exception hierarchy shared across scribbledoc modules."""

from __future__ import annotations


class ScribbleDocError(Exception):
    """Base class for all scribbledoc errors."""


class TranscriptionError(ScribbleDocError):
    """A single transcription call failed.

    Raised by TranscriptionPort implementations. The worker pool catches it
    at the item boundary; it never fails a batch run.
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ExportError(ScribbleDocError):
    """Rendering or writing an export artefact failed."""


class BatchInProgressError(ScribbleDocError):
    """The item list was mutated while a batch run is active."""


class ItemNotFoundError(ScribbleDocError, KeyError):
    """No batch item matches the given id or index."""
