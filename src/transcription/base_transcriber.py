# src/transcription/base_transcriber.py - v1
"""Abstract transcription port consumed by the batch worker pool."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from scribbledoc.core.models import OCRConfig

ProgressCallback = Callable[[float], None]


class TranscriptionPort(ABC):
    """Turns one image plus an OCRConfig into text.

    Implementations may call ``on_progress`` zero or more times with values
    in [0, 1] before returning, and raise TranscriptionError on failure.
    Calls are awaited concurrently by up to CONCURRENCY_LIMIT workers and
    must not block the event loop.
    """

    @abstractmethod
    async def transcribe(
        self,
        image: bytes,
        config: OCRConfig,
        on_progress: ProgressCallback,
    ) -> str:
        """Transcribe the image and return its text."""

    @property
    def requires_credentials(self) -> bool:
        """Whether the backend needs a credential before any call."""
        return False

    @property
    def has_credentials(self) -> bool:
        """Whether the required credential is present."""
        return True
