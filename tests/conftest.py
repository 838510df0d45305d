# tests/conftest.py - v1
"""Shared test fixtures for unit and integration tests.

Provides a scripted transcription port whose calls can be held open and
released in any order, plus small image/settings helpers. No network I/O.
"""

from __future__ import annotations

import asyncio
import io
from typing import Callable

import pytest
from PIL import Image, ImageDraw

from scribbledoc.batch.store import ItemStore
from scribbledoc.config.settings import Settings
from scribbledoc.core.errors import TranscriptionError
from scribbledoc.core.models import OCRConfig
from scribbledoc.transcription.base_transcriber import ProgressCallback, TranscriptionPort


class ScriptedTranscriber(TranscriptionPort):
    """Transcription port driven by a per-image script.

    ``script`` maps image bytes to the returned text, or to an exception
    instance that is raised instead. With ``gated=True`` every call waits
    until ``release(image)`` is called, so tests choose completion order.
    """

    def __init__(
        self,
        script: dict[bytes, str | Exception],
        gated: bool = False,
        credentials: bool = True,
        progress_steps: tuple[float, ...] = (0.5,),
    ) -> None:
        self.script = script
        self.gated = gated
        self.credentials = credentials
        self.progress_steps = progress_steps
        self.calls: list[bytes] = []
        self.configs: list[OCRConfig] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._gates: dict[bytes, asyncio.Event] = {}

    @property
    def requires_credentials(self) -> bool:
        return True

    @property
    def has_credentials(self) -> bool:
        return self.credentials

    def _gate(self, image: bytes) -> asyncio.Event:
        return self._gates.setdefault(image, asyncio.Event())

    def release(self, image: bytes) -> None:
        self._gate(image).set()

    def release_all(self) -> None:
        for image in self.script:
            self.release(image)

    def started(self, image: bytes) -> bool:
        return image in self.calls

    async def transcribe(
        self,
        image: bytes,
        config: OCRConfig,
        on_progress: ProgressCallback,
    ) -> str:
        self.calls.append(image)
        self.configs.append(config)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            for step in self.progress_steps:
                on_progress(step)
            if self.gated:
                await self._gate(image).wait()
            else:
                await asyncio.sleep(0)
            outcome = self.script[image]
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        finally:
            self.in_flight -= 1


async def settle(rounds: int = 10) -> None:
    """Let every ready task run until it blocks again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settle_loop() -> Callable[..., object]:
    return settle


@pytest.fixture
def make_transcriber() -> Callable[..., ScriptedTranscriber]:
    def _make(script: dict[bytes, str | Exception], **kwargs: object) -> ScriptedTranscriber:
        return ScriptedTranscriber(script, **kwargs)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def make_store() -> Callable[[list[bytes]], ItemStore]:
    """Build a store holding one pending item per image payload."""

    def _make(images: list[bytes]) -> ItemStore:
        store = ItemStore()
        for i, data in enumerate(images):
            store.add_image(data, filename=f"page_{i}.jpg")
        return store

    return _make


@pytest.fixture
def transcription_failure() -> TranscriptionError:
    return TranscriptionError("backend unavailable")


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from any .env file, writing below tmp_path."""
    return Settings(
        _env_file=None,
        google_api_key="test-key",
        output_dir=tmp_path / "out",
    )


@pytest.fixture
def jpeg_bytes() -> bytes:
    """A real JPEG larger than the upload cap (3000x1500, grey with a dark band)."""
    image = Image.new("RGB", (3000, 1500), color=(140, 140, 140))
    ImageDraw.Draw(image).rectangle((0, 700, 2999, 719), fill=(20, 20, 20))
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=90)
    return buffer.getvalue()
