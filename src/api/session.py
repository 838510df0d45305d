# src/api/session.py - v1
"""Public API: a notes session owning the item list, output text and exports.

Usage:
    session = NotesSession()
    session.add_images([Path("page1.jpg"), Path("page2.jpg")])
    result = await session.start_batch()
    print(session.output_text)
    await session.export_docx()
"""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable

from scribbledoc.batch.controller import BatchController, BatchRunResult
from scribbledoc.batch.store import ItemStore
from scribbledoc.config.settings import Settings
from scribbledoc.core.errors import BatchInProgressError
from scribbledoc.export.exporter import NotesExporter
from scribbledoc.storage.local_writer import LocalWriter
from scribbledoc.transcription.llm_transcriber import LLMTranscriber

if TYPE_CHECKING:
    from scribbledoc.batch.store import ItemListener
    from scribbledoc.core.models import BatchItem, OCRConfig
    from scribbledoc.storage.base_output_writer import BaseOutputWriter
    from scribbledoc.transcription.base_transcriber import TranscriptionPort

logger = logging.getLogger(__name__)

ImageSource = Path | str | bytes


class NotesSession:
    """Caller-facing surface of the batch pipeline.

    Args:
        settings: Global settings. Loaded from .env if None.
        transcriber: Transcription backend. Built from settings if None.
        writer: Export destination. LocalWriter on settings.output_dir if None.
        on_config_required: Called when a run is refused for a missing
            credential.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transcriber: TranscriptionPort | None = None,
        writer: BaseOutputWriter | None = None,
        on_config_required: Callable[[], None] | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._store = ItemStore()
        self._transcriber = transcriber or LLMTranscriber.from_settings(self._settings)
        self._config_required = False
        self._omitted_indices: list[int] = []
        self._on_config_required = on_config_required
        self._controller = BatchController(
            store=self._store,
            transcriber=self._transcriber,
            config=self._settings.ocr_config(),
            on_config_required=self._handle_config_required,
        )
        self._exporter = NotesExporter(
            writer or LocalWriter(self._settings.output_dir),
            title=self._settings.export_title,
            archive_name=self._settings.export_archive_name,
        )

    # --- Read access ---

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def items(self) -> list[BatchItem]:
        return self._store.items

    @property
    def output_text(self) -> str:
        return self._controller.output_text

    @output_text.setter
    def output_text(self, text: str) -> None:
        """Replace the assembled text with a caller edit (only between runs)."""
        self._controller.set_output_text(text)

    @property
    def output_edited(self) -> bool:
        return self._controller.output_edited

    @property
    def is_running(self) -> bool:
        return self._controller.is_running

    @property
    def config_required(self) -> bool:
        """True once a run was refused for a missing credential."""
        return self._config_required

    @property
    def ocr_config(self) -> OCRConfig:
        return self._controller.config

    @ocr_config.setter
    def ocr_config(self, value: OCRConfig) -> None:
        self._controller.config = value

    def counts(self) -> dict[str, int]:
        return self._store.counts()

    def subscribe(self, listener: ItemListener) -> Callable[[], None]:
        """Receive an ItemEvent for every item change."""
        return self._store.subscribe(listener)

    def on_output(self, listener: Callable[[str], None]) -> None:
        """Receive the full output text each time it grows."""
        self._controller.add_output_listener(listener)

    # --- Ingestion ---

    def add_image(
        self,
        data: bytes,
        filename: str = "",
        media_type: str | None = None,
    ) -> BatchItem:
        """Append one image; it becomes the last item of the list."""
        media_type = media_type or _guess_media_type(filename)
        item = self._store.add_image(data, filename=filename, media_type=media_type)
        logger.debug("Added %s as item %s (%d bytes)", filename or "image", item.id, len(data))
        return item

    def add_images(self, sources: Iterable[ImageSource]) -> list[BatchItem]:
        """Append images in the given order (paths or raw bytes)."""
        added: list[BatchItem] = []
        for source in sources:
            if isinstance(source, bytes):
                added.append(self.add_image(source))
                continue
            path = Path(source)
            added.append(self.add_image(path.read_bytes(), filename=path.name))
        logger.info("Added %d image(s); %d item(s) total", len(added), len(self._store))
        return added

    # --- Batch operations ---

    async def start_batch(self, config: OCRConfig | None = None) -> BatchRunResult:
        result = await self._controller.start_batch(config)
        if result.started:
            self._config_required = False
            self._omitted_indices = list(result.omitted_indices)
        return result

    def request_stop(self) -> bool:
        return self._controller.request_stop()

    async def retry_failed(self) -> BatchRunResult:
        """Reset errored items to pending and run the batch again."""
        self._store.reset_failed()
        return await self.start_batch()

    def remove(self, item_id: str) -> BatchItem:
        return self._store.remove(item_id)

    def clear_all(self) -> None:
        """Drop every item and the output text (only between runs)."""
        if self._controller.is_running:
            raise BatchInProgressError("Cannot clear while a batch run is active")
        self._store.clear()
        self._controller.reset_output()
        self._omitted_indices = []
        logger.info("Session cleared")

    # --- Export ---

    async def export_text(self) -> str:
        self._warn_if_incomplete()
        return await self._exporter.export_text(self.output_text)

    async def export_docx(self) -> str:
        self._warn_if_incomplete()
        return await self._exporter.export_docx(self.output_text)

    async def export_archive(self) -> str:
        return await self._exporter.export_archive(self._store.items)

    def _warn_if_incomplete(self) -> None:
        if self._omitted_indices:
            logger.warning(
                "Exporting after a stopped run: completed item(s) %s are not in "
                "the output text yet; start the batch again to include them",
                self._omitted_indices,
            )

    def _handle_config_required(self) -> None:
        self._config_required = True
        if self._on_config_required is not None:
            self._on_config_required()


def _guess_media_type(filename: str) -> str:
    guessed, _ = mimetypes.guess_type(filename) if filename else (None, None)
    return guessed or "image/jpeg"
