# src/export/exporter.py - v1
"""Export the assembled notes as .txt, .docx or a per-page ZIP bundle.

Export failures raise ExportError to the caller of that export; item and
run state are never touched here.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from scribbledoc.core.errors import ExportError
from scribbledoc.export.archive import build_batch_archive
from scribbledoc.export.docx_renderer import render_document

if TYPE_CHECKING:
    from scribbledoc.core.models import BatchItem
    from scribbledoc.storage.base_output_writer import BaseOutputWriter

logger = logging.getLogger(__name__)


class NotesExporter:
    """Write export artefacts through an output writer.

    Args:
        writer: Storage backend receiving the files.
        title: Document title and base file name for text/DOCX exports.
        archive_name: File name of the ZIP bundle.
    """

    def __init__(
        self,
        writer: BaseOutputWriter,
        title: str = "ScribbleToDoc_Notes",
        archive_name: str = "ScribbleToDoc_Batch_Export.zip",
    ) -> None:
        self._writer = writer
        self._title = title
        self._archive_name = archive_name

    async def export_text(self, text: str) -> str:
        _require_text(text)
        return await self._write(f"{self._title}.txt", text)

    async def export_docx(self, text: str) -> str:
        _require_text(text)
        return await self._write(f"{self._title}.docx", render_document(text, self._title))

    async def export_archive(self, items: Iterable[BatchItem]) -> str:
        return await self._write(self._archive_name, build_batch_archive(items))

    async def _write(self, name: str, content: bytes | str) -> str:
        try:
            location = await self._writer.write(name, content)
        except OSError as exc:
            raise ExportError(f"Could not write {name}: {exc}") from exc
        logger.info("Exported %s", location)
        return location


def _require_text(text: str) -> None:
    if not text.strip():
        raise ExportError("Nothing to export: the output text is empty")
