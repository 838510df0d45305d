# src/export/archive.py - v1
"""ZIP bundle of per-page exports.

For every completed item, in list order, the bundle holds
``Note_Page_<n>.txt`` and ``Note_Page_<n>.docx`` where ``n`` counts
completed pages from 1.
"""

from __future__ import annotations

import io
import logging
import zipfile
from typing import Iterable

from pydantic import BaseModel

from scribbledoc.core.errors import ExportError
from scribbledoc.core.models import BatchItem
from scribbledoc.export.docx_renderer import render_document

logger = logging.getLogger(__name__)


class ArchiveEntry(BaseModel):
    """One file inside the archive."""

    name: str
    data: bytes


def render_archive(entries: Iterable[ArchiveEntry]) -> bytes:
    """Pack entries into a deflated ZIP and return its bytes.

    Raises:
        ExportError: On duplicate entry names.
    """
    buffer = io.BytesIO()
    seen: set[str] = set()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for entry in entries:
            if entry.name in seen:
                raise ExportError(f"Duplicate archive entry: {entry.name}")
            seen.add(entry.name)
            zf.writestr(entry.name, entry.data)
    return buffer.getvalue()


def page_entries(items: Iterable[BatchItem]) -> list[ArchiveEntry]:
    """Archive entries for the completed items, numbered in list order."""
    entries: list[ArchiveEntry] = []
    page = 0
    for item in items:
        if item.status != "completed":
            continue
        page += 1
        text = item.result_text or ""
        stem = f"Note_Page_{page}"
        entries.append(ArchiveEntry(name=f"{stem}.txt", data=text.encode("utf-8")))
        entries.append(
            ArchiveEntry(name=f"{stem}.docx", data=render_document(text, f"Note Page {page}"))
        )
    return entries


def build_batch_archive(items: Iterable[BatchItem]) -> bytes:
    """ZIP of every completed page.

    Raises:
        ExportError: If no item is completed.
    """
    entries = page_entries(items)
    if not entries:
        raise ExportError("No processed notes to export. Start conversion first.")
    logger.info("Building archive with %d page(s)", len(entries) // 2)
    return render_archive(entries)
