# src/export/docx_renderer.py - v1
"""DOCX rendering using python-docx.

Input text uses a small markdown subset, one block per line:
``# `` heading 1, ``## `` heading 2, ``- `` bullet, anything else a body
paragraph. Blank lines are dropped.
"""

from __future__ import annotations

import io
import logging
from datetime import datetime

from docx import Document
from docx.shared import Pt, RGBColor

from scribbledoc.core.errors import ExportError

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Transcribed Notes"
_BODY_SIZE = Pt(12)
_NOTE_COLOR = RGBColor(0x66, 0x66, 0x66)


def render_document(
    text: str,
    title: str = DEFAULT_TITLE,
    generated_at: datetime | None = None,
) -> bytes:
    """Render text as a Word document and return the .docx bytes.

    Raises:
        ExportError: If python-docx fails to build or save the document.
    """
    generated_at = generated_at or datetime.now()
    try:
        doc = Document()
        title_para = doc.add_heading(title, level=0)
        title_para.paragraph_format.space_after = Pt(20)

        stamp = doc.add_paragraph()
        run = stamp.add_run(
            f"Generated on: {generated_at.strftime('%Y-%m-%d')} "
            f"{generated_at.strftime('%H:%M:%S')}"
        )
        run.italic = True
        run.font.color.rgb = _NOTE_COLOR
        stamp.paragraph_format.space_after = Pt(20)

        for line in text.split("\n"):
            _add_line(doc, line.strip())

        buffer = io.BytesIO()
        doc.save(buffer)
    except Exception as exc:
        logger.error("DOCX rendering failed: %s", exc)
        raise ExportError(f"Could not generate Word document: {exc}") from exc
    return buffer.getvalue()


def _add_line(doc: Document, line: str) -> None:
    if not line:
        return
    if line.startswith("# "):
        para = doc.add_heading(line[2:], level=1)
        para.paragraph_format.space_before = Pt(12)
        para.paragraph_format.space_after = Pt(6)
    elif line.startswith("## "):
        para = doc.add_heading(line[3:], level=2)
        para.paragraph_format.space_before = Pt(10)
        para.paragraph_format.space_after = Pt(5)
    elif line.startswith("- "):
        para = doc.add_paragraph(line[2:], style="List Bullet")
        para.paragraph_format.space_after = Pt(6)
    else:
        para = doc.add_paragraph()
        para.add_run(line).font.size = _BODY_SIZE
        para.paragraph_format.space_after = Pt(6)
