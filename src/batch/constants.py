# src/batch/constants.py - v1
"""Fixed constants of the batch pipeline."""

from __future__ import annotations

# Ceiling on simultaneous transcription calls within one run.
CONCURRENCY_LIMIT = 3

# Chunk published in place of a failed item's text so reassembly never stalls.
PLACEHOLDER_TEXT = "[Error: Failed to process this page]"

# Separator placed between consecutive non-empty chunks of the output text.
CHUNK_SEPARATOR = "\n\n"
