# src/storage/base_output_writer.py - v1
"""Abstract output writer interface for exported artefacts."""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseOutputWriter(ABC):
    """Unified interface for output storage backends."""

    @abstractmethod
    async def write(self, path: str, content: bytes | str) -> str:
        """Write content to the given path. Returns the resolved location."""
