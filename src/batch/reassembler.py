# src/batch/reassembler.py - v1
"""Ordered reassembler: turns out-of-order completions into ordered text.

Workers publish ``(index, text)`` pairs in whatever order their calls
settle. The reassembler buffers them and, whenever the entry at the
frontier is present, flushes the contiguous run into the output text.

The frontier walks the run's expected indices, not every integer: items
outside the run are never published and must not hold the frontier back.
Results already known at run start (items completed by an earlier run that
sit after the first pending index) are preloaded so they flush in place.

Separator rule: CHUNK_SEPARATOR goes between two non-empty chunks only.
Empty chunks are dropped from the text but still advance the frontier.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable, Mapping, Sequence

from scribbledoc.batch.constants import CHUNK_SEPARATOR

logger = logging.getLogger(__name__)

FlushListener = Callable[[str, str], None]


def join_chunks(chunks: Iterable[str], initial_text: str = "") -> str:
    """Concatenate chunks with the same separator rule as the reassembler."""
    text = initial_text
    for chunk in chunks:
        if not chunk:
            continue
        text = f"{text}{CHUNK_SEPARATOR}{chunk}" if text else chunk
    return text


class OrderedReassembler:
    """Reordering buffer keyed by original item index.

    Args:
        expected_indices: Indices whose text belongs to this run's output,
            strictly increasing.
        initial_text: Text that precedes the first expected index.
        preloaded: Results known before the run starts (subset of
            ``expected_indices``); they are never published by workers.
        on_flush: Called as ``on_flush(fragment, full_text)`` each time the
            output text grows. Must not publish re-entrantly.
    """

    def __init__(
        self,
        expected_indices: Sequence[int],
        initial_text: str = "",
        preloaded: Mapping[int, str] | None = None,
        on_flush: FlushListener | None = None,
    ) -> None:
        expected = list(expected_indices)
        if any(b <= a for a, b in zip(expected, expected[1:])):
            raise ValueError("expected_indices must be strictly increasing")
        self._expected = expected
        self._rank = {index: pos for pos, index in enumerate(expected)}
        self._position = 0
        self._buffer: dict[int, str] = {}
        self._preloaded: set[int] = set()
        self._text = initial_text
        self._flushed: list[int] = []
        self._on_flush = on_flush
        self._lock = threading.Lock()

        for index, text in (preloaded or {}).items():
            if index not in self._rank:
                raise ValueError(f"Preloaded index {index} is not expected")
            self._buffer[index] = text
            self._preloaded.add(index)

    @property
    def text(self) -> str:
        return self._text

    @property
    def frontier(self) -> int:
        """Smallest expected index not yet flushed.

        Once every expected index is flushed this is one past the last one.
        """
        if self._position < len(self._expected):
            return self._expected[self._position]
        if self._expected:
            return self._expected[-1] + 1
        return 0

    @property
    def buffered(self) -> dict[int, str]:
        """Copy of results waiting for the frontier."""
        with self._lock:
            return dict(self._buffer)

    @property
    def flushed_indices(self) -> list[int]:
        return list(self._flushed)

    @property
    def is_complete(self) -> bool:
        return self._position >= len(self._expected) and not self._buffer

    def publish(self, index: int, text: str) -> str:
        """Accept one result and flush whatever became contiguous.

        Returns:
            The fragment appended to the output text by this call (empty
            when the result was buffered or the chunk was empty).

        Raises:
            ValueError: If the index is not expected or was already published.
        """
        with self._lock:
            rank = self._rank.get(index)
            if rank is None:
                raise ValueError(f"Index {index} is not part of this run")
            if index in self._buffer or rank < self._position:
                raise ValueError(f"Index {index} was already published")

            self._buffer[index] = text
            fragment = self._drain()
            if fragment and self._on_flush is not None:
                self._on_flush(fragment, self._text)

        if not fragment:
            logger.debug("Buffered index %d (frontier=%d)", index, self.frontier)
        return fragment

    def seal(self, before_index: int) -> list[int]:
        """Stop expecting any index >= ``before_index``.

        Used when a run stops claiming early: unclaimed indices will never
        be published, and preloaded results after them cannot be flushed
        without skipping a gap, so both are dropped.

        Returns:
            The dropped indices.

        Raises:
            ValueError: If a dropped index was already flushed or published
                by a worker.
        """
        with self._lock:
            keep = [i for i in self._expected if i < before_index]
            dropped = self._expected[len(keep):]
            if len(keep) < self._position:
                raise ValueError("Cannot seal below the flushed frontier")
            published = [i for i in dropped if i in self._buffer and i not in self._preloaded]
            if published:
                raise ValueError(f"Cannot drop published indices: {published}")
            for index in dropped:
                self._buffer.pop(index, None)
                self._preloaded.discard(index)
                del self._rank[index]
            self._expected = keep
            return dropped

    def _drain(self) -> str:
        parts: list[str] = []
        while self._position < len(self._expected):
            current = self._expected[self._position]
            if current not in self._buffer:
                break
            chunk = self._buffer.pop(current)
            self._preloaded.discard(current)
            if chunk:
                if self._text:
                    parts.append(CHUNK_SEPARATOR)
                    self._text += CHUNK_SEPARATOR
                parts.append(chunk)
                self._text += chunk
            self._flushed.append(current)
            self._position += 1
        return "".join(parts)
