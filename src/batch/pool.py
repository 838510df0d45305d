# src/batch/pool.py - v1
"""Bounded worker pool draining a shared claim cursor.

Runs min(concurrency, len(pending)) workers. Each worker repeatedly claims
the next pending index, transcribes that item, and publishes the outcome to
the reassembler until the cursor is exhausted.

Per claimed item:
  1. pending -> processing, progress reset to 0
  2. transcribe, forwarding progress into the item store
  3. success -> completed, publish (index, text)
  4. failure -> error, publish (index, PLACEHOLDER_TEXT)
  5. the publish runs in ``finally``: exactly once per claimed item
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

from scribbledoc.batch.constants import CONCURRENCY_LIMIT, PLACEHOLDER_TEXT
from scribbledoc.core.errors import TranscriptionError
from scribbledoc.logging.context import set_item_context

if TYPE_CHECKING:
    from scribbledoc.batch.reassembler import OrderedReassembler
    from scribbledoc.batch.store import ItemStore
    from scribbledoc.core.models import OCRConfig
    from scribbledoc.transcription.base_transcriber import TranscriptionPort

logger = logging.getLogger(__name__)


class ClaimCursor:
    """Shared pointer into the pending indices.

    ``claim`` is serialized by a lock, so every index is handed to exactly
    one worker and none is skipped, whether workers are coroutines or
    threads.
    """

    def __init__(self, indices: Sequence[int]) -> None:
        self._indices = list(indices)
        self._pointer = 0
        self._stopped = False
        self._lock = threading.Lock()

    def claim(self) -> int | None:
        """Reserve the next index, or None when exhausted or stopped."""
        with self._lock:
            if self._stopped or self._pointer >= len(self._indices):
                return None
            index = self._indices[self._pointer]
            self._pointer += 1
            return index

    def stop(self) -> None:
        """Stop handing out indices. Already claimed items are unaffected."""
        with self._lock:
            self._stopped = True

    @property
    def claimed(self) -> int:
        """Number of indices handed out so far."""
        return self._pointer

    @property
    def stopped(self) -> bool:
        return self._stopped


@dataclass
class PoolStats:
    """Counters collected during one pool run."""

    workers: int = 0
    dispatched: int = 0
    completed: int = 0
    failed: int = 0
    max_in_flight: int = 0
    claims_by_worker: dict[int, list[int]] = field(default_factory=dict)
    duration_ms: int = 0


class WorkerPool:
    """Fixed-size pool of async workers over one batch run.

    Args:
        store: Item store holding the batch items.
        transcriber: Transcription backend.
        reassembler: Receives every claimed item's outcome exactly once.
        config: OCR configuration snapshot passed to every call.
        concurrency: Maximum number of workers (CONCURRENCY_LIMIT).
        placeholder: Chunk published for a failed item.
    """

    def __init__(
        self,
        store: ItemStore,
        transcriber: TranscriptionPort,
        reassembler: OrderedReassembler,
        config: OCRConfig,
        concurrency: int = CONCURRENCY_LIMIT,
        placeholder: str = PLACEHOLDER_TEXT,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._store = store
        self._transcriber = transcriber
        self._reassembler = reassembler
        self._config = config
        self._concurrency = concurrency
        self._placeholder = placeholder
        self._cursor: ClaimCursor | None = None
        self._in_flight = 0
        self._stats = PoolStats()

    @property
    def stats(self) -> PoolStats:
        return self._stats

    @property
    def claimed(self) -> int:
        return self._cursor.claimed if self._cursor is not None else 0

    def request_stop(self) -> None:
        """Stop claiming new items; in-flight items still finish."""
        if self._cursor is not None:
            self._cursor.stop()

    async def run(self, pending_indices: Sequence[int]) -> PoolStats:
        """Process all pending indices and return once every worker joined."""
        start_ns = time.monotonic_ns()
        self._cursor = ClaimCursor(pending_indices)
        self._stats = PoolStats(workers=min(self._concurrency, len(pending_indices)))

        logger.info(
            "Starting %d worker(s) for %d pending item(s)",
            self._stats.workers, len(pending_indices),
        )
        await asyncio.gather(
            *(self._worker(worker_id) for worker_id in range(self._stats.workers))
        )

        self._stats.duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000
        logger.info(
            "Worker pool joined: dispatched=%d, completed=%d, failed=%d, %dms",
            self._stats.dispatched,
            self._stats.completed,
            self._stats.failed,
            self._stats.duration_ms,
        )
        return self._stats

    async def _worker(self, worker_id: int) -> None:
        assert self._cursor is not None
        claims = self._stats.claims_by_worker.setdefault(worker_id, [])
        while True:
            index = self._cursor.claim()
            if index is None:
                break
            claims.append(index)
            self._stats.dispatched += 1
            await self._process(index)
        logger.debug("Worker %d finished after %d item(s)", worker_id, len(claims))

    async def _process(self, index: int) -> None:
        item = self._store[index]
        set_item_context(item.id, step="transcribe")
        chunk = self._placeholder

        self._store.mark_processing(index)
        self._in_flight += 1
        self._stats.max_in_flight = max(self._stats.max_in_flight, self._in_flight)

        try:
            text = await self._transcriber.transcribe(
                item.source_image,
                self._config,
                lambda progress: self._store.set_progress(index, progress),
            )
            if not isinstance(text, str):
                raise TranscriptionError(
                    f"Transcriber returned {type(text).__name__}, expected str"
                )
            self._store.mark_completed(index, text)
            chunk = text
            self._stats.completed += 1
            logger.info("Item %d (%s) completed: %d chars", index, item.id, len(text))
        except Exception as exc:
            logger.error("Error processing item %d (%s): %s", index, item.id, exc)
            self._store.mark_error(index, self._placeholder, str(exc) or type(exc).__name__)
            self._stats.failed += 1
        finally:
            self._in_flight -= 1
            self._reassembler.publish(index, chunk)
