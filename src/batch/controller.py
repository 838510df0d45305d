# src/batch/controller.py - v1
"""Batch controller: the outward-facing start/skip/complete contract.

``start_batch`` never raises for per-item problems. It returns a
BatchRunResult whose ``outcome`` tells the caller what happened:

  - ``already_running``: a run is in progress; nothing was started
  - ``config_required``: the transcription credential is missing; the
    configuration-needed callback was fired and nothing was started
  - ``no_pending``: every item is already completed
  - ``completed``: the pool ran and joined (``stopped`` if a stop was
    requested before all items were claimed)
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import TYPE_CHECKING, Callable, Literal

from pydantic import BaseModel, Field

from scribbledoc.batch.constants import CONCURRENCY_LIMIT, PLACEHOLDER_TEXT
from scribbledoc.batch.pool import WorkerPool
from scribbledoc.batch.reassembler import OrderedReassembler, join_chunks
from scribbledoc.core.errors import BatchInProgressError
from scribbledoc.core.models import OCRConfig
from scribbledoc.logging.context import clear_context, set_run_context

if TYPE_CHECKING:
    from scribbledoc.batch.store import ItemStore
    from scribbledoc.transcription.base_transcriber import TranscriptionPort

logger = logging.getLogger(__name__)

RunOutcome = Literal["completed", "stopped", "no_pending", "already_running", "config_required"]
OutputListener = Callable[[str], None]


class BatchRunResult(BaseModel):
    """Summary of one start_batch() invocation."""

    run_id: str = ""
    outcome: RunOutcome
    pending_indices: list[int] = Field(default_factory=list)
    # Completed items left out of the output text because a stop sealed the
    # run before the gap in front of them was filled. They reappear once a
    # later run fills the gap.
    omitted_indices: list[int] = Field(default_factory=list)
    dispatched: int = 0
    completed: int = 0
    failed: int = 0
    duration_ms: int = 0

    @property
    def started(self) -> bool:
        return self.outcome in ("completed", "stopped")


class BatchController:
    """Orchestrates batch runs over an ItemStore.

    Args:
        store: Items to process; ingestion happens outside the controller.
        transcriber: Transcription backend.
        config: Default OCRConfig snapshot for runs.
        on_config_required: Called when a run is refused for missing
            credentials.
        on_output: Called with the full output text each time it grows.
        concurrency: Worker ceiling (CONCURRENCY_LIMIT).
    """

    def __init__(
        self,
        store: ItemStore,
        transcriber: TranscriptionPort,
        config: OCRConfig | None = None,
        on_config_required: Callable[[], None] | None = None,
        on_output: OutputListener | None = None,
        concurrency: int = CONCURRENCY_LIMIT,
        placeholder: str = PLACEHOLDER_TEXT,
    ) -> None:
        self._store = store
        self._transcriber = transcriber
        self._config = config or OCRConfig()
        self._on_config_required = on_config_required
        self._output_listeners: list[OutputListener] = []
        if on_output is not None:
            self._output_listeners.append(on_output)
        self._concurrency = concurrency
        self._placeholder = placeholder
        self._output_text = ""
        self._output_edited = False
        self._running = False
        self._pool: WorkerPool | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def output_text(self) -> str:
        """Output text assembled so far, including partial output mid-run."""
        return self._output_text

    @property
    def config(self) -> OCRConfig:
        return self._config

    @config.setter
    def config(self, value: OCRConfig) -> None:
        # A running batch keeps the snapshot it started with.
        self._config = value

    def add_output_listener(self, listener: OutputListener) -> None:
        self._output_listeners.append(listener)

    @property
    def output_edited(self) -> bool:
        """True once the caller replaced the output text since the last reset."""
        return self._output_edited

    def set_output_text(self, text: str) -> None:
        """Replace the output text with a caller edit (only between runs).

        Later runs keep the edited text and append their new chunks to it
        in index order; they no longer rebuild the text from item results.
        """
        if self._running:
            raise BatchInProgressError("Cannot edit output while a batch run is active")
        self._output_text = text
        self._output_edited = True

    def reset_output(self) -> None:
        """Drop the assembled output text (only between runs)."""
        if self._running:
            raise BatchInProgressError("Cannot reset output while a batch run is active")
        self._output_text = ""
        self._output_edited = False

    def request_stop(self) -> bool:
        """Ask the active run to stop claiming new items.

        Returns False when no run is active.
        """
        if not self._running or self._pool is None:
            return False
        logger.info("Stop requested; in-flight items will finish")
        self._pool.request_stop()
        return True

    async def start_batch(self, config: OCRConfig | None = None) -> BatchRunResult:
        """Run every non-completed item through the pool and await the join."""
        if self._running:
            logger.warning("start_batch ignored: a run is already in progress")
            return BatchRunResult(outcome="already_running")

        if self._transcriber.requires_credentials and not self._transcriber.has_credentials:
            logger.warning("start_batch refused: transcription credential is not configured")
            if self._on_config_required is not None:
                self._on_config_required()
            return BatchRunResult(outcome="config_required")

        self._running = True
        run_id = uuid.uuid4().hex[:12]
        start_ns = time.monotonic_ns()
        try:
            with self._store.run_guard():
                return await self._run(run_id, config or self._config, start_ns)
        finally:
            self._pool = None
            self._running = False
            clear_context()

    async def _run(self, run_id: str, config: OCRConfig, start_ns: int) -> BatchRunResult:
        pending = self._store.pending_indices()
        if not pending:
            logger.info("No pending items; batch run %s is a no-op", run_id)
            return BatchRunResult(run_id=run_id, outcome="no_pending")

        set_run_context(run_id)
        logger.info(
            "Batch run %s: %d pending of %d item(s), first pending index %d",
            run_id, len(pending), len(self._store), pending[0],
        )

        items = self._store.items
        if self._output_edited:
            # The caller owns the text: keep it and append this run's chunks.
            prefix = self._output_text
            carried: dict[int, str] = {}
        else:
            # Everything before the first pending index is completed; rebuild
            # that prefix from the items so stale placeholders of retried
            # items vanish.
            first = pending[0]
            prefix = join_chunks(item.result_text or "" for item in items[:first])
            carried = {
                i: items[i].result_text or ""
                for i in range(first + 1, len(items))
                if items[i].status == "completed"
            }
            if prefix != self._output_text:
                self._handle_flush("", prefix)

        reassembler = OrderedReassembler(
            sorted(set(pending) | set(carried)),
            initial_text=prefix,
            preloaded=carried,
            on_flush=self._handle_flush,
        )
        self._pool = WorkerPool(
            store=self._store,
            transcriber=self._transcriber,
            reassembler=reassembler,
            config=config,
            concurrency=self._concurrency,
            placeholder=self._placeholder,
        )
        stats = await self._pool.run(pending)

        stopped = self._pool.claimed < len(pending)
        omitted: list[int] = []
        if stopped:
            dropped = reassembler.seal(pending[self._pool.claimed])
            omitted = [i for i in dropped if i in carried]
            logger.info(
                "Batch run %s stopped after %d of %d item(s)",
                run_id, self._pool.claimed, len(pending),
            )
            if omitted:
                logger.warning(
                    "Completed item(s) %s are not in the output until a later run "
                    "fills the gap before them", omitted,
                )

        if not reassembler.is_complete:
            raise RuntimeError(
                f"Reassembly incomplete after join: frontier={reassembler.frontier}, "
                f"buffered={sorted(reassembler.buffered)}"
            )

        duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000
        logger.info(
            "Batch run %s finished: completed=%d, failed=%d, %dms",
            run_id, stats.completed, stats.failed, duration_ms,
        )
        return BatchRunResult(
            run_id=run_id,
            outcome="stopped" if stopped else "completed",
            pending_indices=pending,
            omitted_indices=omitted,
            dispatched=stats.dispatched,
            completed=stats.completed,
            failed=stats.failed,
            duration_ms=duration_ms,
        )

    def _handle_flush(self, fragment: str, full_text: str) -> None:
        self._output_text = full_text
        for listener in list(self._output_listeners):
            try:
                listener(full_text)
            except Exception:
                logger.exception("Output listener failed")
