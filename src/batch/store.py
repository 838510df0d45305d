# src/batch/store.py - v1
"""Item store: ordered, append-only collection of BatchItem.

Items are addressed by list index (the order of ingestion) or by id. Every
mutation is a point update on a single item followed by an ItemEvent sent
to subscribers; the list itself is never replaced or reordered.

Removal and clearing are caller operations outside the pipeline and are
refused while a batch run holds the store.
"""

from __future__ import annotations

import logging
from collections import Counter
from contextlib import contextmanager
from typing import Callable, Iterator

from scribbledoc.core.errors import BatchInProgressError, ItemNotFoundError
from scribbledoc.core.models import BatchItem, ItemEvent

logger = logging.getLogger(__name__)

ItemListener = Callable[[ItemEvent], None]


class ItemStore:
    """Ordered batch items with index-addressed point updates."""

    def __init__(self) -> None:
        self._items: list[BatchItem] = []
        self._index_by_id: dict[str, int] = {}
        self._listeners: list[ItemListener] = []
        self._run_active = False

    # --- Read access ---

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[BatchItem]:
        return iter(list(self._items))

    def __getitem__(self, index: int) -> BatchItem:
        return self._items[index]

    @property
    def items(self) -> list[BatchItem]:
        """Shallow copy of the item list in ingestion order."""
        return list(self._items)

    @property
    def run_active(self) -> bool:
        return self._run_active

    def get(self, item_id: str) -> BatchItem:
        return self._items[self.index_of(item_id)]

    def index_of(self, item_id: str) -> int:
        try:
            return self._index_by_id[item_id]
        except KeyError:
            raise ItemNotFoundError(f"No batch item with id {item_id!r}") from None

    def statuses(self) -> list[str]:
        return [item.status for item in self._items]

    def pending_indices(self) -> list[int]:
        """Indices of every item not already completed, in ascending order."""
        return [i for i, item in enumerate(self._items) if item.status != "completed"]

    def counts(self) -> dict[str, int]:
        """Number of items per status (all four statuses always present)."""
        counter = Counter(item.status for item in self._items)
        return {
            status: counter.get(status, 0)
            for status in ("pending", "processing", "completed", "error")
        }

    @property
    def all_completed(self) -> bool:
        return bool(self._items) and all(
            item.status == "completed" for item in self._items
        )

    # --- Ingestion ---

    def append(self, item: BatchItem) -> int:
        """Append an item at index len(store). Returns its index."""
        if item.id in self._index_by_id:
            raise ValueError(f"Duplicate batch item id: {item.id!r}")
        index = len(self._items)
        self._items.append(item)
        self._index_by_id[item.id] = index
        self._emit(ItemEvent(kind="added", index=index, item_id=item.id, status=item.status))
        return index

    def add_image(
        self,
        data: bytes,
        filename: str = "",
        media_type: str = "image/jpeg",
    ) -> BatchItem:
        """Create a pending item for raw image bytes and append it."""
        if not data:
            raise ValueError("Image data is empty")
        item = BatchItem(source_image=data, filename=filename, media_type=media_type)
        self.append(item)
        return item

    # --- Point updates (called by the single worker owning the item) ---

    def mark_processing(self, index: int) -> None:
        item = self._items[index]
        item.status = "processing"
        item.progress = 0.0
        item.result_text = None
        item.error_message = None
        self._emit_update(index, item)

    def set_progress(self, index: int, progress: float) -> None:
        """Record progress for a processing item.

        Values are clamped to [0, 1]; a value lower than the current one is
        ignored so progress never decreases during processing.
        """
        item = self._items[index]
        if item.status != "processing":
            logger.debug("Ignoring progress for item %s in status %s", item.id, item.status)
            return
        value = min(1.0, max(0.0, float(progress)))
        if value <= item.progress:
            return
        item.progress = value
        self._emit_update(index, item)

    def mark_completed(self, index: int, text: str) -> None:
        item = self._items[index]
        item.result_text = text
        item.progress = 1.0
        item.status = "completed"
        self._emit_update(index, item)

    def mark_error(self, index: int, placeholder: str, message: str) -> None:
        item = self._items[index]
        item.result_text = placeholder
        item.error_message = message
        item.status = "error"
        self._emit_update(index, item)

    # --- Caller operations outside a run ---

    def remove(self, item_id: str) -> BatchItem:
        """Delete one item. Indices of later items shift down by one."""
        self._ensure_idle("remove")
        index = self.index_of(item_id)
        item = self._items.pop(index)
        self._reindex()
        self._emit(ItemEvent(kind="removed", index=index, item_id=item.id))
        return item

    def clear(self) -> None:
        self._ensure_idle("clear")
        self._items.clear()
        self._index_by_id.clear()
        self._emit(ItemEvent(kind="cleared"))

    def reset_failed(self) -> list[int]:
        """Move every errored item back to pending. Returns their indices."""
        self._ensure_idle("reset failed items")
        reset: list[int] = []
        for index, item in enumerate(self._items):
            if item.status != "error":
                continue
            item.status = "pending"
            item.progress = 0.0
            item.result_text = None
            item.error_message = None
            reset.append(index)
            self._emit_update(index, item)
        if reset:
            logger.info("Reset %d failed item(s) to pending", len(reset))
        return reset

    @contextmanager
    def run_guard(self) -> Iterator[None]:
        """Hold the store for the duration of a batch run."""
        if self._run_active:
            raise BatchInProgressError("A batch run already holds the item store")
        self._run_active = True
        try:
            yield
        finally:
            self._run_active = False

    # --- Notifications ---

    def subscribe(self, listener: ItemListener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit_update(self, index: int, item: BatchItem) -> None:
        self._emit(
            ItemEvent(
                kind="updated",
                index=index,
                item_id=item.id,
                status=item.status,
                progress=item.progress,
            )
        )

    def _emit(self, event: ItemEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Item listener failed on %s event", event.kind)

    def _ensure_idle(self, action: str) -> None:
        if self._run_active:
            raise BatchInProgressError(f"Cannot {action} while a batch run is active")

    def _reindex(self) -> None:
        self._index_by_id = {item.id: i for i, item in enumerate(self._items)}
