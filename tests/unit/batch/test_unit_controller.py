# tests/unit/batch/test_unit_controller.py - v1
"""Tests for batch/controller.py: run outcomes, output assembly, re-runs."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from scribbledoc.batch.constants import PLACEHOLDER_TEXT
from scribbledoc.batch.controller import BatchController, BatchRunResult
from scribbledoc.core.errors import BatchInProgressError, TranscriptionError
from scribbledoc.core.models import OCRConfig

A, B, C, D, E, F = (f"img-{c}".encode() for c in "ABCDEF")


def _texts(*images: bytes) -> dict[bytes, str | Exception]:
    return {img: img.decode()[-1] for img in images}


class TestStartBatch:
    @pytest.mark.asyncio
    async def test_all_items_completed_in_order(self, make_store, make_transcriber):
        store = make_store([A, B, C])
        controller = BatchController(store, make_transcriber(_texts(A, B, C)))

        result = await controller.start_batch()

        assert result.outcome == "completed"
        assert result.started is True
        assert result.pending_indices == [0, 1, 2]
        assert result.completed == 3
        assert result.failed == 0
        assert result.run_id
        assert controller.output_text == "A\n\nB\n\nC"
        assert store.all_completed
        assert controller.is_running is False

    @pytest.mark.asyncio
    async def test_partial_failure(self, make_store, make_transcriber, transcription_failure):
        store = make_store([A, B, C])
        script = _texts(A, C)
        script[B] = transcription_failure
        controller = BatchController(store, make_transcriber(script))

        result = await controller.start_batch()

        assert result.outcome == "completed"
        assert result.failed == 1
        assert store.statuses() == ["completed", "error", "completed"]
        assert store[1].result_text == PLACEHOLDER_TEXT
        assert controller.output_text == f"A\n\n{PLACEHOLDER_TEXT}\n\nC"

    @pytest.mark.asyncio
    async def test_every_item_fails(self, make_store, make_transcriber):
        store = make_store([A, B])
        transcriber = make_transcriber({A: TranscriptionError("x"), B: TranscriptionError("y")})
        controller = BatchController(store, transcriber)

        result = await controller.start_batch()

        assert result.outcome == "completed"
        assert result.failed == 2
        assert controller.output_text == f"{PLACEHOLDER_TEXT}\n\n{PLACEHOLDER_TEXT}"

    @pytest.mark.asyncio
    async def test_empty_transcript_adds_no_separator(self, make_store, make_transcriber):
        store = make_store([A, B, C])
        controller = BatchController(store, make_transcriber({A: "A", B: "", C: "C"}))
        await controller.start_batch()
        assert controller.output_text == "A\n\nC"

    @pytest.mark.asyncio
    async def test_empty_store_is_no_pending(self, make_store, make_transcriber):
        controller = BatchController(make_store([]), make_transcriber({}))
        result = await controller.start_batch()
        assert result.outcome == "no_pending"
        assert result.started is False

    @pytest.mark.asyncio
    async def test_rerun_when_all_completed_is_a_noop(self, make_store, make_transcriber):
        store = make_store([A, B])
        transcriber = make_transcriber(_texts(A, B))
        controller = BatchController(store, transcriber)
        await controller.start_batch()
        calls_before = list(transcriber.calls)

        result = await controller.start_batch()

        assert result.outcome == "no_pending"
        assert transcriber.calls == calls_before
        assert controller.output_text == "A\n\nB"

    @pytest.mark.asyncio
    async def test_config_required(self, make_store, make_transcriber):
        store = make_store([A])
        transcriber = make_transcriber(_texts(A), credentials=False)
        callback = MagicMock()
        controller = BatchController(store, transcriber, on_config_required=callback)

        result = await controller.start_batch()

        assert result.outcome == "config_required"
        callback.assert_called_once_with()
        assert transcriber.calls == []
        assert store.statuses() == ["pending"]
        assert controller.is_running is False

    @pytest.mark.asyncio
    async def test_already_running(self, make_store, make_transcriber, settle_loop):
        store = make_store([A, B])
        transcriber = make_transcriber(_texts(A, B), gated=True)
        controller = BatchController(store, transcriber)

        first = asyncio.create_task(controller.start_batch())
        await settle_loop()
        assert controller.is_running

        second = await controller.start_batch()
        assert second.outcome == "already_running"

        transcriber.release_all()
        result = await first
        assert result.outcome == "completed"
        assert transcriber.calls.count(A) == 1
        assert transcriber.calls.count(B) == 1

    @pytest.mark.asyncio
    async def test_config_snapshot_passed_to_every_call(self, make_store, make_transcriber):
        store = make_store([A, B])
        transcriber = make_transcriber(_texts(A, B))
        controller = BatchController(store, transcriber, config=OCRConfig(language="deu"))

        await controller.start_batch()
        assert [c.language for c in transcriber.configs] == ["deu", "deu"]

        store.add_image(C)
        transcriber.script[C] = "C"
        await controller.start_batch(config=OCRConfig(language="fra"))
        assert transcriber.configs[-1].language == "fra"


class TestOutputDuringRun:
    @pytest.mark.asyncio
    async def test_partial_output_respects_order(self, make_store, make_transcriber, settle_loop):
        store = make_store([A, B, C])
        transcriber = make_transcriber(_texts(A, B, C), gated=True)
        seen: list[str] = []
        controller = BatchController(store, transcriber, on_output=seen.append)

        task = asyncio.create_task(controller.start_batch())
        await settle_loop()

        transcriber.release(B)
        await settle_loop()
        assert store[1].status == "completed"
        assert controller.output_text == ""

        transcriber.release(A)
        await settle_loop()
        assert controller.output_text == "A\n\nB"

        transcriber.release(C)
        await task
        assert controller.output_text == "A\n\nB\n\nC"
        assert seen == ["A\n\nB", "A\n\nB\n\nC"]

    @pytest.mark.asyncio
    async def test_store_locked_during_run(self, make_store, make_transcriber, settle_loop):
        store = make_store([A])
        transcriber = make_transcriber(_texts(A), gated=True)
        controller = BatchController(store, transcriber)

        task = asyncio.create_task(controller.start_batch())
        await settle_loop()
        with pytest.raises(BatchInProgressError):
            store.remove(store[0].id)
        with pytest.raises(BatchInProgressError):
            controller.reset_output()

        transcriber.release_all()
        await task
        assert store.run_active is False

    @pytest.mark.asyncio
    async def test_failing_output_listener_is_contained(self, make_store, make_transcriber):
        store = make_store([A])

        def _boom(text: str) -> None:
            raise RuntimeError("listener bug")

        controller = BatchController(store, make_transcriber(_texts(A)), on_output=_boom)
        result = await controller.start_batch()
        assert result.outcome == "completed"
        assert controller.output_text == "A"

    @pytest.mark.asyncio
    async def test_item_added_mid_run_waits_for_next_run(
        self, make_store, make_transcriber, settle_loop,
    ):
        store = make_store([A, B])
        transcriber = make_transcriber(_texts(A, B, C), gated=True)
        controller = BatchController(store, transcriber)

        task = asyncio.create_task(controller.start_batch())
        await settle_loop()
        store.add_image(C)
        transcriber.release_all()
        first = await task

        assert first.pending_indices == [0, 1]
        assert store[2].status == "pending"
        assert controller.output_text == "A\n\nB"

        second = await controller.start_batch()
        assert second.pending_indices == [2]
        assert controller.output_text == "A\n\nB\n\nC"


class TestRerun:
    @pytest.mark.asyncio
    async def test_retry_replaces_placeholder_in_place(self, make_store, make_transcriber):
        store = make_store([A, B, C])
        script = _texts(A, C)
        script[B] = TranscriptionError("flaky")
        transcriber = make_transcriber(script)
        controller = BatchController(store, transcriber)
        await controller.start_batch()
        assert controller.output_text == f"A\n\n{PLACEHOLDER_TEXT}\n\nC"

        transcriber.script[B] = "B"
        result = await controller.start_batch()

        assert result.pending_indices == [1]
        assert controller.output_text == "A\n\nB\n\nC"
        assert transcriber.calls.count(A) == 1
        assert transcriber.calls.count(C) == 1

    @pytest.mark.asyncio
    async def test_frontier_walks_over_completed_gaps(self, make_store, make_transcriber):
        store = make_store([A, B, C, D, E])
        script = _texts(A, C, E)
        script[B] = TranscriptionError("b")
        script[D] = TranscriptionError("d")
        transcriber = make_transcriber(script)
        controller = BatchController(store, transcriber)
        await controller.start_batch()

        transcriber.script.update(_texts(B, D))
        result = await controller.start_batch()

        assert result.outcome == "completed"
        assert result.pending_indices == [1, 3]
        assert controller.output_text == "A\n\nB\n\nC\n\nD\n\nE"

    @pytest.mark.asyncio
    async def test_retry_of_first_item_rebuilds_output(self, make_store, make_transcriber):
        store = make_store([A, B])
        transcriber = make_transcriber({A: TranscriptionError("a"), B: "B"})
        seen: list[str] = []
        controller = BatchController(store, transcriber, on_output=seen.append)
        await controller.start_batch()
        assert controller.output_text == f"{PLACEHOLDER_TEXT}\n\nB"

        transcriber.script[A] = "A"
        await controller.start_batch()

        assert controller.output_text == "A\n\nB"
        assert seen[-2:] == ["", "A\n\nB"]

    @pytest.mark.asyncio
    async def test_rerun_after_reset_output(self, make_store, make_transcriber):
        store = make_store([A, B])
        transcriber = make_transcriber({A: "A", B: TranscriptionError("b")})
        controller = BatchController(store, transcriber)
        await controller.start_batch()

        controller.reset_output()
        assert controller.output_text == ""

        transcriber.script[B] = "B"
        await controller.start_batch()
        assert controller.output_text == "A\n\nB"


class TestEditedOutput:
    @pytest.mark.asyncio
    async def test_edit_replaces_output(self, make_store, make_transcriber):
        store = make_store([A, B])
        controller = BatchController(store, make_transcriber(_texts(A, B)))
        await controller.start_batch()
        assert controller.output_edited is False

        controller.set_output_text("A fixed\n\nB")

        assert controller.output_text == "A fixed\n\nB"
        assert controller.output_edited is True

    @pytest.mark.asyncio
    async def test_later_run_appends_to_edited_text(self, make_store, make_transcriber):
        store = make_store([A, B])
        transcriber = make_transcriber(_texts(A, B, C))
        controller = BatchController(store, transcriber)
        await controller.start_batch()
        controller.set_output_text("edited")

        store.add_image(C)
        result = await controller.start_batch()

        assert result.pending_indices == [2]
        assert controller.output_text == "edited\n\nC"

    @pytest.mark.asyncio
    async def test_retry_after_edit_appends_instead_of_rebuilding(
        self, make_store, make_transcriber
    ):
        store = make_store([A, B, C])
        script = _texts(A, C)
        script[B] = TranscriptionError("b")
        transcriber = make_transcriber(script)
        controller = BatchController(store, transcriber)
        await controller.start_batch()
        controller.set_output_text("A\n\nC")

        transcriber.script[B] = "B"
        await controller.start_batch()

        assert controller.output_text == "A\n\nC\n\nB"
        assert transcriber.calls.count(C) == 1

    @pytest.mark.asyncio
    async def test_edit_refused_during_run(self, make_store, make_transcriber, settle_loop):
        store = make_store([A])
        transcriber = make_transcriber(_texts(A), gated=True)
        controller = BatchController(store, transcriber)

        task = asyncio.create_task(controller.start_batch())
        await settle_loop()
        with pytest.raises(BatchInProgressError):
            controller.set_output_text("nope")
        transcriber.release_all()
        await task

        assert controller.output_text == "A"
        assert controller.output_edited is False

    @pytest.mark.asyncio
    async def test_reset_output_returns_to_rebuild(self, make_store, make_transcriber):
        store = make_store([A, B])
        transcriber = make_transcriber({A: "A", B: TranscriptionError("b")})
        controller = BatchController(store, transcriber)
        await controller.start_batch()
        controller.set_output_text("scratch")

        controller.reset_output()
        assert controller.output_edited is False

        transcriber.script[B] = "B"
        await controller.start_batch()
        assert controller.output_text == "A\n\nB"


class TestStop:
    def test_request_stop_when_idle(self, make_store, make_transcriber):
        controller = BatchController(make_store([]), make_transcriber({}))
        assert controller.request_stop() is False

    @pytest.mark.asyncio
    async def test_stop_then_resume(self, make_store, make_transcriber, settle_loop):
        images = [A, B, C, D, E, F]
        store = make_store(images)
        transcriber = make_transcriber(_texts(*images), gated=True)
        controller = BatchController(store, transcriber)

        task = asyncio.create_task(controller.start_batch())
        await settle_loop()
        assert controller.request_stop() is True
        transcriber.release_all()
        stopped = await task

        assert stopped.outcome == "stopped"
        assert stopped.started is True
        assert stopped.dispatched == 3
        assert store.statuses() == ["completed"] * 3 + ["pending"] * 3
        assert controller.output_text == "A\n\nB\n\nC"

        resumed = await controller.start_batch()
        assert resumed.outcome == "completed"
        assert resumed.pending_indices == [3, 4, 5]
        assert controller.output_text == "A\n\nB\n\nC\n\nD\n\nE\n\nF"

    @pytest.mark.asyncio
    async def test_stop_leaves_completed_item_after_gap_out(
        self, make_store, make_transcriber, settle_loop
    ):
        images = [A, B, C, D, E, F]
        store = make_store(images)
        script = _texts(A, F)
        script.update({img: TranscriptionError("x") for img in (B, C, D, E)})
        transcriber = make_transcriber(script)
        controller = BatchController(store, transcriber)
        await controller.start_batch()

        transcriber.script.update(_texts(B, C, D, E))
        transcriber.gated = True
        task = asyncio.create_task(controller.start_batch())
        await settle_loop()
        controller.request_stop()
        transcriber.release_all()
        stopped = await task

        assert stopped.outcome == "stopped"
        assert stopped.pending_indices == [1, 2, 3, 4]
        assert stopped.omitted_indices == [5]
        assert controller.output_text == "A\n\nB\n\nC\n\nD"
        assert store[5].status == "completed"

        resumed = await controller.start_batch()
        assert resumed.omitted_indices == []
        assert controller.output_text == "A\n\nB\n\nC\n\nD\n\nE\n\nF"


class TestBatchRunResult:
    def test_started_flag(self):
        assert BatchRunResult(outcome="completed").started
        assert BatchRunResult(outcome="stopped").started
        assert not BatchRunResult(outcome="config_required").started
        assert not BatchRunResult(outcome="already_running").started
