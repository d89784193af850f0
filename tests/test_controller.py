"""Tests for the StreamingController state machine.

Covers the session lifecycle end to end with scripted sources: debounced
preview, pause/resume (both clock-driven and push sources), stop and
supersede semantics, failure handling and preview error isolation.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import AsyncIterator, Callable

import pytest
from pydantic import ValidationError as PydanticValidationError

from livesynth.buffer import BufferSnapshot
from livesynth.controller import StreamingController
from livesynth.errors import AdapterError, StateError, ValidationError
from livesynth.events import EventType
from livesynth.preview.compiler import CompilerBridge
from livesynth.preview.host import MemoryPreviewHost, SandboxedFilePreviewHost
from livesynth.schemas.config import StreamingConfig
from livesynth.schemas.preview import CompileResult
from livesynth.schemas.session import IDLE_VIEW, SessionStatus
from livesynth.schemas.streaming import (
    CodeChunk,
    SourceCompleted,
    SourceEvent,
    SourceFailed,
)
from livesynth.sources.base import GenerationSource
from livesynth.sources.playback import PlaybackClock

TICK = 0.02
WINDOW = 0.15

LINES = [f"line {i}\n" for i in range(1, 6)]


# ── Fakes ──────────────────────────────────────────────────────────


class FuncSource(GenerationSource):
    """Source whose events come from an async generator function."""

    def __init__(
        self,
        factory: Callable[[str], AsyncIterator[SourceEvent]],
        *,
        total_lines: int | None = None,
    ) -> None:
        self._factory = factory
        self._total = total_lines
        self.pauses = 0
        self.resumes = 0
        self.stops = 0

    @property
    def total_lines_hint(self) -> int | None:
        return self._total

    def subscribe(self, prompt: str) -> AsyncIterator[SourceEvent]:
        return self._factory(prompt)

    def pause(self) -> None:
        self.pauses += 1

    def resume(self) -> None:
        self.resumes += 1

    def stop(self) -> None:
        self.stops += 1


class EchoCompiler(CompilerBridge):
    """Compiles a snapshot to its own text, optionally slowly."""

    def __init__(self, delay: float = 0.0, fail_with: str | None = None) -> None:
        self.delay = delay
        self.fail_with = fail_with
        self.calls: list[BufferSnapshot] = []
        self.call_times: list[float] = []

    async def compile(self, snapshot: BufferSnapshot) -> CompileResult:
        self.calls.append(snapshot)
        self.call_times.append(time.monotonic())
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with:
            return CompileResult.failed(self.fail_with)
        return CompileResult.ok(snapshot.text, ["react"])


def _chunks(texts: list[str], delay: float = TICK, *, complete: bool = True):
    async def _gen(prompt: str) -> AsyncIterator[SourceEvent]:
        for index, text in enumerate(texts, start=1):
            await asyncio.sleep(delay)
            yield CodeChunk(sequence_number=index, text=text)
        if complete:
            yield SourceCompleted(total_lines=len(texts))

    return _gen


def _hanging(texts: list[str], delay: float = TICK):
    """Emit *texts*, then never finish."""

    async def _gen(prompt: str) -> AsyncIterator[SourceEvent]:
        for index, text in enumerate(texts, start=1):
            await asyncio.sleep(delay)
            yield CodeChunk(sequence_number=index, text=text)
        await asyncio.Event().wait()
        yield SourceCompleted(total_lines=len(texts))  # pragma: no cover

    return _gen


def _make(source, compiler=None, host=None, **config) -> StreamingController:
    settings = {"quiescence_window": WINDOW, "min_prompt_length": 3}
    settings.update(config)
    return StreamingController(
        source,
        compiler or EchoCompiler(),
        host if host is not None else MemoryPreviewHost(),
        config=StreamingConfig(**settings),
    )


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout)


def _types(controller: StreamingController) -> list[EventType]:
    return [e.type for e in controller.emitter.history]


# ══════════════════════════════════════════════════════════════════
# Generate
# ══════════════════════════════════════════════════════════════════


class TestGenerate:
    @pytest.mark.asyncio()
    async def test_generate_returns_requesting_view(self):
        controller = _make(FuncSource(_hanging([])))
        view = await controller.generate("  pricing card  ")
        assert view.status == SessionStatus.REQUESTING
        assert view.buffer_text == ""
        assert view.session_id
        assert _types(controller) == [EventType.SESSION_STARTED]
        assert controller.emitter.history[0].data["prompt"] == "pricing card"
        await controller.stop()

    @pytest.mark.asyncio()
    @pytest.mark.parametrize("prompt", ["", "   ", "\n\t", "ab"])
    async def test_rejects_meaningless_prompt(self, prompt):
        controller = _make(FuncSource(_chunks(["x"])))
        with pytest.raises(ValidationError):
            await controller.generate(prompt)
        assert controller.status == SessionStatus.IDLE
        assert controller.snapshot() == IDLE_VIEW
        assert controller.emitter.history == []

    @pytest.mark.asyncio()
    async def test_rejects_non_string_prompt(self):
        controller = _make(FuncSource(_chunks(["x"])))
        with pytest.raises(ValidationError, match="string"):
            await controller.generate(None)  # type: ignore[arg-type]

    @pytest.mark.asyncio()
    async def test_validation_error_is_a_value_error(self):
        controller = _make(FuncSource(_chunks(["x"])))
        with pytest.raises(ValueError):
            await controller.generate("")

    @pytest.mark.asyncio()
    async def test_rejected_prompt_keeps_running_session(self):
        controller = _make(FuncSource(_hanging(["a\n"])))
        first = await controller.generate("a real prompt")
        with pytest.raises(ValidationError):
            await controller.generate("")
        assert controller.snapshot().session_id == first.session_id
        await controller.stop()

    @pytest.mark.asyncio()
    async def test_first_chunk_moves_to_streaming(self):
        controller = _make(FuncSource(_hanging(["a\n"])))
        await controller.generate("button")
        await _wait_until(lambda: controller.snapshot().cursor_index == 1)

        view = controller.snapshot()
        assert view.status == SessionStatus.STREAMING
        assert view.buffer_text == "a\n"
        assert EventType.STREAMING_STARTED in _types(controller)
        await controller.stop()

    @pytest.mark.asyncio()
    async def test_source_override_applies_to_one_session(self):
        default = FuncSource(_chunks(["default\n"]))
        override = FuncSource(_chunks(["override\n"]))
        controller = _make(default)

        await controller.generate("button", source=override)
        view = await controller.join()
        assert view.buffer_text == "override\n"

        await controller.generate("button")
        view = await controller.join()
        assert view.buffer_text == "default\n"


# ══════════════════════════════════════════════════════════════════
# Uninterrupted streaming with debounced preview
# ══════════════════════════════════════════════════════════════════


class TestUninterruptedStream:
    @pytest.mark.asyncio()
    async def test_burst_renders_exactly_once(self):
        compiler = EchoCompiler()
        host = MemoryPreviewHost()
        controller = _make(FuncSource(_chunks(LINES)), compiler, host)

        await controller.generate("five lines please")
        view = await controller.join()

        assert view.status == SessionStatus.COMPLETED
        assert view.buffer_text == "".join(LINES)
        assert view.cursor_index == 5
        assert view.progress_fraction == 1.0
        assert len(compiler.calls) == 1
        assert compiler.calls[0].length == 5
        assert host.render_count == 1
        assert host.current.source_snapshot_length == 5
        assert view.preview_artifact == host.current

    @pytest.mark.asyncio()
    async def test_render_waits_a_full_window_after_last_chunk(self):
        compiler = EchoCompiler()
        controller = _make(FuncSource(_chunks(LINES)), compiler)
        chunk_times: list[float] = []
        controller.emitter.add_listener(
            lambda e: chunk_times.append(time.monotonic())
            if e.type == EventType.CHUNK_APPLIED else None
        )

        await controller.generate("five lines please")
        await controller.join()

        assert len(chunk_times) == 5
        assert len(compiler.call_times) == 1
        # Timer resolution may fire call_later a hair early
        assert compiler.call_times[0] - chunk_times[-1] >= WINDOW - 0.005

    @pytest.mark.asyncio()
    async def test_event_order(self):
        controller = _make(FuncSource(_chunks(LINES[:2])))
        await controller.generate("two lines")
        await controller.join()

        assert _types(controller) == [
            EventType.SESSION_STARTED,
            EventType.STREAMING_STARTED,
            EventType.CHUNK_APPLIED,
            EventType.CHUNK_APPLIED,
            EventType.SESSION_COMPLETED,
            EventType.PREVIEW_RENDERED,
        ]

    @pytest.mark.asyncio()
    async def test_chunks_applied_in_sequence_order(self):
        controller = _make(FuncSource(_chunks(LINES)))
        await controller.generate("five lines")
        await controller.join()

        applied = [
            e.data["sequence_number"]
            for e in controller.emitter.history
            if e.type == EventType.CHUNK_APPLIED
        ]
        assert applied == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio()
    async def test_progress_tracks_known_total(self):
        controller = _make(PlaybackClock(LINES, interval=TICK))
        view = await controller.generate("replay")
        assert view.total_lines_estimate == 5
        assert view.progress_fraction == 0.0

        await _wait_until(lambda: controller.snapshot().cursor_index >= 2)
        fraction = controller.snapshot().progress_fraction
        assert fraction is not None
        assert 0.4 <= fraction < 1.0
        await controller.stop()

    @pytest.mark.asyncio()
    async def test_progress_indeterminate_without_total(self):
        controller = _make(FuncSource(_hanging(["a\n"])))
        await controller.generate("button")
        await _wait_until(lambda: controller.snapshot().cursor_index == 1)
        view = controller.snapshot()
        assert view.progress_fraction is None
        assert view.is_indeterminate
        await controller.stop()

    @pytest.mark.asyncio()
    async def test_completion_without_chunks(self):
        async def _empty(prompt):
            yield SourceCompleted(total_lines=0)

        controller = _make(FuncSource(_empty))
        await controller.generate("nothing at all")
        view = await controller.join()
        assert view.status == SessionStatus.COMPLETED
        assert view.buffer_text == ""
        assert view.progress_fraction == 1.0

    @pytest.mark.asyncio()
    async def test_iterator_end_counts_as_completion(self):
        controller = _make(FuncSource(_chunks(["a\n", "b\n"], complete=False)))
        await controller.generate("button")
        view = await controller.join()
        assert view.status == SessionStatus.COMPLETED
        assert view.total_lines_estimate == 2

    @pytest.mark.asyncio()
    async def test_preview_disabled_never_compiles(self):
        compiler = EchoCompiler()
        controller = _make(FuncSource(_chunks(LINES)), compiler, preview_enabled=False)
        await controller.generate("five lines")
        view = await controller.join()
        assert view.status == SessionStatus.COMPLETED
        assert compiler.calls == []

    @pytest.mark.asyncio()
    async def test_view_is_immutable(self):
        controller = _make(FuncSource(_chunks(["a\n"])))
        await controller.generate("button")
        view = await controller.join()
        with pytest.raises(PydanticValidationError):
            view.buffer_text = "tampered"  # type: ignore[misc]

    @pytest.mark.asyncio()
    async def test_artifacts_never_go_backwards(self):
        host = MemoryPreviewHost()
        # Slow chunks so several quiescence windows elapse mid-stream
        controller = _make(FuncSource(_chunks(LINES, delay=WINDOW * 1.5)), host=host)
        await controller.generate("slow stream")
        await controller.join()

        lengths = [a.source_snapshot_length for a in host.rendered]
        assert len(lengths) >= 2
        assert lengths == sorted(lengths)
        assert lengths[-1] == 5


# ══════════════════════════════════════════════════════════════════
# Pause / resume
# ══════════════════════════════════════════════════════════════════


class TestPauseResume:
    @pytest.mark.asyncio()
    async def test_pause_and_resume_with_playback_clock(self):
        clock = PlaybackClock(LINES, interval=TICK)
        controller = _make(clock)
        await controller.generate("replay")
        await _wait_until(lambda: controller.snapshot().cursor_index >= 2)

        paused = await controller.pause()
        assert paused.status == SessionStatus.PAUSED
        assert clock.is_paused

        await asyncio.sleep(TICK * 6)
        still = controller.snapshot()
        assert still.cursor_index == paused.cursor_index
        assert still.buffer_text == paused.buffer_text

        resumed = await controller.resume()
        assert resumed.status == SessionStatus.STREAMING
        view = await controller.join()

        assert view.status == SessionStatus.COMPLETED
        assert view.buffer_text == "".join(LINES)
        applied = [
            e.data["sequence_number"]
            for e in controller.emitter.history
            if e.type == EventType.CHUNK_APPLIED
        ]
        assert applied == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio()
    async def test_push_source_events_are_queued_while_paused(self):
        gate = asyncio.Event()

        async def _gen(prompt):
            yield CodeChunk(sequence_number=1, text="a\n")
            await gate.wait()
            yield CodeChunk(sequence_number=2, text="b\n")
            yield CodeChunk(sequence_number=3, text="c\n")
            yield SourceCompleted(total_lines=3)

        source = FuncSource(_gen)
        controller = _make(source)
        await controller.generate("button")
        await _wait_until(lambda: controller.snapshot().cursor_index == 1)

        await controller.pause()
        assert source.pauses == 1
        gate.set()
        await _wait_until(lambda: controller.queued_events == 3)

        view = controller.snapshot()
        assert view.status == SessionStatus.PAUSED
        assert view.buffer_text == "a\n"

        resumed = await controller.resume()
        assert source.resumes == 1
        assert resumed.status == SessionStatus.COMPLETED
        assert resumed.buffer_text == "a\nb\nc\n"
        assert controller.queued_events == 0

        resume_event = next(
            e for e in controller.emitter.history if e.type == EventType.SESSION_RESUMED
        )
        assert resume_event.data["queued"] == 3

    @pytest.mark.asyncio()
    async def test_join_returns_paused_view_with_terminal_event_queued(self):
        gate = asyncio.Event()

        async def _gen(prompt):
            yield CodeChunk(sequence_number=1, text="a\n")
            await gate.wait()
            yield SourceCompleted(total_lines=1)

        controller = _make(FuncSource(_gen))
        await controller.generate("button")
        await _wait_until(lambda: controller.snapshot().cursor_index == 1)
        await controller.pause()
        gate.set()

        view = await asyncio.wait_for(controller.join(), timeout=2.0)
        assert view.status == SessionStatus.PAUSED
        assert controller.queued_events == 1

        assert (await controller.resume()).status == SessionStatus.COMPLETED

    @pytest.mark.asyncio()
    async def test_failure_while_paused_applies_on_resume(self):
        gate = asyncio.Event()

        async def _gen(prompt):
            yield CodeChunk(sequence_number=1, text="a\n")
            await gate.wait()
            raise AdapterError("connection reset")

        controller = _make(FuncSource(_gen))
        await controller.generate("button")
        await _wait_until(lambda: controller.snapshot().cursor_index == 1)
        await controller.pause()
        gate.set()
        await _wait_until(lambda: controller.queued_events == 1)
        assert controller.status == SessionStatus.PAUSED

        view = await controller.resume()
        assert view.status == SessionStatus.FAILED
        assert view.last_error == "connection reset"
        assert view.buffer_text == "a\n"

    @pytest.mark.asyncio()
    async def test_pause_rejected_outside_streaming(self):
        controller = _make(FuncSource(_hanging([])))
        with pytest.raises(StateError):
            await controller.pause()

        await controller.generate("button")
        assert controller.status == SessionStatus.REQUESTING
        with pytest.raises(StateError, match="streaming"):
            await controller.pause()
        await controller.stop()

    @pytest.mark.asyncio()
    async def test_resume_rejected_unless_paused(self):
        controller = _make(FuncSource(_hanging(["a\n"])))
        with pytest.raises(StateError):
            await controller.resume()

        await controller.generate("button")
        await _wait_until(lambda: controller.snapshot().cursor_index == 1)
        with pytest.raises(StateError, match="paused"):
            await controller.resume()
        await controller.stop()

    @pytest.mark.asyncio()
    async def test_pause_rejected_after_completion(self):
        controller = _make(FuncSource(_chunks(["a\n"])))
        await controller.generate("button")
        await controller.join()
        with pytest.raises(StateError):
            await controller.pause()
        assert controller.status == SessionStatus.COMPLETED


# ══════════════════════════════════════════════════════════════════
# Stop
# ══════════════════════════════════════════════════════════════════


class TestStop:
    @pytest.mark.asyncio()
    async def test_stop_mid_stream_discards_everything(self):
        compiler = EchoCompiler(delay=WINDOW * 2)
        host = MemoryPreviewHost()
        source = FuncSource(_hanging(LINES[:3]))
        controller = _make(source, compiler, host)

        await controller.generate("button")
        await _wait_until(lambda: controller.scheduler.in_flight)

        view = await controller.stop()
        assert view == IDLE_VIEW
        assert controller.status == SessionStatus.IDLE
        assert controller.snapshot().buffer_text == ""
        assert source.stops == 1

        stopped_at = len(controller.emitter.history)
        await asyncio.sleep(WINDOW * 4)
        assert host.rendered == []
        assert len(controller.emitter.history) == stopped_at
        assert _types(controller)[-1] == EventType.SESSION_STOPPED

    @pytest.mark.asyncio()
    async def test_stop_during_file_write_leaves_no_preview(self, tmp_path):
        host = SandboxedFilePreviewHost(tmp_path)
        write = host._write
        writing = threading.Event()

        def _slow_write(generation, number, page):
            writing.set()
            time.sleep(WINDOW * 2)
            write(generation, number, page)

        host._write = _slow_write
        controller = _make(FuncSource(_hanging(LINES[:2])), host=host)
        await controller.generate("button")
        await _wait_until(writing.is_set)

        await controller.stop()
        await asyncio.sleep(WINDOW * 3)

        assert controller.status == SessionStatus.IDLE
        assert not host.index_path.exists()
        assert not list(tmp_path.glob("render-*.html"))

    @pytest.mark.asyncio()
    async def test_stop_on_idle_is_a_noop(self):
        controller = _make(FuncSource(_chunks(["a\n"])))
        assert await controller.stop() == IDLE_VIEW
        assert controller.emitter.history == []

    @pytest.mark.asyncio()
    async def test_stop_is_idempotent(self):
        controller = _make(FuncSource(_hanging(["a\n"])))
        await controller.generate("button")
        await controller.stop()
        await controller.stop()
        stops = [t for t in _types(controller) if t == EventType.SESSION_STOPPED]
        assert len(stops) == 1

    @pytest.mark.asyncio()
    async def test_stop_while_paused(self):
        clock = PlaybackClock(LINES, interval=TICK)
        controller = _make(clock)
        await controller.generate("replay")
        await _wait_until(lambda: controller.snapshot().cursor_index >= 1)
        await controller.pause()

        await controller.stop()
        assert controller.status == SessionStatus.IDLE
        assert clock.position == 0
        assert not clock.is_paused

    @pytest.mark.asyncio()
    async def test_stop_after_completion_clears_session(self):
        host = MemoryPreviewHost()
        controller = _make(FuncSource(_chunks(["a\n"])), host=host)
        await controller.generate("button")
        await controller.join()
        assert host.current is not None

        await controller.stop()
        assert controller.snapshot() == IDLE_VIEW
        assert host.current is None

    @pytest.mark.asyncio()
    async def test_join_returns_after_stop(self):
        controller = _make(FuncSource(_hanging(["a\n"])))
        await controller.generate("button")
        joiner = asyncio.create_task(controller.join())
        await _wait_until(lambda: controller.snapshot().cursor_index == 1)
        await controller.stop()
        view = await asyncio.wait_for(joiner, timeout=1.0)
        assert view == IDLE_VIEW


# ══════════════════════════════════════════════════════════════════
# Supersede
# ══════════════════════════════════════════════════════════════════


class TestSupersede:
    @pytest.mark.asyncio()
    async def test_new_generate_replaces_running_session(self):
        host = MemoryPreviewHost()
        old = FuncSource(_hanging(["old 1\n", "old 2\n"], delay=TICK))
        new = FuncSource(_chunks(["new 1\n", "new 2\n"]))
        controller = _make(old, EchoCompiler(delay=WINDOW), host)

        first = await controller.generate("first prompt")
        await _wait_until(lambda: controller.snapshot().cursor_index == 2)
        second = await controller.generate("second prompt", source=new)
        assert second.session_id != first.session_id
        assert old.stops == 1

        view = await controller.join()
        assert view.status == SessionStatus.COMPLETED
        assert view.buffer_text == "new 1\nnew 2\n"
        assert all("old" not in a.compiled_code for a in host.rendered)

        old_events = [e for e in controller.emitter.history if e.session_id == first.session_id]
        assert EventType.SESSION_COMPLETED not in [e.type for e in old_events]

    @pytest.mark.asyncio()
    async def test_generate_after_completion_starts_fresh(self):
        controller = _make(FuncSource(_chunks(["a\n"])))
        await controller.generate("button")
        first = await controller.join()
        await controller.generate("another button")
        second = await controller.join()
        assert second.session_id != first.session_id
        assert second.buffer_text == "a\n"
        assert second.cursor_index == 1


# ══════════════════════════════════════════════════════════════════
# Failures
# ══════════════════════════════════════════════════════════════════


class TestFailures:
    @pytest.mark.asyncio()
    async def test_source_exception_fails_session_and_keeps_buffer(self):
        async def _gen(prompt):
            yield CodeChunk(sequence_number=1, text="a\n")
            yield CodeChunk(sequence_number=2, text="b\n")
            raise AdapterError("rate limit")

        controller = _make(FuncSource(_gen))
        await controller.generate("button")
        view = await controller.join()

        assert view.status == SessionStatus.FAILED
        assert view.last_error == "rate limit"
        assert view.buffer_text == "a\nb\n"
        failed = [e for e in controller.emitter.history if e.type == EventType.SESSION_FAILED]
        assert failed[0].data["error"] == "rate limit"

    @pytest.mark.asyncio()
    async def test_failure_signal_before_first_chunk(self):
        async def _gen(prompt):
            yield SourceFailed(message="Authentication failed")

        controller = _make(FuncSource(_gen))
        await controller.generate("button")
        view = await controller.join()
        assert view.status == SessionStatus.FAILED
        assert view.last_error == "Authentication failed"
        assert view.progress_fraction is None

    @pytest.mark.asyncio()
    async def test_subscribe_raising_fails_session(self):
        def _eager(prompt):
            raise AdapterError("missing API key")

        controller = _make(FuncSource(_eager))
        await controller.generate("button")
        view = await controller.join()

        assert view.status == SessionStatus.FAILED
        assert view.last_error == "missing API key"
        assert view.buffer_text == ""
        assert _types(controller)[-1] == EventType.SESSION_FAILED

    @pytest.mark.asyncio()
    async def test_failed_session_allows_new_generate(self):
        async def _gen(prompt):
            yield SourceFailed(message="boom")

        controller = _make(FuncSource(_gen))
        await controller.generate("button")
        await controller.join()
        view = await controller.generate("button", source=FuncSource(_chunks(["a\n"])))
        assert view.status == SessionStatus.REQUESTING
        assert (await controller.join()).status == SessionStatus.COMPLETED


# ══════════════════════════════════════════════════════════════════
# Preview error isolation
# ══════════════════════════════════════════════════════════════════


class TestPreviewErrors:
    @pytest.mark.asyncio()
    async def test_compile_failure_does_not_touch_status(self):
        compiler = EchoCompiler(fail_with="Unclosed '{' from line 3 (source incomplete)")
        controller = _make(FuncSource(_chunks(LINES)), compiler)
        await controller.generate("five lines")
        view = await controller.join()

        assert view.status == SessionStatus.COMPLETED
        assert view.last_error is None
        assert "source incomplete" in view.preview_error
        assert view.preview_artifact is None
        assert EventType.PREVIEW_FAILED in _types(controller)

    @pytest.mark.asyncio()
    async def test_render_error_does_not_touch_status(self):
        host = MemoryPreviewHost()
        host.fail_with = "sandbox crashed"
        controller = _make(FuncSource(_chunks(LINES)), host=host)
        await controller.generate("five lines")
        view = await controller.join()

        assert view.status == SessionStatus.COMPLETED
        assert view.preview_error == "sandbox crashed"
        assert host.rendered == []

    @pytest.mark.asyncio()
    async def test_next_session_starts_without_preview_error(self):
        compiler = EchoCompiler(fail_with="broken")
        controller = _make(FuncSource(_chunks(["a\n"], delay=0)), compiler)
        await controller.generate("first try")
        assert (await controller.join()).preview_error == "broken"

        compiler.fail_with = None
        await controller.generate("second try")
        view = await controller.join()
        assert view.preview_error is None
        assert view.preview_artifact is not None

    @pytest.mark.asyncio()
    async def test_works_without_a_host(self):
        controller = StreamingController(
            FuncSource(_chunks(["a\n"])),
            EchoCompiler(),
            config=StreamingConfig(quiescence_window=WINDOW),
        )
        await controller.generate("button")
        view = await controller.join()
        assert view.preview_artifact is not None
        assert view.preview_artifact.compiled_code == "a\n"
