"""Streaming controller for live code synthesis.

Owns one StreamingSession at a time and drives it through
idle -> requesting -> streaming <-> paused -> completed | failed.
Chunks from the GenerationSource are appended to the session buffer in
delivery order and reported to the DebounceScheduler, whose results are
handed to the PreviewHost. pause/resume/stop are commands on the same
event loop; every continuation carries the version token captured when
its session started and turns into a no-op once that token is stale.

Pause policy: the source's pause() hook is invoked (clock-driven sources
stop ticking), and anything still delivered while paused is queued
locally and drained in order on resume().
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Any

from livesynth.buffer import BufferSnapshot
from livesynth.errors import (
    CancellationNoop,
    RenderError,
    StateError,
    ValidationError,
)
from livesynth.events import EventType, SessionEventEmitter
from livesynth.preview.compiler import CompilerBridge
from livesynth.preview.host import PreviewHost
from livesynth.scheduler import DebounceScheduler
from livesynth.schemas.config import StreamingConfig
from livesynth.schemas.preview import CompileResult, PreviewArtifact
from livesynth.schemas.session import (
    IDLE_VIEW,
    SessionStatus,
    SessionView,
    StreamingSession,
)
from livesynth.schemas.streaming import (
    CodeChunk,
    SourceCompleted,
    SourceEvent,
    SourceFailed,
)
from livesynth.sources.base import GenerationSource

logger = logging.getLogger(__name__)

# Allowed lifecycle transitions; stop() bypasses this table by discarding
# the session outright
_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.IDLE: frozenset({SessionStatus.REQUESTING}),
    SessionStatus.REQUESTING: frozenset(
        {SessionStatus.STREAMING, SessionStatus.COMPLETED, SessionStatus.FAILED}
    ),
    SessionStatus.STREAMING: frozenset(
        {SessionStatus.PAUSED, SessionStatus.COMPLETED, SessionStatus.FAILED}
    ),
    SessionStatus.PAUSED: frozenset({SessionStatus.STREAMING}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.FAILED: frozenset(),
}

Notice = tuple[EventType, dict[str, Any]]


class StreamingController:
    """Session state machine for streaming synthesis and live preview.

    All collaborators are injected. The controller never exposes its
    mutable session; callers read immutable SessionView snapshots and
    subscribe to the event channel.
    """

    def __init__(
        self,
        source: GenerationSource,
        compiler: CompilerBridge,
        host: PreviewHost | None = None,
        *,
        config: StreamingConfig | None = None,
        emitter: SessionEventEmitter | None = None,
    ) -> None:
        self._source = source
        self._compiler = compiler
        self._host = host
        self._config = config or StreamingConfig()
        self._emitter = emitter or SessionEventEmitter()
        self._scheduler = DebounceScheduler(
            self._compiler.compile,
            self._apply_compile_result,
            quiescence_window=self._config.quiescence_window,
        )

        self._session: StreamingSession | None = None
        self._active_source: GenerationSource | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._pending: deque[SourceEvent] = deque()
        self._epoch = 0

    # ── Read-only surface ─────────────────────────────────────

    @property
    def config(self) -> StreamingConfig:
        return self._config

    @property
    def emitter(self) -> SessionEventEmitter:
        return self._emitter

    @property
    def scheduler(self) -> DebounceScheduler:
        return self._scheduler

    @property
    def status(self) -> SessionStatus:
        return self._session.status if self._session else SessionStatus.IDLE

    @property
    def queued_events(self) -> int:
        """Events received while paused and not yet applied."""
        return len(self._pending)

    def snapshot(self) -> SessionView:
        """Immutable view of the current session (idle when there is none)."""
        return self._session.to_view() if self._session else IDLE_VIEW

    # ── Commands ──────────────────────────────────────────────

    async def generate(
        self, prompt: str, *, source: GenerationSource | None = None
    ) -> SessionView:
        """Start a new session for *prompt* and return without waiting for chunks.

        Any existing session is discarded first. *source* overrides the
        injected GenerationSource for this session only.

        Raises:
            ValidationError: If the prompt is not a meaningful string.
        """
        cleaned = self._validate_prompt(prompt)

        if self._session is not None or self._consumer is not None:
            logger.info("Discarding session %s for a new generation", self._session_label())
            self._discard()

        self._epoch += 1
        epoch = self._epoch
        active_source = source or self._source

        session = StreamingSession(prompt=cleaned)
        self._transition(session, SessionStatus.REQUESTING)
        session.started_at = time.time()
        session.total_lines_estimate = active_source.total_lines_hint

        self._session = session
        self._active_source = active_source
        self._consumer = asyncio.get_running_loop().create_task(
            self._consume(epoch, session, active_source),
            name=f"livesynth-consume-{session.session_id[:8]}",
        )
        logger.info("Session %s requesting from %s", session.session_id[:8], active_source.name)

        await self._publish(epoch, session, [(
            EventType.SESSION_STARTED,
            {
                "prompt": cleaned,
                "source": active_source.name,
                "total_lines": session.total_lines_estimate,
            },
        )])
        return session.to_view()

    async def pause(self) -> SessionView:
        """Stop consuming chunks; valid only while streaming.

        Raises:
            StateError: If there is no streaming session.
        """
        session = self._require_session("pause")
        if session.status != SessionStatus.STREAMING:
            raise StateError(f"pause() is only valid while streaming (status: {session.status})")

        self._transition(session, SessionStatus.PAUSED)
        if self._active_source is not None:
            self._active_source.pause()
        logger.info("Session %s paused at chunk %d", session.session_id[:8], session.cursor_index)

        await self._publish(self._epoch, session, [
            (EventType.SESSION_PAUSED, {"cursor_index": session.cursor_index}),
        ])
        return session.to_view()

    async def resume(self) -> SessionView:
        """Re-establish consumption; valid only while paused.

        Events queued during the pause are applied in arrival order
        before anything delivered later.

        Raises:
            StateError: If there is no paused session.
        """
        session = self._require_session("resume")
        if session.status != SessionStatus.PAUSED:
            raise StateError(f"resume() is only valid while paused (status: {session.status})")

        queued = len(self._pending)
        self._transition(session, SessionStatus.STREAMING)
        if self._active_source is not None:
            self._active_source.resume()
        logger.info("Session %s resumed (%d queued events)", session.session_id[:8], queued)

        notices: list[Notice] = [(EventType.SESSION_RESUMED, {"queued": queued})]
        while self._pending and not session.is_terminal:
            notices.extend(self._apply(session, self._pending.popleft()))
        self._pending.clear()

        await self._publish(self._epoch, session, notices)
        return session.to_view()

    async def stop(self) -> SessionView:
        """Discard the session from any state and return to idle.

        Idempotent: with nothing to stop, this returns immediately and
        has no side effects.
        """
        session = self._session
        if session is None and self._consumer is None:
            return IDLE_VIEW

        previous = session.status if session else SessionStatus.IDLE
        session_id = session.session_id if session else ""
        self._discard()
        logger.info("Session %s stopped (was %s)", session_id[:8], previous)

        if self._host is not None:
            await self._host.clear()
        await self._emitter.emit(
            EventType.SESSION_STOPPED, session_id, previous_status=str(previous)
        )
        return IDLE_VIEW

    async def join(self) -> SessionView:
        """Wait for the source to finish and the preview to settle.

        Returns once the consumer task has ended. A paused session whose
        terminal event is still queued comes back as paused; the queue is
        only drained by resume().
        """
        consumer = self._consumer
        if consumer is not None:
            try:
                await asyncio.shield(consumer)
            except asyncio.CancelledError:
                if not consumer.cancelled():
                    raise
        await self._scheduler.drain()
        return self.snapshot()

    # ── Source consumption ────────────────────────────────────

    async def _consume(
        self, epoch: int, session: StreamingSession, source: GenerationSource
    ) -> None:
        started = time.monotonic()
        events = None
        try:
            events = source.subscribe(session.prompt)
            terminated = False
            async for event in events:
                self._ensure_current(epoch)
                terminated = isinstance(event, (SourceCompleted, SourceFailed))
                await self._deliver(epoch, session, event)
                if terminated:
                    break

            if not terminated:
                # Sequence ended without an explicit completion signal
                self._ensure_current(epoch)
                await self._deliver(epoch, session, SourceCompleted(
                    total_lines=len(session.buffer.text.splitlines()),
                    elapsed_time=time.monotonic() - started,
                ))
        except CancellationNoop:
            logger.debug("Dropped continuation of superseded session %s", session.session_id[:8])
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if epoch != self._epoch:
                logger.debug("Ignoring error from superseded session %s: %s", session.session_id[:8], e)
                return
            message = str(e) or type(e).__name__
            logger.warning("Generation failed for session %s: %s", session.session_id[:8], message)
            if not session.is_terminal:
                await self._deliver(epoch, session, SourceFailed(message=message))
        finally:
            aclose = getattr(events, "aclose", None) if events is not None else None
            if aclose is not None:
                try:
                    await aclose()
                except Exception:
                    logger.debug("Source iterator raised on close", exc_info=True)

    async def _deliver(self, epoch: int, session: StreamingSession, event: SourceEvent) -> None:
        if session.status == SessionStatus.PAUSED:
            self._pending.append(event)
            return
        await self._publish(epoch, session, self._apply(session, event))

    def _apply(self, session: StreamingSession, event: SourceEvent) -> list[Notice]:
        """Apply one source event to the session. Synchronous by design of
        the ordering rules: nothing else can interleave with it."""
        if isinstance(event, CodeChunk):
            notices: list[Notice] = []
            if session.status == SessionStatus.REQUESTING:
                self._transition(session, SessionStatus.STREAMING)
                if session.total_lines_estimate is None and self._active_source is not None:
                    session.total_lines_estimate = self._active_source.total_lines_hint
                notices.append((EventType.STREAMING_STARTED, {
                    "total_lines": session.total_lines_estimate,
                }))

            length = session.buffer.append(event.text)
            session.cursor_index += 1
            if self._config.preview_enabled:
                self._scheduler.notify(session.buffer.snapshot())
            notices.append((EventType.CHUNK_APPLIED, {
                "sequence_number": event.sequence_number,
                "cursor_index": session.cursor_index,
                "buffer_length": length,
                "text": event.text,
            }))
            return notices

        if isinstance(event, SourceCompleted):
            self._transition(session, SessionStatus.COMPLETED)
            session.total_lines_estimate = event.total_lines
            session.completed_at = time.time()
            logger.info(
                "Session %s completed (%d chunks, %d lines, %.1fs)",
                session.session_id[:8], session.cursor_index,
                event.total_lines, event.elapsed_time,
            )
            return [(EventType.SESSION_COMPLETED, {
                "total_lines": event.total_lines,
                "elapsed_time": event.elapsed_time,
                "chunks": session.cursor_index,
            })]

        self._transition(session, SessionStatus.FAILED)
        session.last_error = event.message
        session.completed_at = time.time()
        logger.warning("Session %s failed: %s", session.session_id[:8], event.message)
        return [(EventType.SESSION_FAILED, {
            "error": event.message,
            "chunks": session.cursor_index,
        })]

    # ── Preview ───────────────────────────────────────────────

    async def _apply_compile_result(self, snapshot: BufferSnapshot, result: CompileResult) -> None:
        session = self._session
        epoch = self._epoch
        if session is None:
            return
        if snapshot.length > len(session.buffer):
            logger.debug(
                "Discarding artifact compiled ahead of the buffer (%d > %d)",
                snapshot.length, len(session.buffer),
            )
            return

        if not result.success:
            await self._preview_failed(epoch, session, result.error_message or "Compilation failed")
            return

        artifact = PreviewArtifact(
            compiled_code=result.compiled_artifact or "",
            source_snapshot_length=snapshot.length,
        )
        if self._host is not None:
            try:
                await self._host.render(artifact)
            except RenderError as e:
                await self._preview_failed(epoch, session, str(e))
                return
            except Exception as e:
                logger.exception("Preview host raised an unexpected error")
                await self._preview_failed(epoch, session, str(e) or type(e).__name__)
                return

        if epoch != self._epoch:
            return
        session.preview_artifact = artifact
        session.preview_error = None
        await self._publish(epoch, session, [(EventType.PREVIEW_RENDERED, {
            "snapshot_length": snapshot.length,
            "dependencies": result.dependencies,
        })])

    async def _preview_failed(self, epoch: int, session: StreamingSession, message: str) -> None:
        if epoch != self._epoch:
            return
        session.preview_error = message
        logger.warning("Preview failed for session %s: %s", session.session_id[:8], message)
        await self._publish(epoch, session, [(EventType.PREVIEW_FAILED, {"error": message})])

    # ── Helpers ───────────────────────────────────────────────

    def _validate_prompt(self, prompt: object) -> str:
        if not isinstance(prompt, str):
            raise ValidationError("Prompt must be a string")
        cleaned = prompt.strip()
        if not cleaned:
            raise ValidationError("Prompt is empty")
        minimum = self._config.min_prompt_length
        if len(cleaned) < minimum:
            raise ValidationError(
                f"Prompt is too short ({len(cleaned)} characters, minimum {minimum})"
            )
        return cleaned

    def _require_session(self, command: str) -> StreamingSession:
        if self._session is None:
            raise StateError(f"{command}() needs a session; call generate() first")
        return self._session

    def _transition(self, session: StreamingSession, target: SessionStatus) -> None:
        if target not in _TRANSITIONS[session.status]:
            raise StateError(f"Cannot move session from {session.status} to {target}")
        logger.debug("Session %s: %s -> %s", session.session_id[:8], session.status, target)
        session.status = target

    def _ensure_current(self, epoch: int) -> None:
        if epoch != self._epoch:
            raise CancellationNoop(f"continuation of epoch {epoch} is stale (current {self._epoch})")

    def _discard(self) -> None:
        """Invalidate every continuation and drop the session wholesale."""
        self._epoch += 1
        self._scheduler.invalidate()
        if self._consumer is not None and not self._consumer.done():
            self._consumer.cancel()
        self._consumer = None
        if self._active_source is not None:
            self._active_source.stop()
        self._active_source = None
        if self._session is not None:
            self._session.buffer.clear()
            self._session.preview_artifact = None
        self._session = None
        self._pending.clear()

    def _session_label(self) -> str:
        return self._session.session_id[:8] if self._session else "-"

    async def _publish(
        self, epoch: int, session: StreamingSession, notices: list[Notice]
    ) -> None:
        for event_type, data in notices:
            if epoch != self._epoch:
                return
            await self._emitter.emit(event_type, session.session_id, **data)
