"""Debounced recompilation of the streaming buffer.

The DebounceScheduler coalesces bursts of buffer updates into a single
compile after a quiescence window. It owns exactly one timer handle and
at most one in-flight render, and stamps every render with a version
token so results that outlive a stop() or a newer snapshot are dropped
instead of applied.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from livesynth.buffer import BufferSnapshot
from livesynth.schemas.preview import CompileResult

logger = logging.getLogger(__name__)

CompileFn = Callable[[BufferSnapshot], Awaitable[CompileResult]]
ResultHandler = Callable[[BufferSnapshot, CompileResult], Any]


class DebounceScheduler:
    """Single-timer debounce with staleness detection.

    - ``notify()`` records the latest snapshot and restarts the timer.
    - When the timer fires, the compiler runs on the latest snapshot. If
      a render is still in flight, a follow-up starts as soon as it
      settles; the in-flight render is never cancelled by a notify.
    - A result reaches ``on_result`` only if its version token is still
      current and its snapshot length is the latest one notified.
    - ``invalidate()`` cancels the timer and the in-flight render and
      bumps the version token.
    """

    def __init__(
        self,
        compile_fn: CompileFn,
        on_result: ResultHandler,
        *,
        quiescence_window: float = 0.5,
    ) -> None:
        if quiescence_window <= 0:
            raise ValueError(f"quiescence_window must be positive, got {quiescence_window}")
        self._compile = compile_fn
        self._on_result = on_result
        self._window = quiescence_window
        self._timer: asyncio.TimerHandle | None = None
        self._in_flight: asyncio.Task[None] | None = None
        self._latest: BufferSnapshot | None = None
        self._follow_up = False
        self._version = 0
        self._compile_count = 0
        self._idle = asyncio.Event()
        self._idle.set()

    # ── Introspection ─────────────────────────────────────────

    @property
    def quiescence_window(self) -> float:
        return self._window

    @property
    def version(self) -> int:
        """Monotonic token; bumped by every invalidate()."""
        return self._version

    @property
    def pending(self) -> bool:
        """Whether a quiescence timer is armed."""
        return self._timer is not None

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    @property
    def compile_count(self) -> int:
        """Compiler invocations started since construction."""
        return self._compile_count

    @property
    def latest_length(self) -> int | None:
        return self._latest.length if self._latest is not None else None

    # ── Commands ──────────────────────────────────────────────

    def notify(self, snapshot: BufferSnapshot) -> None:
        """Record *snapshot* and restart the quiescence timer."""
        self._latest = snapshot
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._window, self._on_timer, self._version)
        self._idle.clear()

    def invalidate(self) -> None:
        """Cancel pending work and mark any in-flight result as stale."""
        self._version += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._in_flight is not None:
            task, self._in_flight = self._in_flight, None
            task.cancel()
        self._latest = None
        self._follow_up = False
        self._update_idle()

    async def drain(self) -> None:
        """Wait until no timer is armed and no render is in flight."""
        while True:
            await self._idle.wait()
            if self._timer is None and self._in_flight is None:
                return

    # ── Internals ─────────────────────────────────────────────

    def _on_timer(self, version: int) -> None:
        if version != self._version:
            return
        self._timer = None
        if self._in_flight is not None:
            self._follow_up = True
            return
        self._start_render()

    def _start_render(self) -> None:
        snapshot = self._latest
        if snapshot is None:
            self._update_idle()
            return
        self._compile_count += 1
        self._in_flight = asyncio.get_running_loop().create_task(
            self._render(snapshot, self._version)
        )

    async def _render(self, snapshot: BufferSnapshot, version: int) -> None:
        try:
            try:
                result = await self._compile(snapshot)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("Compiler raised on snapshot of length %d: %s", snapshot.length, e)
                result = CompileResult.failed(str(e) or type(e).__name__)

            if version != self._version:
                logger.debug(
                    "Dropping stale render (version %d, current %d)", version, self._version
                )
                return
            if self._latest is None or snapshot.length != self._latest.length:
                logger.debug(
                    "Dropping superseded render (length %d, latest %s)",
                    snapshot.length, self.latest_length,
                )
                return

            try:
                outcome = self._on_result(snapshot, result)
                if inspect.isawaitable(outcome):
                    await outcome
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Render result handler failed")
        finally:
            if asyncio.current_task() is self._in_flight:
                self._in_flight = None
                if self._follow_up and version == self._version:
                    self._follow_up = False
                    self._start_render()
            self._update_idle()

    def _update_idle(self) -> None:
        if self._timer is None and self._in_flight is None:
            self._idle.set()
        else:
            self._idle.clear()
