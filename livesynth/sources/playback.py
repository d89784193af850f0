"""Self-paced playback of a pre-materialized line list.

The PlaybackClock replays lines one per tick through the GenerationSource
interface, so the controller treats a replay exactly like a live backend.
It backs simulated/demo streaming and pause-then-resume of content that
already exists in full.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Sequence

from livesynth.schemas.streaming import CodeChunk, SourceCompleted, SourceEvent
from livesynth.sources.base import GenerationSource

logger = logging.getLogger(__name__)


class PlaybackClock(GenerationSource):
    """Emits one CodeChunk per tick from a fixed list of lines.

    Position survives pause/resume and re-subscription; only stop()
    rewinds it. Sequence numbers are the 1-based line positions, so they
    stay strictly increasing across a pause.
    """

    def __init__(self, lines: Sequence[str], interval: float = 0.15) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._lines = list(lines)
        self._interval = interval
        self._position = 0
        self._emitted: list[CodeChunk] = []
        self._running = asyncio.Event()
        self._running.set()
        self._epoch = 0

    @classmethod
    def from_text(cls, code: str, interval: float = 0.15) -> PlaybackClock:
        """Build a clock that replays *code* line by line, keeping line endings."""
        return cls(code.splitlines(keepends=True), interval)

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def position(self) -> int:
        """Index of the next line to emit."""
        return self._position

    @property
    def emitted(self) -> tuple[CodeChunk, ...]:
        return tuple(self._emitted)

    @property
    def is_paused(self) -> bool:
        return not self._running.is_set()

    @property
    def total_lines_hint(self) -> int | None:
        return len(self._lines)

    async def subscribe(self, prompt: str) -> AsyncIterator[SourceEvent]:
        epoch = self._epoch
        started = time.monotonic()

        while self._position < len(self._lines):
            await self._running.wait()
            await asyncio.sleep(self._interval)
            if epoch != self._epoch:
                return
            if not self._running.is_set():
                # Paused during the tick; wait again before emitting
                continue

            index = self._position
            chunk = CodeChunk(sequence_number=index + 1, text=self._lines[index])
            self._position = index + 1
            self._emitted.append(chunk)
            yield chunk

        if epoch != self._epoch:
            return
        yield SourceCompleted(
            total_lines=len(self._lines),
            elapsed_time=time.monotonic() - started,
        )

    def pause(self) -> None:
        """Stop ticking; the current position is preserved."""
        self._running.clear()
        logger.debug("Playback paused at line %d/%d", self._position, len(self._lines))

    def resume(self) -> None:
        """Continue ticking from the preserved position."""
        self._running.set()
        logger.debug("Playback resumed at line %d/%d", self._position, len(self._lines))

    def stop(self) -> None:
        """Rewind to the first line and end any running subscription."""
        self._epoch += 1
        self._position = 0
        self._emitted.clear()
        self._running.set()
