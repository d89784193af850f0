"""Simulated streaming: complete first, then type the result out.

For backends (or demos) without token streaming, the SimulatedSource
awaits one full completion, extracts the component code from it and
replays it line by line through a PlaybackClock. Because the replay is
clock-driven, pause genuinely halts output and resume continues from the
same line.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable

from livesynth.preview.compiler import extract_component_code
from livesynth.schemas.streaming import SourceEvent
from livesynth.sources.base import GenerationSource
from livesynth.sources.playback import PlaybackClock

logger = logging.getLogger(__name__)

CompleteFn = Callable[[str], Awaitable[str]]


class SimulatedSource(GenerationSource):
    """Replays a full completion through a PlaybackClock."""

    def __init__(self, complete: CompleteFn, *, interval: float = 0.15) -> None:
        self._complete = complete
        self._interval = interval
        self._clock: PlaybackClock | None = None
        self._pause_requested = False

    @property
    def clock(self) -> PlaybackClock | None:
        """The clock of the current replay, once the completion arrived."""
        return self._clock

    @property
    def total_lines_hint(self) -> int | None:
        return self._clock.total_lines_hint if self._clock else None

    async def subscribe(self, prompt: str) -> AsyncIterator[SourceEvent]:
        response = await self._complete(prompt)
        code = extract_component_code(response)
        self._clock = PlaybackClock.from_text(code, self._interval)
        if self._pause_requested:
            self._clock.pause()
        logger.info("Replaying %d generated lines", self._clock.total_lines_hint)

        async for event in self._clock.subscribe(prompt):
            yield event

    def pause(self) -> None:
        self._pause_requested = True
        if self._clock:
            self._clock.pause()

    def resume(self) -> None:
        self._pause_requested = False
        if self._clock:
            self._clock.resume()

    def stop(self) -> None:
        self._pause_requested = False
        if self._clock:
            self._clock.stop()
        self._clock = None
