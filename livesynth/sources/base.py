"""Abstract base class for all generation sources.

Defines the GenerationSource interface that every code producer must
implement. The StreamingController consumes sources exclusively through
this interface, so it cannot tell a live backend from a replay.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from livesynth.schemas.streaming import SourceEvent


class GenerationSource(ABC):
    """Asynchronous producer of code chunks for a prompt.

    ``subscribe()`` yields CodeChunk events in delivery order and ends
    with a single SourceCompleted or SourceFailed signal. Raising from the
    iterator is equivalent to yielding SourceFailed with the exception's
    message.

    The pause/resume/stop hooks are advisory. Push-based sources may
    ignore them; the controller queues whatever still arrives while
    paused.
    """

    @property
    def name(self) -> str:
        """Short label for logs and the CLI display."""
        return type(self).__name__

    @property
    def total_lines_hint(self) -> int | None:
        """Total lines the source will produce, when known upfront."""
        return None

    @abstractmethod
    def subscribe(self, prompt: str) -> AsyncIterator[SourceEvent]:
        """Start producing chunks for *prompt*.

        Args:
            prompt: The validated generation prompt.

        Returns:
            An async iterator of CodeChunk events terminated by a
            SourceCompleted or SourceFailed signal.
        """

    def pause(self) -> None:
        """Ask the source to stop producing until resume()."""

    def resume(self) -> None:
        """Continue producing after pause()."""

    def stop(self) -> None:
        """Abandon the current subscription."""
