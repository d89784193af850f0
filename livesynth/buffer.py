"""Append-only buffer of synthesized code text.

The BufferAccumulator keeps every chunk text in arrival order and hands
out length-stamped, immutable snapshots. A snapshot's ``length`` is the
number of chunk texts it covers, so it grows by exactly one per append
and can be compared against later snapshots to detect staleness.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BufferSnapshot:
    """Immutable view of the buffer at one point in time."""

    text: str
    length: int

    @property
    def char_count(self) -> int:
        return len(self.text)


EMPTY_SNAPSHOT = BufferSnapshot(text="", length=0)


class BufferAccumulator:
    """Ordered, append-only store of code text.

    Prior content is never mutated. The joined text is cached and
    extended incrementally, so taking a snapshot after each append costs
    only the newly appended pieces.
    """

    def __init__(self) -> None:
        self._pieces: list[str] = []
        self._joined: str = ""
        self._joined_count: int = 0

    def __len__(self) -> int:
        return len(self._pieces)

    @property
    def text(self) -> str:
        """Full buffer contents."""
        return self.snapshot().text

    @property
    def char_count(self) -> int:
        return len(self.text)

    def append(self, text: str) -> int:
        """Append one chunk's text and return the new buffer length."""
        self._pieces.append(text)
        return len(self._pieces)

    def snapshot(self) -> BufferSnapshot:
        """Return an immutable view paired with its length marker."""
        count = len(self._pieces)
        if self._joined_count < count:
            self._joined += "".join(self._pieces[self._joined_count:count])
            self._joined_count = count
        return BufferSnapshot(text=self._joined, length=count)

    def clear(self) -> None:
        """Drop all content. Only the owning session's discard calls this."""
        self._pieces = []
        self._joined = ""
        self._joined_count = 0
