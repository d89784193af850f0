"""Error taxonomy for the streaming synthesis pipeline.

Every error the controller can surface derives from LiveSynthError.
Asynchronous failures never propagate out of a continuation; the
controller converts them into a state transition plus an event.
"""

from __future__ import annotations


class LiveSynthError(Exception):
    """Base class for all livesynth errors."""


class ValidationError(LiveSynthError, ValueError):
    """Malformed caller input (e.g. an empty prompt).

    Raised synchronously before any state is touched.
    """


class StateError(LiveSynthError):
    """A command was issued in a session state that does not allow it."""


class AdapterError(LiveSynthError):
    """The generation backend failed. Terminal for the session."""


class RenderError(LiveSynthError):
    """Compilation or preview rendering failed.

    Isolated to the preview subsystem — the session's generation status
    is never affected by it.
    """


class CancellationNoop(LiveSynthError):
    """A continuation woke up after its session was stopped or superseded.

    Raised internally and swallowed at the controller boundary; it must
    never reach caller code.
    """
