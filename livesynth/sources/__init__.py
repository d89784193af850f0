"""livesynth generation sources.

Every producer of code chunks — live LiteLLM streaming, simulated
replay, or a bare PlaybackClock — implements GenerationSource.
"""

from livesynth.sources.base import GenerationSource
from livesynth.sources.litellm_source import LiteLLMSource
from livesynth.sources.playback import PlaybackClock
from livesynth.sources.registry import (
    load_models,
    load_streaming_config,
    resolve_model,
)
from livesynth.sources.simulated import SimulatedSource

__all__ = [
    "GenerationSource",
    "LiteLLMSource",
    "PlaybackClock",
    "SimulatedSource",
    "load_models",
    "load_streaming_config",
    "resolve_model",
]
