"""Configuration schemas for the model registry and the streaming core.

Both are loaded from the TOML files in livesynth/config/ by
livesynth.sources.registry and may be overridden from the CLI.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ModelConfig(BaseModel):
    """Configuration for a single LLM model in the registry.

    Loaded from models.toml. Each entry provides the LiteLLM routing
    information and the sampling parameters used for component generation.
    """

    provider: str = Field(description="Provider identifier (e.g. 'anthropic', 'openai')")
    model: str = Field(description="LiteLLM model identifier (e.g. 'gpt-4o-mini')")
    display_name: str = Field(description="Human-friendly model name for CLI output")
    api_key_env: str = Field(description="Environment variable name holding the API key")
    api_base: str = Field(default="", description="Custom API base URL (empty = provider default)")
    context_window: int = Field(gt=0, description="Maximum context window size in tokens")
    max_tokens: int = Field(
        default=2000, gt=0, description="Completion token cap for one generation"
    )
    temperature: float = Field(
        default=0.3, ge=0.0, le=2.0, description="Sampling temperature"
    )


class StreamingConfig(BaseModel):
    """Tunables for the streaming controller, scheduler and playback clock.

    Times are in seconds.
    """

    quiescence_window: float = Field(
        default=0.5, gt=0.0, description="Debounce delay after the last chunk before recompiling"
    )
    playback_interval: float = Field(
        default=0.15, gt=0.0, description="Tick interval of the playback clock"
    )
    min_prompt_length: int = Field(
        default=3, ge=1, description="Shortest meaningful prompt (after stripping)"
    )
    generation_timeout: int = Field(
        default=120, gt=0, description="Timeout in seconds for one backend call"
    )
    preview_enabled: bool = Field(
        default=True, description="Whether compiled snapshots are rendered"
    )
    preview_dir: str = Field(
        default="livesynth-preview", description="Output directory of the sandboxed file host"
    )
    default_model: str = Field(
        default="", description="Registry key used when none is given (empty = first entry)"
    )
