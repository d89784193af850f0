"""Model registry and TOML configuration loader.

Loads model definitions from models.toml and streaming defaults from
defaults.toml. Provides lookup of the model to use for a generation.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

from livesynth.schemas.config import ModelConfig, StreamingConfig

# Default config directory relative to the livesynth package
_CONFIG_DIR = Path(__file__).parent.parent / "config"


def load_models(config_path: Path | None = None) -> dict[str, ModelConfig]:
    """Load the model registry from a TOML file.

    Args:
        config_path: Path to models.toml. Defaults to livesynth/config/models.toml.

    Returns:
        Dictionary mapping model keys to ModelConfig instances.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the TOML structure is invalid.
    """
    path = config_path or _CONFIG_DIR / "models.toml"
    if not path.exists():
        raise FileNotFoundError(f"Model registry not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    models_section = raw.get("models")
    if not models_section or not isinstance(models_section, dict):
        raise ValueError(f"No [models] section found in {path}")

    registry: dict[str, ModelConfig] = {}
    for key, entry in models_section.items():
        if not isinstance(entry, dict):
            continue
        registry[key] = ModelConfig(**entry)

    return registry


def load_streaming_config(config_path: Path | None = None) -> StreamingConfig:
    """Load streaming defaults from a TOML file.

    Args:
        config_path: Path to defaults.toml. Defaults to livesynth/config/defaults.toml.

    Returns:
        StreamingConfig with values from the TOML file.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If a value fails validation.
    """
    path = config_path or _CONFIG_DIR / "defaults.toml"
    if not path.exists():
        raise FileNotFoundError(f"Streaming config not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    streaming = raw.get("streaming", {})
    preview = raw.get("preview", {})
    if not isinstance(streaming, dict) or not isinstance(preview, dict):
        raise ValueError(f"Malformed [streaming]/[preview] section in {path}")

    defaults = StreamingConfig()
    return StreamingConfig(
        quiescence_window=streaming.get("quiescence_window", defaults.quiescence_window),
        playback_interval=streaming.get("playback_interval", defaults.playback_interval),
        min_prompt_length=streaming.get("min_prompt_length", defaults.min_prompt_length),
        generation_timeout=streaming.get("generation_timeout", defaults.generation_timeout),
        default_model=streaming.get("default_model", defaults.default_model),
        preview_enabled=preview.get("enabled", defaults.preview_enabled),
        preview_dir=preview.get("output_dir", defaults.preview_dir),
    )


def resolve_model(
    registry: dict[str, ModelConfig], key: str | None, config: StreamingConfig
) -> tuple[str, ModelConfig]:
    """Pick the registry entry for *key*, falling back to the configured default.

    Raises:
        KeyError: If the requested (or default) key is not registered.
        ValueError: If the registry is empty.
    """
    if not registry:
        raise ValueError("Model registry is empty")
    chosen = key or config.default_model or next(iter(registry))
    if chosen not in registry:
        raise KeyError(chosen)
    return chosen, registry[chosen]
