"""
Soundstage Configuration System.

Priority order (highest to lowest):
1. Command-line arguments
2. Environment variables
3. Configuration file (YAML)
4. Default values
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)


# Valid log levels
VALID_LOG_LEVELS = {"debug", "info", "warning", "error"}

# Valid output sink types
VALID_OUTPUT_TYPES = {"local", "null"}

# Environment variable mappings
ENV_MAPPINGS = {
    # Generation
    "REPLICATE_API_TOKEN": ("generation", "api_token"),
    # Cache / catalog
    "SOUNDSTAGE_CACHE_DIR": ("cache", "directory"),
    "SOUNDSTAGE_LIBRARY_DIR": ("catalog", "library_dir"),
    "SOUNDSTAGE_PLAYLISTS": ("playlists", "store_path"),
    # Output
    "SOUNDSTAGE_OUTPUT": ("output", "type"),
    "SOUNDSTAGE_DEVICE": ("output", "device"),
    # Audio
    "SOUNDSTAGE_FFMPEG": ("audio", "ffmpeg_path"),
    # Logging
    "SOUNDSTAGE_LOG_LEVEL": ("logging", "level"),
}

# Known-good public musicgen version used when the configured one is rejected
PUBLIC_MUSICGEN_VERSION = "671ac645ce5e552cc63a54a2bbff63fcf798043055d2dac5fc9e36a837eedcfb"


class ConfigError(Exception):
    """Configuration error."""

    pass


@dataclass
class GenerationParams:
    """Model input parameters for one kind of generated audio."""

    model_version: str = "melody"
    duration: int = 30  # seconds
    temperature: float = 1.0
    top_k: int = 250
    top_p: float = 0.0
    classifier_free_guidance: float = 3.0

    def to_input(self) -> dict[str, Any]:
        """Convert to job API input fields."""
        return {
            "model_version": self.model_version,
            "duration": self.duration,
            "temperature": self.temperature,
            "top_k": self.top_k,
            "top_p": self.top_p,
            "classifier_free_guidance": self.classifier_free_guidance,
        }


def _ambience_params() -> GenerationParams:
    return GenerationParams(
        model_version="large",
        duration=30,
        temperature=0.7,
        top_k=50,
        top_p=0.9,
        classifier_free_guidance=4.0,
    )


@dataclass
class GenerationConfig:
    """Generation job API configuration."""

    api_token: str = ""
    base_url: str = "https://api.replicate.com/v1"
    model_version: str = "7a76a8258b23fae65c5a22debb8841d1d7e816b75c2f24218cd2bd8573787906"
    fallback_version: str = PUBLIC_MUSICGEN_VERSION
    music: GenerationParams = field(default_factory=GenerationParams)
    ambience: GenerationParams = field(default_factory=_ambience_params)

    # Result cache
    cache_ttl_s: float = 600.0
    sweep_interval_s: float = 30.0
    sweep_threshold: int = 50

    # Polling: fast for the first polls, slower afterwards
    poll_fast_interval_s: float = 1.0
    poll_fast_count: int = 10
    poll_medium_interval_s: float = 5.0
    poll_medium_count: int = 60
    poll_slow_interval_s: float = 10.0
    max_wait_s: float = 1200.0
    max_consecutive_errors: int = 5

    # Rate limiting
    rate_limit_max_retries: int = 5
    rate_limit_base_delay_s: float = 1.0
    rate_limit_max_delay_s: float = 60.0
    rate_limit_jitter_s: float = 1.0

    request_timeout_s: float = 30.0


@dataclass
class AudioProfile:
    """Volume and fade timings for one kind of playback."""

    volume: float = 0.3  # 0.0 - 1.0
    fade_in_ms: int = 2000
    fade_out_ms: int = 2000
    crossfade_ms: int = 3000
    loop_fade_start_ms: int = 5000  # Prepare the next loop this long before the end


def _ambience_profile() -> AudioProfile:
    return AudioProfile(
        volume=0.2,
        fade_in_ms=1000,
        fade_out_ms=1000,
        crossfade_ms=2000,
        loop_fade_start_ms=3000,
    )


@dataclass
class AudioConfig:
    """Audio pipeline configuration."""

    music: AudioProfile = field(default_factory=AudioProfile)
    ambience: AudioProfile = field(default_factory=_ambience_profile)
    frame_ms: int = 20
    sample_rate: int = 48000
    ffmpeg_path: str = "ffmpeg"
    volume_ramp_step_ms: int = 50

    def profile(self, kind: str) -> AudioProfile:
        """Get the profile for 'music' or 'ambience'."""
        return self.ambience if kind == "ambience" else self.music


@dataclass
class PlaybackConfig:
    """Playback engine behaviour."""

    failure_backoff_ms: int = 1000
    max_consecutive_failures: int = 5
    default_volume: int = 100  # 0-100


@dataclass
class CacheConfig:
    """On-disk track cache configuration."""

    directory: str = "data"


@dataclass
class CatalogConfig:
    """Local track catalog configuration."""

    library_dir: str = "data/library"


@dataclass
class PlaylistConfig:
    """Playlist store configuration."""

    store_path: str = "data/playlists.yaml"


@dataclass
class OutputConfig:
    """Audio output configuration."""

    type: str = "local"
    device: str = "default"
    buffer_size: int = 960


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class Config:
    """Complete Soundstage configuration."""

    generation: GenerationConfig = field(default_factory=GenerationConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    playlists: PlaylistConfig = field(default_factory=PlaylistConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _validate_profile(name: str, profile: AudioProfile, duration_s: int, errors: list) -> None:
    if not 0.0 <= profile.volume <= 1.0:
        errors.append(f"Invalid {name} volume: {profile.volume} (must be 0.0-1.0)")
    for attr in ("fade_in_ms", "fade_out_ms", "crossfade_ms", "loop_fade_start_ms"):
        if getattr(profile, attr) < 0:
            errors.append(f"Invalid {name} {attr}: must not be negative")
    if profile.loop_fade_start_ms >= duration_s * 1000:
        errors.append(
            f"Invalid {name} loop_fade_start_ms: {profile.loop_fade_start_ms} "
            f"must be shorter than the generated duration ({duration_s}s)"
        )


def validate_config(config: Config) -> None:
    """
    Validate configuration.

    Raises:
        ConfigError: If configuration is invalid
    """
    errors = []

    gen = config.generation
    if not gen.base_url.startswith(("http://", "https://")):
        errors.append(f"Invalid generation base_url: {gen.base_url}")
    if gen.cache_ttl_s <= 0:
        errors.append("Generation cache_ttl_s must be positive")
    if gen.max_wait_s <= 0:
        errors.append("Generation max_wait_s must be positive")
    if gen.max_consecutive_errors < 1:
        errors.append("Generation max_consecutive_errors must be at least 1")
    if gen.rate_limit_max_retries < 0:
        errors.append("Generation rate_limit_max_retries must not be negative")
    if gen.rate_limit_max_delay_s < gen.rate_limit_base_delay_s:
        errors.append("Generation rate_limit_max_delay_s must be >= rate_limit_base_delay_s")
    for kind in ("music", "ambience"):
        params: GenerationParams = getattr(gen, kind)
        if params.duration <= 0:
            errors.append(f"Invalid {kind} generation duration: {params.duration}")

    # Audio
    _validate_profile("music", config.audio.music, gen.music.duration, errors)
    _validate_profile("ambience", config.audio.ambience, gen.ambience.duration, errors)
    if config.audio.frame_ms <= 0:
        errors.append(f"Invalid frame_ms: {config.audio.frame_ms}")

    # Playback
    if not 0 <= config.playback.default_volume <= 100:
        errors.append(f"Invalid default_volume: {config.playback.default_volume} (must be 0-100)")
    if config.playback.max_consecutive_failures < 1:
        errors.append("max_consecutive_failures must be at least 1")
    if config.playback.failure_backoff_ms < 0:
        errors.append("failure_backoff_ms must not be negative")

    # Output
    if config.output.type not in VALID_OUTPUT_TYPES:
        errors.append(
            f"Invalid output type: {config.output.type}. "
            f"Valid values: {sorted(VALID_OUTPUT_TYPES)}"
        )

    # Logging
    if config.logging.level.lower() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid log level: {config.logging.level}. "
            f"Valid values: {sorted(VALID_LOG_LEVELS)}"
        )

    if errors:
        raise ConfigError("Configuration validation failed:\n  - " + "\n  - ".join(errors))


def load_yaml_config(path: Path) -> dict:
    """
    Load configuration from YAML file.

    Args:
        path: Path to YAML file

    Returns:
        Configuration dictionary

    Raises:
        ConfigError: If file cannot be read or parsed
    """
    if not path.exists():
        logger.debug(f"Config file not found: {path}")
        return {}

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
            return data if data else {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML config: {e}")
    except IOError as e:
        raise ConfigError(f"Error reading config file: {e}")


def _set_nested(d: dict, path: tuple, value: Any) -> None:
    """Set a nested dictionary value using a path tuple."""
    for key in path[:-1]:
        d = d.setdefault(key, {})
    d[path[-1]] = value


def load_env_config() -> dict:
    """
    Load configuration from environment variables.

    Returns:
        Configuration dictionary with values from environment
    """
    result: dict = {}

    for env_var, path in ENV_MAPPINGS.items():
        value: Any = os.environ.get(env_var)
        if value is not None:
            _set_nested(result, path, value)

    return result


def _deep_merge(base: dict, override: dict) -> None:
    """Recursively merge override into base."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def merge_configs(*configs: dict) -> dict:
    """
    Deep merge multiple configuration dictionaries.
    Later configs override earlier ones.
    """
    result: dict = {}
    for config in configs:
        _deep_merge(result, config)
    return result


def _apply_section(target: Any, values: dict, section: str) -> None:
    """Copy known keys from a dict onto a dataclass, coercing to the default's type."""
    if not isinstance(values, dict):
        raise ConfigError(f"Section '{section}' must be a mapping")

    for key, value in values.items():
        if not hasattr(target, key):
            logger.warning(f"Unknown config key: {section}.{key}")
            continue
        current = getattr(target, key)
        if isinstance(current, (GenerationParams, AudioProfile)):
            _apply_section(current, value, f"{section}.{key}")
            continue
        try:
            if isinstance(current, bool):
                value = value if isinstance(value, bool) else str(value).lower() in (
                    "true", "1", "yes", "on"
                )
            elif isinstance(current, int):
                value = int(value)
            elif isinstance(current, float):
                value = float(value)
            elif isinstance(current, str):
                value = str(value)
        except (TypeError, ValueError):
            raise ConfigError(f"Invalid value for {section}.{key}: {value!r}")
        setattr(target, key, value)


def dict_to_config(d: dict) -> Config:
    """Convert a dictionary to Config dataclass."""
    config = Config()

    for section in (
        "generation",
        "audio",
        "playback",
        "cache",
        "catalog",
        "playlists",
        "output",
        "logging",
    ):
        if section in d:
            _apply_section(getattr(config, section), d[section], section)

    return config


def load_config(
    config_path: Optional[Path] = None,
    cli_args: Optional[dict] = None,
) -> Config:
    """
    Load configuration from all sources.

    Priority (highest to lowest):
    1. CLI arguments
    2. Environment variables
    3. Config file
    4. Defaults

    Args:
        config_path: Path to YAML config file
        cli_args: Dictionary of CLI arguments

    Returns:
        Merged Config object

    Raises:
        ConfigError: If configuration is invalid
    """
    configs = []

    if config_path:
        file_config = load_yaml_config(config_path)
        if file_config:
            configs.append(file_config)
            logger.debug(f"Loaded config from {config_path}")

    env_config = load_env_config()
    if env_config:
        configs.append(env_config)
        logger.debug("Loaded config from environment variables")

    if cli_args:
        configs.append(cli_args)
        logger.debug("Loaded config from CLI arguments")

    merged = merge_configs(*configs) if configs else {}

    # Convert to Config object (fills in defaults)
    config = dict_to_config(merged)

    validate_config(config)

    return config
