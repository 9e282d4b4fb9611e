"""
Soundstage - Real-time background music and ambience player.

Sequences tracks and playlists onto a live audio output, loops generated
mood music gaplessly, and materializes audio on demand through an
asynchronous generation job API.
"""

__version__ = "0.1.0"

from .app import SoundstageApp
from .config import Config, load_config, ConfigError

__all__ = [
    "__version__",
    "SoundstageApp",
    "Config",
    "load_config",
    "ConfigError",
]
