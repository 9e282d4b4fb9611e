"""Playback engine, queueing and audio resource management."""

from .analyzer import AudioLevelAnalyzer
from .completion import CompletionAction, Transition, advance
from .crossfade import CrossfadeScheduler
from .engine import PlaybackEngine
from .errors import (
    FetchError,
    NotJoinedError,
    PlaybackError,
    ResourceError,
    TransportError,
    ValidationError,
)
from .events import EventEmitter
from .fetch import TrackFetcher
from .player import AudioPlayer, PlayerStatus
from .playlists import (
    MemoryPlaylistStore,
    PlaylistLibrary,
    PlaylistStore,
    YamlPlaylistStore,
    validate_playlist_name,
)
from .queue import QueueManager
from .resource import AudioResource, LoopWindow, ResourceFactory, build_filter_chain
from .session import PlaybackSession
from .track_cache import TrackCache
from .transcoder import FFmpegTranscoder, PcmStream, Transcoder
from .types import (
    EngineStatus,
    ManualQueueEntry,
    MoodRequest,
    PlaybackState,
    Playlist,
    Track,
)

__all__ = [
    # Engine
    "PlaybackEngine",
    "PlaybackSession",
    "EventEmitter",
    # Player and resources
    "AudioLevelAnalyzer",
    "AudioPlayer",
    "AudioResource",
    "FFmpegTranscoder",
    "LoopWindow",
    "PcmStream",
    "PlayerStatus",
    "ResourceFactory",
    "Transcoder",
    "build_filter_chain",
    # Sequencing
    "CompletionAction",
    "CrossfadeScheduler",
    "QueueManager",
    "Transition",
    "advance",
    # Playlists
    "MemoryPlaylistStore",
    "PlaylistLibrary",
    "PlaylistStore",
    "YamlPlaylistStore",
    "validate_playlist_name",
    # Fetching
    "TrackCache",
    "TrackFetcher",
    # Types
    "EngineStatus",
    "ManualQueueEntry",
    "MoodRequest",
    "PlaybackState",
    "Playlist",
    "Track",
    # Errors
    "FetchError",
    "NotJoinedError",
    "PlaybackError",
    "ResourceError",
    "TransportError",
    "ValidationError",
]
