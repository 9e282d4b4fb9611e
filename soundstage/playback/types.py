"""
Playback data types.
"""

import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Optional


class PlaybackState(IntEnum):
    """
    Session playback state.

    IDLE -> LOADING (fetching bytes)
    LOADING -> PLAYING (resource started)
    LOADING -> IDLE (fetch failure, engine falls back to the next item)
    PLAYING <-> PAUSED
    PLAYING/PAUSED -> IDLE (natural completion or stop)
    """

    IDLE = 1
    LOADING = 2
    PLAYING = 3
    PAUSED = 4


@dataclass(frozen=True)
class Track:
    """
    A playable track as produced by the catalog.

    Attributes:
        name: Unique name (doubles as the track id)
        source_locator: URL or filesystem path to the encoded audio
        artist: Artist name
        title: Track title
        added_at: Unix timestamp the track entered the catalog or queue
        duration_s: Known duration in seconds (0 if unknown)
    """

    name: str
    source_locator: str
    artist: str = "Unknown Artist"
    title: str = ""
    added_at: float = field(default_factory=time.time)
    duration_s: float = 0.0

    @property
    def id(self) -> str:
        """Track identifier."""
        return self.name

    def to_dict(self) -> dict[str, Any]:
        """Convert to plain data for events and persistence."""
        return {
            "name": self.name,
            "source_locator": self.source_locator,
            "artist": self.artist,
            "title": self.title or self.name,
            "added_at": self.added_at,
            "duration_s": self.duration_s,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Track":
        """Build from plain data."""
        return cls(
            name=str(data["name"]),
            source_locator=str(data.get("source_locator", "")),
            artist=data.get("artist", "Unknown Artist"),
            title=data.get("title", ""),
            added_at=float(data.get("added_at", time.time())),
            duration_s=float(data.get("duration_s", 0.0)),
        )


@dataclass
class Playlist:
    """Named, ordered list of tracks within a scope."""

    name: str
    tracks: list[Track] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    last_modified: float = field(default_factory=time.time)

    def __len__(self) -> int:
        return len(self.tracks)

    def contains(self, track_id: str) -> bool:
        """Check whether a track id is already in the playlist."""
        return any(t.id == track_id for t in self.tracks)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "tracks": [t.to_dict() for t in self.tracks],
            "created_at": self.created_at,
            "last_modified": self.last_modified,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Playlist":
        return cls(
            name=str(data["name"]),
            tracks=[Track.from_dict(t) for t in data.get("tracks") or []],
            created_at=float(data.get("created_at", time.time())),
            last_modified=float(data.get("last_modified", time.time())),
        )


@dataclass(frozen=True)
class ManualQueueEntry:
    """A track explicitly queued by a user."""

    track: Track
    added_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class MoodRequest:
    """What a looping mood/ambience playback was started from."""

    key: str
    kind: str = "music"
    loop: bool = True


@dataclass
class EngineStatus:
    """Plain-data snapshot of a session for reporting."""

    state: PlaybackState
    current_track: Optional[Track]
    volume: int
    shuffle_enabled: bool
    repeat_enabled: bool
    active_playlist: Optional[str]
    queue_length: int
    active_resources: int

    @property
    def is_playing(self) -> bool:
        return self.state == PlaybackState.PLAYING

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.name.lower(),
            "is_playing": self.is_playing,
            "current_track": self.current_track.to_dict() if self.current_track else None,
            "volume": self.volume,
            "shuffle_enabled": self.shuffle_enabled,
            "repeat_enabled": self.repeat_enabled,
            "active_playlist": self.active_playlist,
            "queue_length": self.queue_length,
            "active_resources": self.active_resources,
        }
