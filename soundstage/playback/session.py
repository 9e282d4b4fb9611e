"""
Per-output playback session state.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from .crossfade import CrossfadeScheduler
from .resource import AudioResource, LoopWindow
from .types import MoodRequest, PlaybackState, Playlist, Track

logger = logging.getLogger(__name__)


@dataclass
class PlaybackSession:
    """
    State of one active output binding.

    Created on join, destroyed on stop or leave. Every timer and background
    task the session starts is stored here so teardown can cancel it.
    """

    scope: str = "default"
    state: PlaybackState = PlaybackState.IDLE
    current_track: Optional[Track] = None
    volume: float = 1.0  # gain applied to new resources, 0.0-1.0

    # Sequencing
    shuffle_enabled: bool = False
    repeat_enabled: bool = False
    active_playlist: Optional[Playlist] = None
    playlist_index: int = 0
    shuffled_remainder: list[Track] = field(default_factory=list)

    # Looping mood playback
    mood: Optional[MoodRequest] = None
    loop_buffer: Optional[bytes] = None
    loop_window: Optional[LoopWindow] = None

    # Live resources and timers
    active_resources: set[AudioResource] = field(default_factory=set)
    crossfade: CrossfadeScheduler = field(default_factory=CrossfadeScheduler)
    ramp_task: Optional[asyncio.Task] = None
    completion_task: Optional[asyncio.Task] = None

    consecutive_failures: int = 0
    play_token: int = 0

    @property
    def is_playing(self) -> bool:
        return self.state == PlaybackState.PLAYING

    @property
    def pending_timers(self) -> int:
        """Count of timers and background tasks still scheduled."""
        count = 0
        if self.crossfade.pending:
            count += 1
        for task in (self.ramp_task, self.completion_task):
            if task is not None and not task.done():
                count += 1
        return count

    def track_resource(self, resource: AudioResource) -> None:
        self.active_resources.add(resource)

    def release_resource(self, resource: AudioResource) -> None:
        resource.close()
        self.active_resources.discard(resource)

    def prune_resources(self) -> None:
        """Forget resources that have already been closed."""
        self.active_resources = {r for r in self.active_resources if not r.closed}

    def close_resources(self) -> None:
        for resource in list(self.active_resources):
            resource.close()
        self.active_resources.clear()

    def cancel_timers(self) -> None:
        """Cancel every session-owned timer and task. Synchronous."""
        self.crossfade.cancel()
        for name in ("ramp_task", "completion_task"):
            task = getattr(self, name)
            if task is not None and not task.done() and task is not asyncio.current_task():
                task.cancel()
            setattr(self, name, None)

    def clear_loop(self) -> None:
        """Forget the looping mood and cancel its pending build."""
        self.crossfade.cancel()
        self.mood = None
        self.loop_buffer = None
        self.loop_window = None

    def clear_playlist(self) -> None:
        self.active_playlist = None
        self.playlist_index = 0
        self.shuffled_remainder = []
