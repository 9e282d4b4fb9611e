"""
Queue management.

Handles the manual FIFO queue and playlist sequencing (ordered, shuffled,
repeat) for one playback session.
"""

import logging
import random
from collections import deque
from typing import Optional

from .errors import ValidationError
from .playlists import PlaylistLibrary
from .session import PlaybackSession
from .types import ManualQueueEntry, Playlist, Track

logger = logging.getLogger(__name__)


class QueueManager:
    """
    Sequencing for a single session.

    The manual queue always takes priority over the active playlist.
    Without shuffle, the playlist is walked by an index that wraps, so the
    playlist repeats as a whole. With shuffle, a uniform permutation of the
    whole playlist is built when the remainder is empty and consumed from
    its end, so every track plays once before any repeats.
    """

    def __init__(
        self,
        session: PlaybackSession,
        library: Optional[PlaylistLibrary] = None,
        rng: Optional[random.Random] = None,
    ):
        self.session = session
        self._library = library
        self._rng = rng or random.Random()
        self._manual: deque[ManualQueueEntry] = deque()

    # =========================================================================
    # Manual queue
    # =========================================================================

    def enqueue(self, track: Track) -> ManualQueueEntry:
        entry = ManualQueueEntry(track=track)
        self._manual.append(entry)
        logger.debug(f"Queued '{track.name}' ({len(self._manual)} in queue)")
        return entry

    def dequeue(self) -> Optional[Track]:
        """Pop the oldest manual entry."""
        if not self._manual:
            return None
        return self._manual.popleft().track

    def require_dequeue(self) -> Track:
        """
        Pop the oldest manual entry.

        Raises:
            ValidationError: If the manual queue is empty
        """
        track = self.dequeue()
        if track is None:
            raise ValidationError("The queue is empty")
        return track

    def clear_manual(self) -> None:
        self._manual.clear()

    def manual_entries(self) -> list[ManualQueueEntry]:
        return list(self._manual)

    @property
    def has_manual(self) -> bool:
        return bool(self._manual)

    def __len__(self) -> int:
        return len(self._manual)

    # =========================================================================
    # Playlist sequencing
    # =========================================================================

    def set_playlist(self, playlist: Playlist) -> None:
        """Make ``playlist`` the active sequence, starting from its first track."""
        if not playlist.tracks:
            raise ValidationError(f"Playlist '{playlist.name}' is empty")
        self.session.active_playlist = playlist
        self.session.playlist_index = 0
        self.session.shuffled_remainder = []
        logger.info(f"Active playlist: {playlist.name} ({len(playlist)} tracks)")

    async def load_playlist(self, name: str) -> Playlist:
        """Activate a stored playlist of the session's scope."""
        if self._library is None:
            raise ValidationError("No playlist library configured")
        playlist = await self._library.require_playlist(self.session.scope, name)
        self.set_playlist(playlist)
        return playlist

    def clear_playlist(self) -> None:
        self.session.clear_playlist()

    def get_next(self) -> Optional[Track]:
        """
        Next playlist track, or None without an active (non-empty) playlist.
        """
        playlist = self.session.active_playlist
        if playlist is None or not playlist.tracks:
            return None

        if self.session.shuffle_enabled:
            if not self.session.shuffled_remainder:
                remainder = list(playlist.tracks)
                self._rng.shuffle(remainder)
                self.session.shuffled_remainder = remainder
                logger.debug(f"Reshuffled {len(remainder)} tracks")
            return self.session.shuffled_remainder.pop()

        index = self.session.playlist_index % len(playlist.tracks)
        self.session.playlist_index = index + 1
        return playlist.tracks[index]

    def toggle_shuffle(self) -> bool:
        self.session.shuffle_enabled = not self.session.shuffle_enabled
        self.session.shuffled_remainder = []
        logger.info(f"Shuffle {'enabled' if self.session.shuffle_enabled else 'disabled'}")
        return self.session.shuffle_enabled

    def toggle_repeat(self) -> bool:
        self.session.repeat_enabled = not self.session.repeat_enabled
        logger.info(f"Repeat {'enabled' if self.session.repeat_enabled else 'disabled'}")
        return self.session.repeat_enabled

    # =========================================================================
    # Playlist editing (delegates to the library)
    # =========================================================================

    async def add_to_playlist(self, name: str, track: Track) -> Playlist:
        if self._library is None:
            raise ValidationError("No playlist library configured")
        return await self._library.add_to_playlist(self.session.scope, name, track)

    def reset(self) -> None:
        """Drop the manual queue and playlist context."""
        self.clear_manual()
        self.clear_playlist()
