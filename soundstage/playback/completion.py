"""
Completion handling.

When the player goes idle the engine calls ``advance`` once to decide what
happens next. ``advance`` does no I/O and starts no timers, so the
sequencing rules can be exercised without a player.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from . import events
from .queue import QueueManager
from .session import PlaybackSession
from .types import Track


class CompletionAction(Enum):
    PLAY_MANUAL = "play_manual"
    REPLAY = "replay"
    PLAY_PLAYLIST = "play_playlist"
    IDLE = "idle"


@dataclass
class Transition:
    """Outcome of one completion step."""

    action: CompletionAction
    track: Optional[Track] = None
    events: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)

    @property
    def plays(self) -> bool:
        return self.track is not None


def advance(session: PlaybackSession, queue: QueueManager) -> Transition:
    """
    Pick the next action after the current track finished.

    Priority: manual queue, then repeat of the current track, then the
    active playlist, otherwise idle.
    """
    track = queue.dequeue()
    if track is not None:
        return Transition(
            CompletionAction.PLAY_MANUAL,
            track,
            [(events.TRACK_CHANGED, (track.to_dict(),))],
        )

    if session.repeat_enabled and session.current_track is not None:
        return Transition(CompletionAction.REPLAY, session.current_track)

    track = queue.get_next()
    if track is not None:
        return Transition(
            CompletionAction.PLAY_PLAYLIST,
            track,
            [(events.TRACK_CHANGED, (track.to_dict(),))],
        )

    return Transition(
        CompletionAction.IDLE,
        None,
        [
            (events.QUEUE_EMPTY, ()),
            (events.TRACK_ENDED, ()),
            (events.STATE_UPDATE, ({"is_playing": False, "current_track": None},)),
        ],
    )
