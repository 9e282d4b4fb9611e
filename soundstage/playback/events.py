"""
Engine lifecycle events.

Listeners receive plain data only. A listener may be a plain function or a
coroutine function; failures are logged and never reach the emitter.
"""

import asyncio
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Event names
TRACK_STARTED = "track_started"
TRACK_ENDED = "track_ended"
QUEUE_EMPTY = "queue_empty"
TRACK_CHANGED = "track_changed"
STATE_UPDATE = "state_update"
SHUFFLE_TOGGLED = "shuffle_toggled"
REPEAT_TOGGLED = "repeat_toggled"
PLAYER_ERROR = "player_error"

EVENT_NAMES = frozenset(
    {
        TRACK_STARTED,
        TRACK_ENDED,
        QUEUE_EMPTY,
        TRACK_CHANGED,
        STATE_UPDATE,
        SHUFFLE_TOGGLED,
        REPEAT_TOGGLED,
        PLAYER_ERROR,
    }
)

Listener = Callable[..., Any]


class EventEmitter:
    """Named-event fan-out."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}
        self._pending: set[asyncio.Task] = set()

    def on(self, event: str, listener: Listener) -> None:
        """Register a listener for an event."""
        if event not in EVENT_NAMES:
            raise ValueError(f"Unknown event: {event}")
        self._listeners.setdefault(event, []).append(listener)

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, event: str, *args: Any) -> None:
        """Call every listener for ``event``."""
        for listener in list(self._listeners.get(event, [])):
            try:
                result = listener(*args)
            except Exception as e:
                logger.error(f"Listener error for {event}: {e}")
                continue
            if asyncio.iscoroutine(result):
                task = asyncio.ensure_future(self._guard(event, result))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

    async def _guard(self, event: str, coro: Any) -> None:
        try:
            await coro
        except Exception as e:
            logger.error(f"Async listener error for {event}: {e}")

    async def drain(self) -> None:
        """Wait for async listeners still running."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
