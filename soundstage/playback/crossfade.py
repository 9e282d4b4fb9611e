"""
Loop crossfade scheduling.

For a looping track of duration D with fade window F, a second resource
is built from the same buffer at D - F after playback started and armed
on the player, so it starts the instant the first one ends.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

BuildCallback = Callable[[], Awaitable[None]]


class CrossfadeScheduler:
    """
    Owns the single pending loop timer of a session.

    Scheduling always cancels the previous timer first, so a mood change
    or stop never leaves an orphaned build behind.
    """

    def __init__(self) -> None:
        self._handle: Optional[asyncio.TimerHandle] = None
        self._build_task: Optional[asyncio.Task] = None
        self.scheduled_at: Optional[float] = None  # loop time when scheduled
        self.fired_at: Optional[float] = None  # loop time the build started

    @property
    def pending(self) -> bool:
        return (self._handle is not None and not self._handle.cancelled()) or (
            self._build_task is not None and not self._build_task.done()
        )

    @property
    def handle(self) -> Optional[asyncio.TimerHandle]:
        return self._handle

    @staticmethod
    def delay_for(duration_s: float, fade_window_s: float) -> float:
        """Seconds from playback start until the next loop is built."""
        return max(0.0, duration_s - fade_window_s)

    def schedule(
        self,
        duration_s: float,
        fade_window_s: float,
        build: BuildCallback,
        started_at: Optional[float] = None,
    ) -> asyncio.TimerHandle:
        """
        Schedule ``build`` at D - F after ``started_at``.

        Args:
            duration_s: Track duration D
            fade_window_s: Fade window F
            build: Coroutine function that builds and arms the next resource
            started_at: Loop time playback started (defaults to now)
        """
        self.cancel()
        loop = asyncio.get_running_loop()
        now = loop.time()
        start = now if started_at is None else started_at
        delay = max(0.0, start + self.delay_for(duration_s, fade_window_s) - now)

        self.scheduled_at = now
        self.fired_at = None
        self._handle = loop.call_later(delay, self._fire, build)
        logger.debug(f"Next loop build in {delay:.2f}s (D={duration_s:.2f}s, F={fade_window_s:.2f}s)")
        return self._handle

    def _fire(self, build: BuildCallback) -> None:
        self._handle = None
        self.fired_at = asyncio.get_running_loop().time()
        self._build_task = asyncio.create_task(self._run_build(build))

    async def _run_build(self, build: BuildCallback) -> None:
        try:
            await build()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Loop preparation failed: {e}")

    def cancel(self) -> None:
        """Cancel the pending timer and any build in progress. Synchronous."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        task, self._build_task = self._build_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
