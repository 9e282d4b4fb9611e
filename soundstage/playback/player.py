"""
Audio player.

The single logical player of a session. It pulls one frame at a time from
its current resource, mixes in an incoming resource while a crossfade is
running, and writes the result to the subscribed sink in real time.
"""

import asyncio
import logging
from enum import IntEnum
from typing import TYPE_CHECKING, Callable, Optional

import numpy as np

from .errors import TransportError
from .resource import AudioResource

if TYPE_CHECKING:
    from soundstage.sinks.base import OutputSink

logger = logging.getLogger(__name__)

# Re-anchor the pacing clock when this far behind (seconds)
MAX_LAG_S = 0.2

# Event callback types
IdleCallback = Callable[[AudioResource], None]  # finished resource
LoopedCallback = Callable[[AudioResource, AudioResource], None]  # old, new
AutoPausedCallback = Callable[[], None]
ErrorCallback = Callable[[Exception], None]


class PlayerStatus(IntEnum):
    """Player status."""

    IDLE = 1
    BUFFERING = 2
    PLAYING = 3
    PAUSED = 4
    AUTO_PAUSED = 5  # No sink subscribed


class AudioPlayer:
    """
    Frame pump between AudioResources and an OutputSink.

    Only one resource is bound at a time, except while a crossfade is in
    progress, when the outgoing and incoming resources are mixed.
    """

    def __init__(self, frame_ms: int = 20):
        self.frame_ms = frame_ms
        self._status = PlayerStatus.IDLE
        self._sink: Optional["OutputSink"] = None

        self._current: Optional[AudioResource] = None
        self._armed: Optional[AudioResource] = None
        self._incoming: Optional[AudioResource] = None
        self._crossfade_frames = 0
        self._crossfade_done = 0

        self._generation = 0  # bumped whenever the current resource is replaced externally
        self._task: Optional[asyncio.Task] = None
        self._cancelled_task: Optional[asyncio.Task] = None
        self._wake: Optional[asyncio.Event] = None

        # Event callbacks
        self._on_idle: Optional[IdleCallback] = None
        self._on_looped: Optional[LoopedCallback] = None
        self._on_crossfaded: Optional[LoopedCallback] = None
        self._on_auto_paused: Optional[AutoPausedCallback] = None
        self._on_error: Optional[ErrorCallback] = None

    # =========================================================================
    # State
    # =========================================================================

    @property
    def status(self) -> PlayerStatus:
        return self._status

    @property
    def current(self) -> Optional[AudioResource]:
        return self._current

    @property
    def armed(self) -> Optional[AudioResource]:
        return self._armed

    @property
    def incoming(self) -> Optional[AudioResource]:
        return self._incoming

    @property
    def sink(self) -> Optional["OutputSink"]:
        return self._sink

    def resources(self) -> list[AudioResource]:
        """Resources currently owned by the player."""
        return [r for r in (self._current, self._incoming, self._armed) if r is not None]

    # =========================================================================
    # Sink binding (called by OutputSink.subscribe/unsubscribe)
    # =========================================================================

    def attach_sink(self, sink: "OutputSink") -> None:
        self._sink = sink
        if self._status == PlayerStatus.AUTO_PAUSED:
            logger.debug("Sink attached, leaving auto-pause")
            self._status = PlayerStatus.PLAYING
            self._wake_loop()

    def detach_sink(self, sink: "OutputSink") -> None:
        if self._sink is sink:
            self._sink = None

    # =========================================================================
    # Playback control
    # =========================================================================

    def play(self, resource: AudioResource) -> None:
        """Replace whatever is playing with ``resource``."""
        self._release_all(keep=resource)
        self._generation += 1
        self._current = resource
        self._status = PlayerStatus.BUFFERING
        self._ensure_running()

    def arm_next(self, resource: AudioResource) -> None:
        """
        Queue ``resource`` to start the instant the current one ends.

        The armed resource takes over the outgoing resource's gain.
        """
        if self._armed is not None and self._armed is not resource:
            self._armed.close()
        self._armed = resource

    def disarm(self) -> None:
        if self._armed is not None:
            self._armed.close()
            self._armed = None

    def crossfade(self, resource: AudioResource, duration_ms: int) -> None:
        """
        Overlap ``resource`` with the current one for ``duration_ms``.

        The two streams are summed; gain envelopes are driven through each
        resource's volume. When the window ends the outgoing resource is closed.
        """
        if self._current is None or self._status == PlayerStatus.IDLE:
            self.play(resource)
            return
        if self._incoming is not None:
            self._finish_crossfade()
        self.disarm()
        self._incoming = resource
        self._crossfade_frames = max(1, duration_ms // self.frame_ms)
        self._crossfade_done = 0

    def skip(self) -> bool:
        """
        End the current resource now and report it as finished.

        Any armed or incoming resource is dropped, so the idle callback
        decides what plays next.
        """
        finished = self._current
        if finished is None:
            return False
        self.disarm()
        if self._incoming is not None:
            self._incoming.close()
            self._incoming = None
        finished.close()

        running = self._task is not None and not self._task.done()
        if running and self._status in (PlayerStatus.PLAYING, PlayerStatus.BUFFERING):
            # The frame loop sees the closed stream and goes idle itself
            return True

        self._generation += 1
        self._current = None
        self._status = PlayerStatus.IDLE
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
            self._cancelled_task = task
        self._notify(self._on_idle, finished)
        return True

    def pause(self) -> bool:
        if self._status not in (PlayerStatus.PLAYING, PlayerStatus.BUFFERING):
            return False
        self._status = PlayerStatus.PAUSED
        return True

    def unpause(self) -> bool:
        if self._status != PlayerStatus.PAUSED:
            return False
        self._status = PlayerStatus.PLAYING
        self._wake_loop()
        return True

    def stop(self) -> None:
        """Stop immediately and close every resource. No idle event is emitted."""
        self._release_all()
        self._generation += 1
        self._status = PlayerStatus.IDLE
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
            self._cancelled_task = task

    async def wait_stopped(self) -> None:
        """Wait for a cancelled frame loop to unwind."""
        task, self._cancelled_task = self._cancelled_task, None
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    # =========================================================================
    # Event registration
    # =========================================================================

    def on_idle(self, callback: Optional[IdleCallback]) -> None:
        """Register callback for natural end of playback."""
        self._on_idle = callback

    def on_looped(self, callback: Optional[LoopedCallback]) -> None:
        """Register callback for gapless hand-off to an armed resource."""
        self._on_looped = callback

    def on_crossfaded(self, callback: Optional[LoopedCallback]) -> None:
        """Register callback for the end of a crossfade window."""
        self._on_crossfaded = callback

    def on_auto_paused(self, callback: Optional[AutoPausedCallback]) -> None:
        """Register callback for auto-pause (no sink subscribed)."""
        self._on_auto_paused = callback

    def on_error(self, callback: Optional[ErrorCallback]) -> None:
        """Register callback for transport and stream errors."""
        self._on_error = callback

    # =========================================================================
    # Frame loop
    # =========================================================================

    def _ensure_running(self) -> None:
        if self._wake is None:
            self._wake = asyncio.Event()
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())
        else:
            self._wake_loop()

    def _wake_loop(self) -> None:
        if self._wake is not None:
            self._wake.set()

    async def _wait_for_wake(self) -> None:
        assert self._wake is not None
        self._wake.clear()
        await self._wake.wait()

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        frame_s = self.frame_ms / 1000
        deadline = loop.time()
        try:
            while self._current is not None:
                if self._status == PlayerStatus.PAUSED:
                    await self._wait_for_wake()
                    deadline = loop.time()
                    continue

                if self._sink is None or not self._sink.is_subscribed:
                    if self._status != PlayerStatus.AUTO_PAUSED:
                        self._status = PlayerStatus.AUTO_PAUSED
                        logger.info("Player auto-paused: no sink subscribed")
                        self._notify(self._on_auto_paused)
                        # The callback may have resubscribed already
                        deadline = loop.time()
                        continue
                    await self._wait_for_wake()
                    deadline = loop.time()
                    continue

                generation = self._generation
                frame = await self._next_frame()
                if generation != self._generation:
                    # Replaced or stopped while reading
                    continue
                if frame is None:
                    if self._handle_end_of_stream():
                        continue
                    return

                if self._status == PlayerStatus.BUFFERING:
                    self._status = PlayerStatus.PLAYING

                await self._sink.write(frame)

                deadline += frame_s
                delay = deadline - loop.time()
                if delay > 0:
                    await asyncio.sleep(delay)
                elif delay < -MAX_LAG_S:
                    deadline = loop.time()
        except asyncio.CancelledError:
            raise
        except TransportError as e:
            logger.error(f"Output transport error: {e}")
            self._fail(e)
        except Exception as e:
            logger.error(f"Player frame loop error: {e}")
            self._fail(e)

    async def _next_frame(self) -> Optional[np.ndarray]:
        assert self._current is not None
        frame = await self._current.read_frame()
        if self._incoming is None:
            return frame

        incoming_frame = await self._incoming.read_frame()
        self._crossfade_done += 1
        if frame is None:
            # Outgoing stream ran out first: the incoming one takes over
            self._finish_crossfade()
            return incoming_frame
        if incoming_frame is not None:
            mixed = frame.astype(np.int32) + incoming_frame.astype(np.int32)
            frame = np.clip(mixed, -32768, 32767).astype(np.int16)
        if self._crossfade_done >= self._crossfade_frames or incoming_frame is None:
            self._finish_crossfade()
        return frame

    def _finish_crossfade(self) -> None:
        outgoing, incoming = self._current, self._incoming
        self._incoming = None
        if incoming is None:
            return
        if incoming.ended:
            incoming.close()
            logger.debug("Incoming resource ended before the crossfade finished")
            return
        self._current = incoming
        if outgoing is not None:
            outgoing.close()
            self._notify(self._on_crossfaded, outgoing, incoming)

    def _handle_end_of_stream(self) -> bool:
        """Advance past an exhausted resource. Returns False when the player went idle."""
        finished = self._current
        assert finished is not None
        finished.close()

        if self._armed is not None:
            nxt, self._armed = self._armed, None
            nxt.set_volume(finished.volume)
            self._current = nxt
            logger.debug(f"Gapless hand-off {finished.id} -> {nxt.id}")
            self._notify(self._on_looped, finished, nxt)
            return True

        self._current = None
        self._status = PlayerStatus.IDLE
        self._task = None
        self._notify(self._on_idle, finished)
        return False

    def _fail(self, error: Exception) -> None:
        self._release_all()
        self._status = PlayerStatus.IDLE
        self._task = None
        self._notify(self._on_error, error)

    def _release_all(self, keep: Optional[AudioResource] = None) -> None:
        for resource in self.resources():
            if resource is not keep:
                resource.close()
        self._current = None
        self._incoming = None
        self._armed = None

    def _notify(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Player callback error: {e}")


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
