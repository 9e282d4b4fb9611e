"""
Playback engine.

Owns the single player of an output binding, dispatches playback
commands, reacts to the player going idle by asking the completion
handler for the next item, and emits lifecycle events.
"""

import asyncio
import logging
import random
from typing import TYPE_CHECKING, Any, Optional

from soundstage.config import AudioConfig, PlaybackConfig
from soundstage.generation import GenerationError

from . import events
from .completion import CompletionAction, advance
from .errors import FetchError, NotJoinedError, ResourceError, TransportError, ValidationError
from .events import EventEmitter
from .fetch import TrackFetcher
from .player import AudioPlayer
from .playlists import PlaylistLibrary
from .queue import QueueManager
from .resource import AudioResource, LoopWindow, ResourceFactory
from .session import PlaybackSession
from .track_cache import TrackCache
from .types import EngineStatus, MoodRequest, PlaybackState, Playlist, Track

if TYPE_CHECKING:
    from soundstage.catalog import TrackCatalog
    from soundstage.sinks.base import OutputSink

logger = logging.getLogger(__name__)

ALL_TRACKS_PLAYLIST = "All Tracks"


class PlaybackEngine:
    """
    Root of the playback core for one output.

    Mutating operations do their bookkeeping synchronously and then await
    I/O. Each play attempt takes a fresh token from the session; a fetch
    that completes after another play or a stop sees a stale token and
    discards its result.

    State machine (PlaybackSession.state):
        IDLE -> LOADING (fetching bytes)
        LOADING -> PLAYING (resource started)
        LOADING -> IDLE (fetch failure, next-item fallback)
        LOADING -> PLAYING/PAUSED (failed load while earlier audio keeps playing)
        PLAYING <-> PAUSED
        PLAYING/PAUSED -> IDLE (natural completion or stop)
    """

    def __init__(
        self,
        resources: ResourceFactory,
        audio: Optional[AudioConfig] = None,
        playback: Optional[PlaybackConfig] = None,
        track_cache: Optional[TrackCache] = None,
        fetcher: Optional[TrackFetcher] = None,
        library: Optional[PlaylistLibrary] = None,
        catalog: Optional["TrackCatalog"] = None,
        scope: str = "default",
        rng: Optional[random.Random] = None,
    ):
        self.audio = audio or AudioConfig()
        self.playback = playback or PlaybackConfig()
        self.resources = resources
        self.track_cache = track_cache
        self.fetcher = fetcher or TrackFetcher()
        self.library = library
        self.catalog = catalog
        self.scope = scope
        self._rng = rng

        self.events = EventEmitter()
        self.player = AudioPlayer(frame_ms=self.audio.frame_ms)
        self.session: Optional[PlaybackSession] = None
        self.queue: Optional[QueueManager] = None
        self._sink: Optional["OutputSink"] = None
        self._default_volume = self.playback.default_volume / 100.0

        # Wire up player callbacks
        self.player.on_idle(self._on_player_idle)
        self.player.on_looped(self._on_player_looped)
        self.player.on_crossfaded(self._on_player_crossfaded)
        self.player.on_auto_paused(self._on_player_auto_paused)
        self.player.on_error(self._on_player_error)

    def on(self, event: str, listener: Any) -> None:
        """Register an event listener (see ``events`` for names)."""
        self.events.on(event, listener)

    # =========================================================================
    # Binding
    # =========================================================================

    def join(self, sink: "OutputSink") -> bool:
        """
        Bind the output sink, tearing down any previous binding.

        Returns:
            True if the player now feeds ``sink``
        """
        if self._sink is not None and self._sink is not sink:
            self._release_sink()
        if not sink.subscribe(self.player):
            logger.error(f"Failed to subscribe player to {sink.name}")
            return False

        self._sink = sink
        sink.on_disconnect(self._on_sink_disconnect)
        if self.session is None:
            self.session = PlaybackSession(scope=self.scope, volume=self._default_volume)
            self.queue = QueueManager(self.session, self.library, self._rng)
            logger.info(f"Session started on {sink.name}")
        return True

    async def leave(self) -> bool:
        """Stop playback and drop the output binding."""
        if self.session is None and self._sink is None:
            return False
        if self.session is not None:
            await self.stop()
        else:
            self._release_sink()
        return True

    @property
    def joined(self) -> bool:
        return self.session is not None

    def _require_session(self) -> PlaybackSession:
        if self.session is None or self.queue is None:
            raise NotJoinedError("Not connected to an output")
        return self.session

    def _release_sink(self) -> None:
        sink, self._sink = self._sink, None
        if sink is not None:
            sink.on_disconnect(None)
            sink.destroy()

    def _is_live(self, session: PlaybackSession, token: int) -> bool:
        return self.session is session and session.play_token == token

    # =========================================================================
    # Playback Control
    # =========================================================================

    async def play(self, track: Track) -> bool:
        """
        Fetch and play a track, replacing whatever is playing.

        On failure the engine falls back to the next queued item.

        Returns:
            True if playback started
        """
        session = self._require_session()
        session.clear_loop()
        session.consecutive_failures = 0
        try:
            return await self._start_track(session, track)
        except (FetchError, ResourceError) as e:
            self._report_failure(session, track, e)
            self._schedule_completion(session, after_failure=True)
            return False

    async def enqueue(self, track: Track) -> int:
        """
        Queue a track, or play it right away when nothing is playing.

        Returns:
            0 if playback started, else the track's position in the queue
        """
        session = self._require_session()
        assert self.queue is not None
        if session.state == PlaybackState.IDLE and self.player.current is None:
            await self.play(track)
            return 0
        self.queue.enqueue(track)
        return len(self.queue)

    async def play_next_queued(self) -> bool:
        """
        Play the oldest queued track now.

        Raises:
            ValidationError: If the queue is empty
        """
        self._require_session()
        assert self.queue is not None
        return await self.play(self.queue.require_dequeue())

    async def play_playlist(self, name: str) -> bool:
        """
        Play a stored playlist from its first track.

        Raises:
            ValidationError: If the playlist is unknown or empty
        """
        self._require_session()
        assert self.queue is not None
        playlist = await self.queue.load_playlist(name)
        return await self._play_from_playlist(playlist)

    async def play_all(self, shuffle: bool = False) -> bool:
        """
        Play the whole catalog as an ad-hoc playlist.

        Raises:
            ValidationError: If no catalog is configured or it is empty
        """
        session = self._require_session()
        assert self.queue is not None
        if self.catalog is None:
            raise ValidationError("No track catalog configured")
        tracks = await self.catalog.tracks()
        if not tracks:
            raise ValidationError("No tracks available")

        self.queue.set_playlist(Playlist(name=ALL_TRACKS_PLAYLIST, tracks=tracks))
        if shuffle and not session.shuffle_enabled:
            self.toggle_shuffle()
        return await self._play_from_playlist(session.active_playlist)

    async def _play_from_playlist(self, playlist: Optional[Playlist]) -> bool:
        assert self.queue is not None
        track = self.queue.get_next()
        if track is None:
            raise ValidationError(f"Playlist '{playlist.name if playlist else ''}' is empty")
        self.events.emit(events.TRACK_CHANGED, track.to_dict())
        return await self.play(track)

    async def pause(self) -> bool:
        session = self.session
        if session is None or session.state != PlaybackState.PLAYING:
            return False
        if not self.player.pause():
            return False
        session.state = PlaybackState.PAUSED
        self._emit_state(session)
        logger.info("Paused")
        return True

    async def resume(self) -> bool:
        session = self.session
        if session is None or session.state != PlaybackState.PAUSED:
            return False
        if not self.player.unpause():
            return False
        session.state = PlaybackState.PLAYING
        self._emit_state(session)
        logger.info("Resumed")
        return True

    async def skip(self) -> bool:
        """
        End the current track. The completion handler picks what follows.
        """
        session = self.session
        if session is None or self.player.current is None:
            return False
        session.clear_loop()
        logger.info(f"Skipping {session.current_track.name if session.current_track else 'track'}")
        return self.player.skip()

    async def stop(self) -> bool:
        """
        Stop playback and destroy the session.

        Every timer is cancelled, the manual queue and playlist context are
        dropped and the sink is detached before the first suspension point.
        """
        session = self.session
        if session is None:
            return False

        session.play_token += 1
        session.cancel_timers()
        session.clear_loop()
        if self.queue is not None:
            self.queue.reset()
        self.player.stop()
        session.close_resources()
        session.state = PlaybackState.IDLE
        session.current_track = None
        self._release_sink()
        self.session = None
        self.queue = None

        self.events.emit(events.TRACK_ENDED)
        self._emit_state(session)
        logger.info("Playback stopped")
        await self.player.wait_stopped()
        return True

    async def dispose(self) -> None:
        """Stop everything and release network sessions."""
        await self.stop()
        self._release_sink()
        await self.fetcher.close()
        await self.events.drain()

    # =========================================================================
    # Volume and fades
    # =========================================================================

    def set_volume(self, level: float, ramp_ms: Optional[int] = None) -> float:
        """
        Set volume (0-100) on every live resource and for future ones.

        The gain is animated linearly over ``ramp_ms``.

        Returns:
            The clamped level
        """
        level = max(0.0, min(100.0, float(level)))
        gain = level / 100.0
        self._default_volume = gain

        session = self.session
        if session is None:
            return level
        session.volume = gain
        if session.ramp_task is not None and not session.ramp_task.done():
            session.ramp_task.cancel()
            session.ramp_task = None

        targets = {resource: gain for resource in self._audible_resources()}
        if not targets:
            return level
        if not ramp_ms or ramp_ms <= 0:
            for resource in targets:
                resource.set_volume(gain)
        else:
            session.ramp_task = asyncio.create_task(self._ramp(targets, ramp_ms))
        logger.info(f"Volume set to {level:g}")
        return level

    def _audible_resources(self) -> list[AudioResource]:
        # Armed loop resources stay silent until they take over
        return [r for r in self.player.resources() if r is not self.player.armed]

    async def _ramp(self, targets: dict[AudioResource, float], duration_ms: int) -> None:
        """Linear gain ramp from each resource's current gain to its target."""
        loop = asyncio.get_running_loop()
        start = loop.time()
        duration_s = duration_ms / 1000
        initial = {resource: resource.volume for resource in targets}
        step_s = self.audio.volume_ramp_step_ms / 1000

        while True:
            await asyncio.sleep(step_s)
            progress = min((loop.time() - start) / duration_s, 1.0)
            for resource, target in targets.items():
                if not resource.closed:
                    begin = initial[resource]
                    resource.set_volume(begin + (target - begin) * progress)
            if progress >= 1.0:
                return

    async def fade_out_and_stop(self, duration_ms: Optional[int] = None) -> bool:
        """
        Fade every live resource to silence, then stop.

        Finishes early once every resource is silent.
        """
        session = self.session
        if session is None:
            return False
        if duration_ms is None:
            duration_ms = self.audio.music.fade_out_ms

        session.clear_loop()
        self.player.disarm()
        token = session.play_token
        if session.ramp_task is not None:
            session.ramp_task.cancel()
            session.ramp_task = None

        resources = self._audible_resources()
        initial = {resource: resource.volume for resource in resources}
        analyzer = self.resources.analyzer
        loop = asyncio.get_running_loop()
        start = loop.time()
        step_s = self.audio.volume_ramp_step_ms / 1000
        logger.info(f"Fading out over {duration_ms}ms")

        while duration_ms > 0:
            await asyncio.sleep(step_s)
            if not self._is_live(session, token):
                # Another command took over
                return False
            progress = min((loop.time() - start) * 1000 / duration_ms, 1.0)
            for resource, begin in initial.items():
                resource.set_volume(begin * (1.0 - progress))
            silent = all(
                r.closed or (r.playback_duration_ms > 0 and r.level <= analyzer.silence_threshold)
                for r in resources
            )
            if progress >= 1.0 or silent:
                break

        return await self.stop()

    async def crossfade_to(
        self, track: Track, fade_out_ms: int = 2000, fade_in_ms: int = 2000
    ) -> bool:
        """
        Overlap a new track with the current one.

        The incoming resource starts at gain 0 and rises to the session
        volume over ``fade_in_ms`` while the outgoing audio falls to silence
        over ``fade_out_ms``.
        """
        session = self._require_session()
        if self.player.current is None:
            return await self.play(track)

        previous = session.state
        session.clear_loop()
        self.player.disarm()
        session.play_token += 1
        token = session.play_token
        session.state = PlaybackState.LOADING
        try:
            data = await self.fetcher.fetch(track)
            if not self._is_live(session, token):
                return False
            incoming = await self.resources.create(data, volume=0.0, is_initial=False, label=track.name)
        except (FetchError, ResourceError) as e:
            if self._is_live(session, token):
                self._settle_failed_load(session, previous)
                self._report_failure(session, track, e)
                if self.player.current is None:
                    self._schedule_completion(session, after_failure=True)
            return False
        if not self._is_live(session, token):
            incoming.close()
            return False

        outgoing = self._audible_resources()
        if session.ramp_task is not None:
            session.ramp_task.cancel()

        self.player.crossfade(incoming, max(fade_out_ms, fade_in_ms))
        session.track_resource(incoming)
        session.current_track = track
        session.state = PlaybackState.PLAYING
        session.ramp_task = asyncio.create_task(
            self._crossfade_ramp(outgoing, incoming, session.volume, fade_out_ms, fade_in_ms)
        )
        logger.info(f"Crossfading to {track.name}")
        self.events.emit(events.TRACK_CHANGED, track.to_dict())
        self.events.emit(events.TRACK_STARTED, track.to_dict())
        self._emit_state(session)
        return True

    async def _crossfade_ramp(
        self,
        outgoing: list[AudioResource],
        incoming: AudioResource,
        target: float,
        fade_out_ms: int,
        fade_in_ms: int,
    ) -> None:
        loop = asyncio.get_running_loop()
        start = loop.time()
        initial = {resource: resource.volume for resource in outgoing}
        step_s = self.audio.volume_ramp_step_ms / 1000

        while True:
            await asyncio.sleep(step_s)
            elapsed_ms = (loop.time() - start) * 1000
            out_progress = min(elapsed_ms / fade_out_ms, 1.0) if fade_out_ms > 0 else 1.0
            in_progress = min(elapsed_ms / fade_in_ms, 1.0) if fade_in_ms > 0 else 1.0
            for resource, begin in initial.items():
                resource.set_volume(begin * (1.0 - out_progress))
            incoming.set_volume(target * in_progress)
            if out_progress >= 1.0 and in_progress >= 1.0:
                return

    # =========================================================================
    # Mood playback
    # =========================================================================

    async def play_mood(self, key: str, kind: str = "music", loop: bool = True) -> bool:
        """
        Play cached or freshly generated mood music or ambience.

        With ``loop`` the track repeats gaplessly: shortly before the end a
        second resource is built from the same buffer and armed on the
        player.

        Returns:
            True if playback started
        """
        session = self._require_session()
        if self.track_cache is None:
            raise ValidationError("Generated audio is not configured")

        previous = session.state
        session.clear_loop()
        self.player.disarm()
        session.play_token += 1
        token = session.play_token
        session.state = PlaybackState.LOADING
        self._emit_state(session)

        try:
            path = await self.track_cache.get_or_generate(key, kind=kind)
            if not self._is_live(session, token):
                return False
            data = self.track_cache.read(key, kind)
        except (GenerationError, FetchError, ValidationError) as e:
            if self._is_live(session, token):
                self._settle_failed_load(session, previous)
                self._report_failure(session, None, e)
            return False

        profile = self.audio.profile(kind)
        duration_s = self.track_cache.duration_s(path)
        window = LoopWindow(duration_s, profile.crossfade_ms / 1000) if loop else None
        track = Track(
            name=f"{kind}:{key}",
            source_locator=str(path),
            artist="Soundstage",
            title=key,
            duration_s=duration_s,
        )

        try:
            resource = await self.resources.create(
                data,
                volume=session.volume,
                is_initial=True,
                loop=window,
                fade_in_s=profile.fade_in_ms / 1000,
                pre_gain=profile.volume,
                label=track.name,
            )
        except ResourceError as e:
            if self._is_live(session, token):
                self._settle_failed_load(session, previous)
                self._report_failure(session, track, e)
            return False
        if not self._is_live(session, token):
            resource.close()
            return False

        session.mood = MoodRequest(key=key, kind=kind, loop=loop)
        self._bind(session, track, resource)
        if loop:
            session.loop_buffer = data
            session.loop_window = window
            self._schedule_loop(session, token)
        logger.info(f"Playing {kind} '{key}'" + (" (looping)" if loop else ""))
        return True

    def _schedule_loop(self, session: PlaybackSession, token: int) -> None:
        assert session.loop_window is not None and session.mood is not None
        profile = self.audio.profile(session.mood.kind)

        async def build() -> None:
            await self._prepare_next_loop(session, token)

        session.crossfade.schedule(
            session.loop_window.duration_s,
            profile.loop_fade_start_ms / 1000,
            build,
        )

    async def _prepare_next_loop(self, session: PlaybackSession, token: int) -> None:
        """Build the next loop iteration at gain 0 and arm it on the player."""
        if not self._is_live(session, token) or session.mood is None or session.loop_buffer is None:
            return
        profile = self.audio.profile(session.mood.kind)
        resource = await self.resources.create(
            session.loop_buffer,
            volume=0.0,
            is_initial=False,
            loop=session.loop_window,
            pre_gain=profile.volume,
            label=f"{session.mood.kind}:{session.mood.key} (loop)",
        )
        if not self._is_live(session, token) or session.mood is None:
            resource.close()
            return
        session.track_resource(resource)
        self.player.arm_next(resource)
        logger.debug(f"Next loop armed: {resource}")

    # =========================================================================
    # Sequencing
    # =========================================================================

    def toggle_shuffle(self) -> bool:
        self._require_session()
        assert self.queue is not None
        enabled = self.queue.toggle_shuffle()
        self.events.emit(events.SHUFFLE_TOGGLED, enabled)
        return enabled

    def toggle_repeat(self) -> bool:
        self._require_session()
        assert self.queue is not None
        enabled = self.queue.toggle_repeat()
        self.events.emit(events.REPEAT_TOGGLED, enabled)
        return enabled

    async def add_to_playlist(self, name: str, track: Track) -> Playlist:
        """
        Raises:
            ValidationError: Unknown playlist or duplicate track
        """
        self._require_session()
        assert self.queue is not None
        return await self.queue.add_to_playlist(name, track)

    def get_queue(self) -> dict[str, Any]:
        """Current track and manual queue as plain data."""
        session = self.session
        if session is None or self.queue is None:
            return {"current": None, "queue": []}
        return {
            "current": session.current_track.to_dict() if session.current_track else None,
            "queue": [
                {**entry.track.to_dict(), "queued_at": entry.added_at}
                for entry in self.queue.manual_entries()
            ],
        }

    def status(self) -> EngineStatus:
        session = self.session
        if session is None:
            return EngineStatus(
                state=PlaybackState.IDLE,
                current_track=None,
                volume=round(self._default_volume * 100),
                shuffle_enabled=False,
                repeat_enabled=False,
                active_playlist=None,
                queue_length=0,
                active_resources=0,
            )
        session.prune_resources()
        return EngineStatus(
            state=session.state,
            current_track=session.current_track,
            volume=round(session.volume * 100),
            shuffle_enabled=session.shuffle_enabled,
            repeat_enabled=session.repeat_enabled,
            active_playlist=session.active_playlist.name if session.active_playlist else None,
            queue_length=len(self.queue) if self.queue else 0,
            active_resources=len(session.active_resources),
        )

    @property
    def active_resources(self) -> int:
        if self.session is None:
            return 0
        self.session.prune_resources()
        return len(self.session.active_resources)

    # =========================================================================
    # Starting tracks
    # =========================================================================

    async def _start_track(self, session: PlaybackSession, track: Track) -> bool:
        """
        Fetch, build and start ``track``.

        Returns:
            False if another command superseded this one

        Raises:
            FetchError, ResourceError: If the track cannot be played
        """
        session.play_token += 1
        token = session.play_token
        self.player.disarm()
        session.state = PlaybackState.LOADING
        session.current_track = track
        self._emit_state(session)

        try:
            data = await self.fetcher.fetch(track)
            if not self._is_live(session, token):
                return False
            resource = await self.resources.create(
                data,
                volume=session.volume,
                is_initial=True,
                fade_in_s=self.audio.music.fade_in_ms / 1000,
                label=track.name,
            )
        except (FetchError, ResourceError):
            if self._is_live(session, token):
                session.state = PlaybackState.IDLE
                session.current_track = None
                self._emit_state(session)
            raise

        if not self._is_live(session, token):
            resource.close()
            return False

        self._bind(session, track, resource)
        logger.info(f"Playing: {track.artist} - {track.title or track.name}")
        return True

    def _bind(self, session: PlaybackSession, track: Track, resource: AudioResource) -> None:
        self.player.play(resource)
        session.prune_resources()
        session.track_resource(resource)
        session.current_track = track
        session.state = PlaybackState.PLAYING
        self.events.emit(events.TRACK_STARTED, track.to_dict())
        self._emit_state(session)

    # =========================================================================
    # Completion
    # =========================================================================

    def _schedule_completion(self, session: PlaybackSession, after_failure: bool = False) -> None:
        if session.completion_task is not None and not session.completion_task.done():
            return
        session.completion_task = asyncio.create_task(
            self._run_completion(session, after_failure)
        )

    async def _run_completion(self, session: PlaybackSession, after_failure: bool) -> None:
        """
        Advance to the next item, skipping broken tracks.

        Consecutive failures are capped; at the cap the session goes idle.
        """
        assert self.queue is not None
        queue = self.queue
        backoff_s = self.playback.failure_backoff_ms / 1000
        if after_failure:
            session.consecutive_failures = max(session.consecutive_failures, 1)
            await asyncio.sleep(backoff_s)

        while self.session is session:
            transition = advance(session, queue)
            for name, args in transition.events:
                self.events.emit(name, *args)
            if transition.track is None:
                session.state = PlaybackState.IDLE
                session.current_track = None
                session.consecutive_failures = 0
                logger.info("Queue finished")
                return

            if transition.action == CompletionAction.REPLAY:
                logger.debug(f"Repeating {transition.track.name}")
            try:
                if await self._start_track(session, transition.track):
                    session.consecutive_failures = 0
                return
            except (FetchError, ResourceError) as e:
                session.consecutive_failures += 1
                self._report_failure(session, transition.track, e, notify=False)

            if session.consecutive_failures >= self.playback.max_consecutive_failures:
                logger.error(
                    f"Giving up after {session.consecutive_failures} consecutive playback failures"
                )
                queue.reset()
                session.state = PlaybackState.IDLE
                session.current_track = None
                session.consecutive_failures = 0
                self.events.emit(
                    events.PLAYER_ERROR,
                    {"error": "Too many consecutive playback failures", "kind": "fetch", "fatal": False},
                )
                self.events.emit(events.QUEUE_EMPTY)
                self._emit_state(session)
                return

            await asyncio.sleep(backoff_s)

    def _settle_failed_load(self, session: PlaybackSession, previous: PlaybackState) -> None:
        """Leave LOADING after a failed load; audio that is still playing keeps its state."""
        if self.player.current is None:
            session.state = PlaybackState.IDLE
            session.current_track = None
        elif previous == PlaybackState.PAUSED:
            session.state = PlaybackState.PAUSED
        else:
            session.state = PlaybackState.PLAYING
        self._emit_state(session)

    def _report_failure(
        self,
        session: PlaybackSession,
        track: Optional[Track],
        error: Exception,
        notify: bool = True,
    ) -> None:
        name = track.name if track else "audio"
        logger.error(f"Failed to play {name}: {error}")
        if notify:
            self.events.emit(events.PLAYER_ERROR, _error_payload(error, track))

    # =========================================================================
    # Player callbacks
    # =========================================================================

    def _on_player_idle(self, resource: AudioResource) -> None:
        session = self.session
        if session is None:
            return
        session.release_resource(resource)
        if session.state == PlaybackState.LOADING:
            # The command that is loading decides what plays next
            logger.debug(f"Player idle after {resource.label} while loading")
            return
        logger.debug(f"Player idle after {resource.label}")
        self._schedule_completion(session)

    def _on_player_looped(self, old: AudioResource, new: AudioResource) -> None:
        session = self.session
        if session is None:
            return
        session.release_resource(old)
        if session.mood is not None and session.mood.loop and session.loop_window is not None:
            self._schedule_loop(session, session.play_token)

    def _on_player_crossfaded(self, old: AudioResource, new: AudioResource) -> None:
        if self.session is not None:
            self.session.release_resource(old)

    def _on_player_auto_paused(self) -> None:
        sink = self._sink
        if sink is None or sink.destroyed:
            return
        logger.info(f"Resubscribing player to {sink.name}")
        if not sink.subscribe(self.player):
            self._on_player_error(TransportError(f"Cannot resubscribe to {sink.name}"))

    def _on_player_error(self, error: Exception) -> None:
        session = self.session
        if session is None:
            return
        session.clear_loop()
        session.close_resources()
        session.state = PlaybackState.IDLE
        self.events.emit(events.PLAYER_ERROR, _error_payload(error, session.current_track))
        self._emit_state(session)

    def _on_sink_disconnect(self, reason: str) -> None:
        logger.warning(f"Output disconnected: {reason}")

    def _emit_state(self, session: PlaybackSession) -> None:
        self.events.emit(
            events.STATE_UPDATE,
            {
                "is_playing": session.is_playing,
                "current_track": session.current_track.to_dict() if session.current_track else None,
            },
        )


def _error_payload(error: Exception, track: Optional[Track]) -> dict[str, Any]:
    if isinstance(error, TransportError):
        kind = "transport"
    elif isinstance(error, FetchError):
        kind = "fetch"
    elif isinstance(error, GenerationError):
        kind = "generation"
    elif isinstance(error, ValidationError):
        kind = "validation"
    else:
        kind = "resource"
    return {
        "error": str(error),
        "kind": kind,
        "fatal": kind == "transport",
        "track": track.to_dict() if track else None,
    }
