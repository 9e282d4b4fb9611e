"""
Soundstage Application.

Main orchestrator that wires together all components and manages lifecycle.
"""

import asyncio
import logging
import signal
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from soundstage.catalog import LocalTrackCatalog, find_matching_track, parse_track_name
from soundstage.config import Config
from soundstage.generation import GenerationJobClient, ReplicateJobAPI
from soundstage.playback import (
    AudioLevelAnalyzer,
    FFmpegTranscoder,
    PlaybackEngine,
    PlaylistLibrary,
    ResourceFactory,
    Track,
    TrackCache,
    TrackFetcher,
    TransportError,
    ValidationError,
    YamlPlaylistStore,
)
from soundstage.playback import events
from soundstage.sinks import OutputSink, create_sink

logger = logging.getLogger(__name__)

Action = Callable[["SoundstageApp"], Awaitable[Any]]


class SoundstageApp:
    """
    Main Soundstage application.

    Orchestrates all components:
    - Track catalog (LocalTrackCatalog)
    - Playlists (PlaylistLibrary over a YamlPlaylistStore)
    - Generation (GenerationJobClient, TrackCache)
    - Playback (ResourceFactory, PlaybackEngine)
    - Audio output (OutputSink)

    Usage:
        config = load_config(...)
        app = SoundstageApp(config)
        await app.run(lambda app: app.play_mood("battle"))
    """

    def __init__(self, config: Config, exit_when_idle: bool = True):
        """
        Initialize Soundstage.

        Args:
            config: Validated configuration
            exit_when_idle: Shut down once the queue runs dry
        """
        self._config = config
        self._exit_when_idle = exit_when_idle
        self._is_running = False
        self._shutdown_event = asyncio.Event()
        self._fatal_error: Optional[Exception] = None

        # Components (initialized in start())
        self.catalog: Optional[LocalTrackCatalog] = None
        self.library: Optional[PlaylistLibrary] = None
        self.generation: Optional[GenerationJobClient] = None
        self.track_cache: Optional[TrackCache] = None
        self.engine: Optional[PlaybackEngine] = None
        self._sink: Optional[OutputSink] = None
        self._fetcher: Optional[TrackFetcher] = None

    async def start(self, with_output: bool = True) -> None:
        """
        Start Soundstage and all components.

        Startup order:
        1. Track catalog and playlist library
        2. Generation client (when an API token is configured)
        3. Track cache
        4. Audio pipeline and playback engine
        5. Output sink

        Raises:
            TransportError: If the output cannot be opened
        """
        logger.info("Starting Soundstage...")
        config = self._config

        # 1. Catalog and playlists
        self.catalog = LocalTrackCatalog(Path(config.catalog.library_dir))
        self.library = PlaylistLibrary(YamlPlaylistStore(Path(config.playlists.store_path)))

        # 2. Generation client
        if config.generation.api_token:
            api = ReplicateJobAPI(
                api_token=config.generation.api_token,
                base_url=config.generation.base_url,
                timeout_s=config.generation.request_timeout_s,
            )
            self.generation = GenerationJobClient(api, config.generation)
            await self.generation.start()
            logger.debug("Generation client started")
        else:
            logger.info("No generation API token configured, using cached audio only")

        # 3. Track cache
        self.track_cache = TrackCache(
            Path(config.cache.directory),
            client=self.generation,
            default_duration_s=config.generation.music.duration,
        )

        self._is_running = True
        if not with_output:
            return

        # 4. Audio pipeline and engine
        factory = ResourceFactory(
            FFmpegTranscoder(config.audio.ffmpeg_path, config.audio.sample_rate),
            AudioLevelAnalyzer(),
            sample_rate=config.audio.sample_rate,
            frame_ms=config.audio.frame_ms,
        )
        self._fetcher = TrackFetcher()
        self.engine = PlaybackEngine(
            factory,
            audio=config.audio,
            playback=config.playback,
            track_cache=self.track_cache,
            fetcher=self._fetcher,
            library=self.library,
            catalog=self.catalog,
        )
        self.engine.on(events.PLAYER_ERROR, self._on_player_error)
        self.engine.on(events.QUEUE_EMPTY, self._on_queue_empty)
        self.engine.on(events.TRACK_STARTED, self._on_track_started)

        # 5. Output sink
        self._sink = create_sink(config.output, config.audio)
        if not self.engine.join(self._sink):
            raise TransportError(f"Cannot open output '{config.output.device}'")
        logger.info(f"Soundstage ready on {self._sink.name}")

    async def stop(self) -> None:
        """
        Stop Soundstage and all components.

        Shutdown order (reverse of startup):
        1. Stop the engine (releases the output)
        2. Close the generation client
        """
        if not self._is_running:
            return

        logger.info("Stopping Soundstage...")
        self._is_running = False

        # 1. Engine
        if self.engine:
            try:
                await self.engine.dispose()
            except Exception as e:
                logger.warning(f"Error stopping engine: {e}")

        # 2. Generation client
        if self.generation:
            try:
                await self.generation.close()
            except Exception as e:
                logger.warning(f"Error closing generation client: {e}")

        logger.info("Soundstage stopped")

    async def run(self, action: Optional[Action] = None) -> None:
        """
        Run Soundstage until interrupted or finished.

        Sets up signal handlers for graceful shutdown on SIGINT/SIGTERM.

        Args:
            action: Coroutine function started once the output is open

        Raises:
            TransportError: If the output failed during playback
        """
        loop = asyncio.get_running_loop()

        def handle_signal() -> None:
            logger.info("Shutdown signal received")
            self._shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, handle_signal)

        try:
            await self.start()
            if action is not None:
                await action(self)

            # Wait for shutdown signal
            await self._shutdown_event.wait()
        finally:
            await self.stop()

        if self._fatal_error is not None:
            raise self._fatal_error

    def shutdown(self) -> None:
        self._shutdown_event.set()

    @property
    def is_running(self) -> bool:
        """Check if the application is running."""
        return self._is_running

    # =========================================================================
    # Actions
    # =========================================================================

    async def generate(self, key: str, kind: str = "music", force: bool = False) -> Path:
        """
        Materialize generated audio in the track cache without playing it.

        Raises:
            GenerationError: If generation fails
            FetchError: If the result cannot be downloaded
            ValidationError: If the key cannot name a cache file
        """
        assert self.track_cache is not None
        path = await self.track_cache.get_or_generate(key, force_regen=force, kind=kind)
        logger.info(f"{kind.capitalize()} '{key}' cached at {path}")
        return path

    async def play_mood(self, key: str, kind: str = "music", loop: bool = True) -> bool:
        """
        Generate (if needed) and play a mood or ambience.

        Generation failures propagate so the caller sees why nothing plays.
        """
        assert self.engine is not None
        await self.generate(key, kind)
        return await self.engine.play_mood(key, kind=kind, loop=loop)

    async def play_tracks(self, names: list[str]) -> int:
        """
        Play tracks given as file paths or catalog names, queueing the rest.

        Returns:
            Number of tracks started or queued
        """
        assert self.engine is not None
        tracks = [await self.resolve_track(name) for name in names]
        for track in tracks:
            await self.engine.enqueue(track)
        return len(tracks)

    async def resolve_track(self, name: str) -> Track:
        """
        Turn a file path or catalog query into a Track.

        Raises:
            ValidationError: If nothing matches
        """
        path = Path(name).expanduser()
        if path.is_file():
            artist, title = parse_track_name(path.name)
            return Track(name=path.name, source_locator=str(path), artist=artist, title=title)

        assert self.catalog is not None
        track = find_matching_track(await self.catalog.tracks(), name)
        if track is None:
            raise ValidationError(f"No track matching '{name}'")
        return track

    # =========================================================================
    # Engine events
    # =========================================================================

    def _on_player_error(self, payload: dict) -> None:
        if payload.get("fatal"):
            logger.error(f"Fatal output error: {payload.get('error')}")
            self._fatal_error = TransportError(str(payload.get("error")))
            self._shutdown_event.set()

    def _on_queue_empty(self) -> None:
        if self._exit_when_idle:
            logger.info("Nothing left to play")
            self._shutdown_event.set()

    def _on_track_started(self, track: dict) -> None:
        logger.info(f"Now playing: {track['artist']} - {track['title']}")
