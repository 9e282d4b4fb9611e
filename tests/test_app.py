"""Tests for the Soundstage application wiring with a null output."""

import asyncio
import logging
from pathlib import Path
from unittest.mock import patch

import pytest

from soundstage.app import SoundstageApp
from soundstage.config import dict_to_config
from soundstage.playback import FetchError, PlaybackState, TransportError, ValidationError

from tests.fakes import FakeTranscoder


@pytest.fixture
def config(tmp_path: Path):
    return dict_to_config(
        {
            "cache": {"directory": str(tmp_path / "cache")},
            "catalog": {"library_dir": str(tmp_path / "library")},
            "playlists": {"store_path": str(tmp_path / "playlists.yaml")},
            "output": {"type": "null"},
            "playback": {"failure_backoff_ms": 0},
        }
    )


@pytest.fixture(autouse=True)
def fake_transcoder():
    with patch("soundstage.app.FFmpegTranscoder", return_value=FakeTranscoder(amplitude=1000)):
        yield


def _audio_file(directory: Path, name: str, frames: int = 3) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_bytes(f"frames:{frames}".encode())
    return path


async def _run(app: SoundstageApp, action) -> None:
    await asyncio.wait_for(app.run(action), 5.0)


class TestLifecycle:
    """Test start/stop."""

    async def test_start_without_output(self, config) -> None:
        app = SoundstageApp(config)

        await app.start(with_output=False)

        assert app.is_running
        assert app.engine is None
        assert app.generation is None
        assert app.track_cache is not None
        await app.stop()
        assert not app.is_running

    async def test_start_joins_null_sink(self, config) -> None:
        app = SoundstageApp(config)

        await app.start()

        assert app.engine.joined
        assert app.engine.status().state == PlaybackState.IDLE
        await app.stop()
        assert not app.engine.joined

    async def test_stop_is_idempotent(self, config) -> None:
        app = SoundstageApp(config)
        await app.start()

        await app.stop()
        await app.stop()


class TestPlayback:
    """Test running actions until the queue is empty."""

    async def test_play_files_in_order(self, config, tmp_path: Path, caplog) -> None:
        caplog.set_level(logging.INFO)
        first = _audio_file(tmp_path / "files", "One - First.mp3")
        second = _audio_file(tmp_path / "files", "Two - Second.mp3")
        app = SoundstageApp(config)

        await _run(app, lambda a: a.play_tracks([str(first), str(second)]))

        playing = [r.message for r in caplog.records if r.message.startswith("Now playing")]
        assert playing == ["Now playing: One - First", "Now playing: Two - Second"]
        assert not app.is_running

    async def test_play_catalog_track_by_name(self, config, tmp_path: Path, caplog) -> None:
        caplog.set_level(logging.INFO)
        _audio_file(tmp_path / "library", "1700000000-Artist - Song.mp3")
        app = SoundstageApp(config)

        await _run(app, lambda a: a.play_tracks(["artist - song"]))

        assert "Now playing: Artist - Song" in caplog.text

    async def test_unknown_track(self, config) -> None:
        app = SoundstageApp(config)

        with pytest.raises(ValidationError):
            await _run(app, lambda a: a.play_tracks(["Nobody - Nothing"]))
        assert not app.is_running

    async def test_cached_mood_plays_once(self, config, tmp_path: Path, caplog) -> None:
        caplog.set_level(logging.INFO)
        _audio_file(tmp_path / "cache" / "music", "battle.mp3")
        app = SoundstageApp(config)

        await _run(app, lambda a: a.play_mood("battle", loop=False))

        assert "Now playing: Soundstage - battle" in caplog.text

    async def test_mood_without_cache_or_token(self, config) -> None:
        app = SoundstageApp(config)

        with pytest.raises(FetchError):
            await _run(app, lambda a: a.play_mood("battle"))


class TestEngineEvents:
    """Test app reactions to engine events."""

    async def test_fatal_player_error_shuts_down(self, config) -> None:
        app = SoundstageApp(config)

        async def action(a: SoundstageApp) -> None:
            a._on_player_error({"error": "device gone", "kind": "transport", "fatal": True})

        with pytest.raises(TransportError, match="device gone"):
            await _run(app, action)

    async def test_non_fatal_error_keeps_running(self, config) -> None:
        app = SoundstageApp(config)
        app._on_player_error({"error": "bad file", "kind": "fetch", "fatal": False})

        assert not app._shutdown_event.is_set()

    async def test_queue_empty_ignored_when_looping(self, config) -> None:
        app = SoundstageApp(config, exit_when_idle=False)
        app._on_queue_empty()

        assert not app._shutdown_event.is_set()
