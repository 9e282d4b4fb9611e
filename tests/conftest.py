"""Shared fixtures for the playback, sink and generation tests."""

import pytest

from soundstage.config import AudioConfig, AudioProfile, PlaybackConfig
from soundstage.playback import AudioLevelAnalyzer, PlaybackEngine, ResourceFactory

from tests.fakes import FRAME_MS, SAMPLE_RATE, FakeFetcher, FakeTranscoder, RecordingSink


@pytest.fixture
def audio_config() -> AudioConfig:
    return AudioConfig(
        music=AudioProfile(
            volume=0.5, fade_in_ms=0, fade_out_ms=100, crossfade_ms=50, loop_fade_start_ms=100
        ),
        frame_ms=FRAME_MS,
        sample_rate=SAMPLE_RATE,
        volume_ramp_step_ms=10,
    )


@pytest.fixture
def playback_config() -> PlaybackConfig:
    return PlaybackConfig(failure_backoff_ms=0, max_consecutive_failures=3, default_volume=100)


@pytest.fixture
def transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture
def factory(transcoder: FakeTranscoder) -> ResourceFactory:
    return ResourceFactory(
        transcoder, AudioLevelAnalyzer(), sample_rate=SAMPLE_RATE, frame_ms=FRAME_MS
    )


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
async def engine(factory, fetcher, audio_config, playback_config):
    engine = PlaybackEngine(
        factory,
        audio=audio_config,
        playback=playback_config,
        fetcher=fetcher,
    )
    yield engine
    await engine.stop()


@pytest.fixture
async def joined(engine: PlaybackEngine, sink: RecordingSink) -> PlaybackEngine:
    assert engine.join(sink)
    return engine
