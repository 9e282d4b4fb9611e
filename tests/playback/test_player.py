"""Tests for the frame-pumping audio player."""

import asyncio
from unittest.mock import MagicMock

import numpy as np
import pytest

from soundstage.playback import AudioPlayer, PlayerStatus, ResourceFactory, TransportError

from tests.fakes import FRAME_MS, FakeTranscoder, RecordingSink


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


@pytest.fixture
def player() -> AudioPlayer:
    return AudioPlayer(frame_ms=FRAME_MS)


@pytest.fixture
def factory() -> ResourceFactory:
    return ResourceFactory(FakeTranscoder(amplitude=1000), frame_ms=FRAME_MS)


class TestPlayback:
    """Test playing a resource to a sink."""

    async def test_plays_all_frames_then_idle(self, player, factory, sink: RecordingSink) -> None:
        on_idle = MagicMock()
        player.on_idle(on_idle)
        sink.subscribe(player)
        resource = await factory.create(b"frames:4")

        player.play(resource)
        await _wait_until(lambda: on_idle.called)

        assert len(sink.frames) == 4
        assert player.status == PlayerStatus.IDLE
        assert player.current is None
        on_idle.assert_called_once_with(resource)
        assert resource.closed

    async def test_paced_in_real_time(self, player, factory, sink: RecordingSink) -> None:
        on_idle = MagicMock()
        player.on_idle(on_idle)
        sink.subscribe(player)
        loop = asyncio.get_running_loop()

        start = loop.time()
        player.play(await factory.create(b"frames:10"))
        await _wait_until(lambda: on_idle.called)

        assert loop.time() - start >= 0.18

    async def test_play_replaces_current(self, player, factory, sink: RecordingSink) -> None:
        sink.subscribe(player)
        first = await factory.create(b"frames:100")
        second = await factory.create(b"frames:100")

        player.play(first)
        await asyncio.sleep(0.05)
        player.play(second)

        assert first.closed
        assert player.current is second
        player.stop()
        await player.wait_stopped()


class TestGaplessLoop:
    """Test arm_next hand-off."""

    async def test_armed_resource_takes_over(self, player, factory, sink: RecordingSink) -> None:
        looped = MagicMock()
        idle = MagicMock()
        player.on_looped(looped)
        player.on_idle(idle)
        sink.subscribe(player)
        first = await factory.create(b"frames:3", volume=0.4)
        second = await factory.create(b"frames:3", volume=0.0)

        player.play(first)
        player.arm_next(second)
        await _wait_until(lambda: idle.called)

        looped.assert_called_once_with(first, second)
        idle.assert_called_once_with(second)
        assert second.volume == pytest.approx(0.4)
        assert len(sink.frames) == 6

    async def test_disarm_closes_armed(self, player, factory) -> None:
        armed = await factory.create(b"frames:3")
        player.arm_next(armed)

        player.disarm()

        assert armed.closed
        assert player.armed is None


class TestCrossfade:
    """Test mixing two resources."""

    async def test_frames_are_summed_then_outgoing_closed(
        self, player, factory, sink: RecordingSink
    ) -> None:
        crossfaded = MagicMock()
        player.on_crossfaded(crossfaded)
        sink.subscribe(player)
        outgoing = await factory.create(b"frames:100")
        incoming = await factory.create(b"frames:100")

        player.play(outgoing)
        await _wait_until(lambda: len(sink.frames) >= 2)
        player.crossfade(incoming, 3 * FRAME_MS)
        await _wait_until(lambda: crossfaded.called)

        assert any(int(f[0, 0]) == 2000 for f in sink.frames)
        assert outgoing.closed
        assert player.current is incoming
        assert player.incoming is None
        player.stop()
        await player.wait_stopped()


class TestControl:
    """Test pause, stop, skip and auto-pause."""

    async def test_pause_and_unpause(self, player, factory, sink: RecordingSink) -> None:
        sink.subscribe(player)
        player.play(await factory.create(b"frames:100"))
        await _wait_until(lambda: len(sink.frames) >= 1)

        assert player.pause() is True
        assert player.pause() is False
        await asyncio.sleep(0.03)
        count = len(sink.frames)
        await asyncio.sleep(0.1)
        assert len(sink.frames) == count

        assert player.unpause() is True
        await _wait_until(lambda: len(sink.frames) > count)
        player.stop()
        await player.wait_stopped()

    async def test_stop_emits_no_idle(self, player, factory, sink: RecordingSink) -> None:
        idle = MagicMock()
        player.on_idle(idle)
        sink.subscribe(player)
        resource = await factory.create(b"frames:100")
        player.play(resource)
        await asyncio.sleep(0.03)

        player.stop()
        await player.wait_stopped()

        assert resource.closed
        assert player.status == PlayerStatus.IDLE
        idle.assert_not_called()

    async def test_skip_reports_idle(self, player, factory, sink: RecordingSink) -> None:
        idle = MagicMock()
        player.on_idle(idle)
        sink.subscribe(player)
        resource = await factory.create(b"frames:100")
        player.play(resource)
        await asyncio.sleep(0.03)

        assert player.skip() is True
        await _wait_until(lambda: idle.called)

        idle.assert_called_once_with(resource)
        assert player.skip() is False

    async def test_auto_pause_without_sink(self, player, factory) -> None:
        auto_paused = MagicMock()
        player.on_auto_paused(auto_paused)
        resource = await factory.create(b"frames:5")

        player.play(resource)
        await _wait_until(lambda: auto_paused.called)

        assert player.status == PlayerStatus.AUTO_PAUSED
        assert resource.playback_duration_ms == 0

        sink = RecordingSink()
        sink.subscribe(player)
        await _wait_until(lambda: len(sink.frames) == 5)

    async def test_transport_error_reported(self, player, factory, sink: RecordingSink) -> None:
        on_error = MagicMock()
        player.on_error(on_error)
        sink.write_error = TransportError("device gone")
        sink.subscribe(player)
        resource = await factory.create(b"frames:5")

        player.play(resource)
        await _wait_until(lambda: on_error.called)

        assert isinstance(on_error.call_args[0][0], TransportError)
        assert resource.closed
        assert player.status == PlayerStatus.IDLE

    async def test_callback_errors_are_contained(self, player, factory, sink: RecordingSink) -> None:
        player.on_idle(MagicMock(side_effect=RuntimeError("boom")))
        sink.subscribe(player)

        player.play(await factory.create(b"frames:2"))
        await _wait_until(lambda: player.status == PlayerStatus.IDLE and len(sink.frames) == 2)

        assert np.all(sink.frames[0] == 1000)
