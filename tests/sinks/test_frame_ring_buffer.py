"""Tests for the frame ring buffer."""

import numpy as np
import pytest

from soundstage.sinks.local import FrameRingBuffer


def _ramp(start: int, count: int) -> np.ndarray:
    values = np.arange(start, start + count, dtype=np.float32)
    return np.stack([values, -values], axis=1)


class TestFrameRingBuffer:
    """Test FIFO behavior, overflow and underflow."""

    def test_rejects_empty_capacity(self) -> None:
        with pytest.raises(ValueError):
            FrameRingBuffer(0)

    def test_push_pull_in_order(self) -> None:
        buf = FrameRingBuffer(8)

        assert buf.push(_ramp(0, 5)) == 5
        out = buf.pull(3)

        np.testing.assert_array_equal(out, _ramp(0, 3))
        assert buf.available == 2
        assert buf.free_space == 6

    def test_wraps_around(self) -> None:
        buf = FrameRingBuffer(4)
        buf.push(_ramp(0, 3))
        buf.pull(3)

        buf.push(_ramp(10, 4))

        np.testing.assert_array_equal(buf.pull(4), _ramp(10, 4))

    def test_overflow_is_dropped(self) -> None:
        buf = FrameRingBuffer(4)

        assert buf.push(_ramp(0, 6)) == 4
        assert buf.fill_level == 1.0
        np.testing.assert_array_equal(buf.pull(4), _ramp(0, 4))

    def test_underflow_pads_with_silence(self) -> None:
        buf = FrameRingBuffer(8)
        buf.push(_ramp(1, 2))

        out = buf.pull(5)

        assert out.shape == (5, 2)
        np.testing.assert_array_equal(out[:2], _ramp(1, 2))
        assert not out[2:].any()
        assert buf.available == 0

    def test_clear(self) -> None:
        buf = FrameRingBuffer(8)
        buf.push(_ramp(0, 6))

        buf.clear()

        assert buf.available == 0
        assert buf.fill_level == 0.0
