"""
PortAudio output stream fed from a FrameRingBuffer.
"""

import logging
from typing import Any, Optional

import numpy as np

from soundstage.playback.errors import TransportError

from .device import _load_sounddevice
from .ring_buffer import FrameRingBuffer

logger = logging.getLogger(__name__)

# Log every Nth underrun
UNDERRUN_LOG_EVERY = 50


class DeviceStream:
    """
    A sounddevice OutputStream whose callback drains a ring buffer.

    An empty buffer plays silence, so the stream can stay open between
    tracks and while the player is paused.
    """

    def __init__(
        self,
        device_index: int,
        buffer: FrameRingBuffer,
        sample_rate: int = 48000,
        blocksize: int = 960,
    ):
        self.device_index = device_index
        self.buffer = buffer
        self.sample_rate = sample_rate
        self.blocksize = blocksize
        self.underruns = 0
        self._stream: Optional[Any] = None

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def open(self) -> None:
        """
        Open and start the device stream.

        Raises:
            TransportError: If PortAudio rejects the device or format
        """
        if self._stream is not None:
            return
        sd = _load_sounddevice()
        try:
            stream = sd.OutputStream(
                device=self.device_index,
                samplerate=self.sample_rate,
                channels=self.buffer.channels,
                dtype="float32",
                blocksize=self.blocksize,
                callback=self._callback,
            )
            stream.start()
        except sd.PortAudioError as e:
            raise TransportError(f"Cannot open output device {self.device_index}: {e}")
        self._stream = stream
        logger.debug(f"Device stream open: {self.sample_rate}Hz, blocksize={self.blocksize}")

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        sd = _load_sounddevice()
        try:
            stream.stop()
            stream.close()
        except sd.PortAudioError as e:
            logger.warning(f"Error closing device stream: {e}")
        self.buffer.clear()

    def _callback(self, outdata: np.ndarray, frames: int, time_info, status) -> None:
        """Runs on the PortAudio thread."""
        if status:
            logger.debug(f"Device stream status: {status}")
        if self.buffer.available < frames:
            self.underruns += 1
            if self.underruns % UNDERRUN_LOG_EVERY == 1:
                logger.debug(f"Output underrun (count: {self.underruns})")
        outdata[:] = self.buffer.pull(frames)
