"""
Local sound card sink.
"""

import asyncio
import logging
from typing import Optional

import numpy as np

from soundstage.playback.errors import TransportError

from ..base import OutputSink
from .device import OutputDevice, resolve_output_device
from .ring_buffer import FrameRingBuffer
from .stream import DeviceStream

logger = logging.getLogger(__name__)

BUFFER_SECONDS = 2  # Ring buffer capacity
WRITE_TIMEOUT_S = 5.0  # Device stopped draining after this long


class LocalDeviceSink(OutputSink):
    """Plays frames on a local PortAudio device."""

    def __init__(self, device: str = "default", sample_rate: int = 48000, blocksize: int = 960):
        super().__init__("Local Audio")
        self._device_query = device
        self._sample_rate = sample_rate
        self._blocksize = blocksize
        self._device: Optional[OutputDevice] = None
        self._buffer = FrameRingBuffer(sample_rate * BUFFER_SECONDS)
        self._stream: Optional[DeviceStream] = None

    @property
    def device(self) -> Optional[OutputDevice]:
        return self._device

    def _open(self) -> bool:
        if self._stream is not None and self._stream.is_open:
            return True
        try:
            self._device = resolve_output_device(self._device_query)
            self.name = f"Local: {self._device.name}"
            self._stream = DeviceStream(
                self._device.index,
                self._buffer,
                sample_rate=self._sample_rate,
                blocksize=self._blocksize,
            )
            self._stream.open()
        except TransportError as e:
            logger.error(f"Failed to open local output: {e}")
            self._stream = None
            return False
        return True

    def _close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None

    async def write(self, frame: np.ndarray) -> None:
        if self._stream is None or not self._stream.is_open:
            raise TransportError(f"{self.name} is not open")

        samples = frame.astype(np.float32) / 32768.0
        waited = 0.0
        step = len(frame) / self._sample_rate / 2
        # Wait for the callback to make room
        while self._buffer.free_space < len(samples):
            if waited >= WRITE_TIMEOUT_S:
                self._notify_disconnect("device stopped consuming audio")
                raise TransportError(f"{self.name} stalled")
            await asyncio.sleep(step)
            waited += step
        self._buffer.push(samples)
