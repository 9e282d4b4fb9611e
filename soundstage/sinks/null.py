"""
Sink that discards audio.

Used for headless runs and as a stand-in transport when no device is
available.
"""

import numpy as np

from .base import OutputSink


class NullSink(OutputSink):
    """Accepts and drops every frame, keeping simple counters."""

    def __init__(self, name: str = "Null Output"):
        super().__init__(name)
        self.frames_written = 0
        self.samples_written = 0

    async def write(self, frame: np.ndarray) -> None:
        self.frames_written += 1
        self.samples_written += len(frame)
