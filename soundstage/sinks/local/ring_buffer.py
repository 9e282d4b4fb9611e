"""
Frame ring buffer shared between the event loop and the PortAudio thread.
"""

import threading

import numpy as np


class FrameRingBuffer:
    """
    Fixed-capacity FIFO of float32 samples shaped (n, channels).

    ``push`` is called from the event loop, ``pull`` from the audio callback.
    Reads past the buffered data are padded with silence.
    """

    def __init__(self, capacity: int, channels: int = 2):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.channels = channels
        self._data = np.zeros((capacity, channels), dtype=np.float32)
        self._head = 0  # next read
        self._count = 0
        self._lock = threading.Lock()

    def _positions(self, start: int, count: int) -> np.ndarray:
        return (start + np.arange(count)) % self.capacity

    def push(self, samples: np.ndarray) -> int:
        """
        Append samples, dropping whatever does not fit.

        Returns:
            Number of samples stored
        """
        with self._lock:
            count = min(len(samples), self.capacity - self._count)
            if count > 0:
                tail = (self._head + self._count) % self.capacity
                self._data[self._positions(tail, count)] = samples[:count]
                self._count += count
            return count

    def pull(self, count: int) -> np.ndarray:
        """Remove and return exactly ``count`` samples."""
        out = np.zeros((count, self.channels), dtype=np.float32)
        with self._lock:
            ready = min(count, self._count)
            if ready > 0:
                out[:ready] = self._data[self._positions(self._head, ready)]
                self._head = (self._head + ready) % self.capacity
                self._count -= ready
        return out

    def clear(self) -> None:
        with self._lock:
            self._head = 0
            self._count = 0

    @property
    def available(self) -> int:
        with self._lock:
            return self._count

    @property
    def free_space(self) -> int:
        with self._lock:
            return self.capacity - self._count

    @property
    def fill_level(self) -> float:
        with self._lock:
            return self._count / self.capacity
