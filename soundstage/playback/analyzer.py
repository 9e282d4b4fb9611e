"""
Loudness analysis for PCM frames.
"""

import numpy as np

# Full scale for signed 16-bit samples
INT16_FULL_SCALE = 32768.0

# Frames shorter than this are treated as silence
MIN_VALID_SAMPLES = 16


class AudioLevelAnalyzer:
    """
    Computes loudness of 16-bit PCM frames.

    Levels are RMS in dBFS, floored at ``min_db``, and normalized to
    0.0 (at or below the floor) .. 1.0 (full scale).
    """

    def __init__(self, min_db: float = -60.0, silence_threshold: float = 0.02):
        if min_db >= 0:
            raise ValueError("min_db must be negative")
        self.min_db = min_db
        self.silence_threshold = silence_threshold

    def rms(self, frame: np.ndarray) -> float:
        """Root mean square of the frame samples."""
        if frame is None or frame.size < MIN_VALID_SAMPLES:
            return 0.0
        samples = frame.astype(np.float64)
        return float(np.sqrt(np.mean(samples * samples)))

    def db(self, frame: np.ndarray) -> float:
        """Frame loudness in dBFS, floored at min_db."""
        rms = self.rms(frame)
        if rms <= 0.0:
            return self.min_db
        db = 20.0 * np.log10(rms / INT16_FULL_SCALE)
        return float(max(db, self.min_db))

    def level(self, frame: np.ndarray) -> float:
        """Normalized loudness in [0.0, 1.0]."""
        db = self.db(frame)
        return float(min(1.0, max(0.0, (db - self.min_db) / -self.min_db)))

    def is_silent(self, frame: np.ndarray) -> bool:
        return self.level(frame) <= self.silence_threshold
