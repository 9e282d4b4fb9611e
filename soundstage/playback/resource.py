"""
Playable audio resources.

An AudioResource wraps a transcoded PCM stream with a gain control. The
fade filters (initial fade-in, loop crossfade in/out) are baked into the
ffmpeg filter chain when the resource is built.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .analyzer import AudioLevelAnalyzer
from .errors import ResourceError
from .transcoder import PCM_CHANNELS, PCM_SAMPLE_WIDTH, PcmStream, Transcoder

logger = logging.getLogger(__name__)

# Fade-in applied to the first resource of a playback (seconds)
INITIAL_FADE_IN_S = 2.0

_resource_ids = itertools.count(1)


@dataclass(frozen=True)
class LoopWindow:
    """Crossfade window for a looping resource of known duration."""

    duration_s: float
    fade_s: float

    @property
    def fade_out_start_s(self) -> float:
        return max(0.0, self.duration_s - self.fade_s)


def build_filter_chain(
    pre_gain: float = 1.0,
    is_initial: bool = True,
    loop: Optional[LoopWindow] = None,
    fade_in_s: float = INITIAL_FADE_IN_S,
) -> list[str]:
    """
    Build the ffmpeg ``-af`` filter chain for a resource.

    Args:
        pre_gain: Static gain applied inside ffmpeg
        is_initial: Fade in from silence at the start
        loop: Crossfade window when the resource will be looped
        fade_in_s: Initial fade-in duration

    Returns:
        Filters in application order
    """
    filters = [f"volume={pre_gain:g}"]
    if is_initial and fade_in_s > 0:
        filters.append(f"afade=t=in:st=0:d={fade_in_s:g}")
    if loop is not None and loop.fade_s > 0:
        filters.append(f"afade=t=in:st=0:d={loop.fade_s:g}")
        filters.append(f"afade=t=out:st={loop.fade_out_start_s:g}:d={loop.fade_s:g}")
    return filters


class AudioResource:
    """
    A transcoded stream with volume control.

    Frames are int16 numpy arrays shaped (samples, 2). The last frame of
    a stream is zero-padded to full length.
    """

    def __init__(
        self,
        stream: PcmStream,
        samples_per_frame: int,
        frame_ms: int,
        volume: float = 1.0,
        analyzer: Optional[AudioLevelAnalyzer] = None,
        filters: Optional[list[str]] = None,
        label: str = "",
    ):
        self.id = next(_resource_ids)
        self.label = label
        self.filters = list(filters or [])
        self.samples_per_frame = samples_per_frame
        self.frame_ms = frame_ms
        self.created_at = asyncio.get_running_loop().time()

        self._stream = stream
        self._volume = max(0.0, min(1.0, volume))
        self._analyzer = analyzer
        self._level = 0.0
        self._frames_read = 0
        self._ended = False
        self._closed = False

    # =========================================================================
    # Volume
    # =========================================================================

    @property
    def volume(self) -> float:
        """Current gain (0.0-1.0)."""
        return self._volume

    def set_volume(self, volume: float) -> None:
        self._volume = max(0.0, min(1.0, volume))

    # =========================================================================
    # Reading
    # =========================================================================

    async def read_frame(self) -> Optional[np.ndarray]:
        """
        Read the next frame with gain applied.

        Returns:
            Frame array, or None at end of stream
        """
        if self._ended or self._closed:
            return None

        frame_bytes = self.samples_per_frame * PCM_CHANNELS * PCM_SAMPLE_WIDTH
        data = await self._stream.read(frame_bytes)
        if self._closed:
            return None
        if not data:
            self._ended = True
            return None

        # Drop a trailing odd byte, pad short final frames with silence
        usable = len(data) - (len(data) % (PCM_CHANNELS * PCM_SAMPLE_WIDTH))
        samples = np.frombuffer(data[:usable], dtype=np.int16).reshape(-1, PCM_CHANNELS)
        if len(samples) < self.samples_per_frame:
            padded = np.zeros((self.samples_per_frame, PCM_CHANNELS), dtype=np.int16)
            padded[: len(samples)] = samples
            samples = padded

        frame = self._apply_gain(samples)
        if self._analyzer is not None:
            self._level = self._analyzer.level(frame)
        self._frames_read += 1
        return frame

    def _apply_gain(self, samples: np.ndarray) -> np.ndarray:
        if self._volume >= 1.0:
            return samples.copy()
        scaled = samples.astype(np.float32) * self._volume
        return np.clip(scaled, -32768, 32767).astype(np.int16)

    # =========================================================================
    # State
    # =========================================================================

    @property
    def level(self) -> float:
        """Normalized loudness of the last frame read."""
        return self._level

    @property
    def playback_duration_ms(self) -> int:
        return self._frames_read * self.frame_ms

    @property
    def ended(self) -> bool:
        return self._ended or self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Stop the underlying transcoder."""
        if self._closed:
            return
        self._closed = True
        self._stream.close()
        logger.debug(f"Resource {self.id} ({self.label}) closed after {self.playback_duration_ms}ms")

    def __repr__(self) -> str:
        return f"AudioResource(id={self.id}, label={self.label!r}, volume={self._volume:.2f})"


class ResourceFactory:
    """Builds AudioResources from raw encoded buffers."""

    def __init__(
        self,
        transcoder: Transcoder,
        analyzer: Optional[AudioLevelAnalyzer] = None,
        sample_rate: int = 48000,
        frame_ms: int = 20,
    ):
        self._transcoder = transcoder
        self._analyzer = analyzer or AudioLevelAnalyzer()
        self.sample_rate = sample_rate
        self.frame_ms = frame_ms

    @property
    def analyzer(self) -> AudioLevelAnalyzer:
        return self._analyzer

    @property
    def samples_per_frame(self) -> int:
        return self.sample_rate * self.frame_ms // 1000

    async def create(
        self,
        data: bytes,
        volume: float = 1.0,
        is_initial: bool = True,
        loop: Optional[LoopWindow] = None,
        fade_in_s: float = INITIAL_FADE_IN_S,
        pre_gain: float = 1.0,
        label: str = "",
    ) -> AudioResource:
        """
        Wrap an encoded buffer into a playable resource.

        Args:
            data: Encoded audio (any format ffmpeg understands)
            volume: Initial gain (0.0-1.0)
            is_initial: Apply the initial fade-in
            loop: Crossfade window when looping
            fade_in_s: Initial fade-in duration
            pre_gain: Static gain baked into the filter chain
            label: Name used in logs

        Raises:
            ResourceError: If the buffer is empty or the transcoder fails
        """
        if not data:
            raise ResourceError(f"Empty audio buffer for {label or 'resource'}")

        filters = build_filter_chain(
            pre_gain=pre_gain, is_initial=is_initial, loop=loop, fade_in_s=fade_in_s
        )
        stream = await self._transcoder.open(data, filters)
        if stream is None:
            raise ResourceError(f"Failed to create audio resource for {label or 'buffer'}")

        resource = AudioResource(
            stream,
            samples_per_frame=self.samples_per_frame,
            frame_ms=self.frame_ms,
            volume=volume,
            analyzer=self._analyzer,
            filters=filters,
            label=label,
        )
        logger.debug(f"Created {resource} ({len(data)} bytes)")
        return resource
