"""
FFmpeg transcoding to raw PCM.

All codec work is delegated to an ffmpeg subprocess that reads the encoded
buffer on stdin and writes signed 16-bit little-endian stereo PCM to stdout.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)

PCM_CHANNELS = 2
PCM_SAMPLE_WIDTH = 2  # bytes per sample (s16le)

# stdin write size for feeding ffmpeg
FEED_CHUNK_SIZE = 64 * 1024


class PcmStream(ABC):
    """Readable stream of raw s16le stereo PCM."""

    @abstractmethod
    async def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes. Returns b"" at end of stream."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the stream. Safe to call more than once."""
        pass


class Transcoder(ABC):
    """Turns an encoded audio buffer plus a filter chain into a PCM stream."""

    @abstractmethod
    async def open(self, data: bytes, filters: list[str]) -> Optional[PcmStream]:
        pass


class FFmpegPcmStream(PcmStream):
    """PCM stream backed by a running ffmpeg process."""

    def __init__(self, proc: asyncio.subprocess.Process, data: bytes):
        self._proc = proc
        self._feed_task: Optional[asyncio.Task] = asyncio.create_task(self._feed(data))
        self._reap_task: Optional[asyncio.Task] = None
        self._closed = False

    async def _feed(self, data: bytes) -> None:
        """Write the encoded buffer to ffmpeg's stdin, then close it."""
        stdin = self._proc.stdin
        assert stdin is not None
        try:
            for start in range(0, len(data), FEED_CHUNK_SIZE):
                stdin.write(data[start : start + FEED_CHUNK_SIZE])
                await stdin.drain()
            stdin.close()
        except (BrokenPipeError, ConnectionResetError) as e:
            # ffmpeg exited early (bad input or killed by close())
            logger.debug(f"ffmpeg stdin closed early: {e}")
        except asyncio.CancelledError:
            pass

    async def read(self, size: int) -> bytes:
        if self._closed:
            return b""
        stdout = self._proc.stdout
        assert stdout is not None

        chunks = bytearray()
        while len(chunks) < size:
            data = await stdout.read(size - len(chunks))
            if not data:
                break
            chunks.extend(data)
        return bytes(chunks)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._feed_task and not self._feed_task.done():
            self._feed_task.cancel()
        self._feed_task = None
        if self._proc.returncode is None:
            try:
                self._proc.kill()
            except ProcessLookupError:
                pass
            self._reap_task = asyncio.create_task(self._reap())

    async def _reap(self) -> None:
        """Wait for the killed process so it does not linger as a zombie."""
        returncode = await self._proc.wait()
        logger.debug(f"ffmpeg exited with {returncode}")


class FFmpegTranscoder(Transcoder):
    """Spawns ``ffmpeg`` to decode and filter audio."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", sample_rate: int = 48000):
        self.ffmpeg_path = ffmpeg_path
        self.sample_rate = sample_rate

    def build_args(self, filters: list[str]) -> list[str]:
        """Build the ffmpeg argument list for a filter chain."""
        args = [
            "-i", "-",
            "-analyzeduration", "0",
            "-loglevel", "0",
            "-acodec", "pcm_s16le",
            "-f", "s16le",
            "-ar", str(self.sample_rate),
            "-ac", str(PCM_CHANNELS),
        ]
        if filters:
            args += ["-af", ",".join(filters)]
        args.append("pipe:1")
        return args

    async def open(self, data: bytes, filters: list[str]) -> Optional[PcmStream]:
        args = self.build_args(filters)
        logger.debug(f"FFmpeg filter chain: {','.join(filters)}")
        try:
            proc = await asyncio.create_subprocess_exec(
                self.ffmpeg_path,
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except (FileNotFoundError, PermissionError) as e:
            logger.error(f"Failed to start ffmpeg ({self.ffmpeg_path}): {e}")
            return None
        return FFmpegPcmStream(proc, data)
