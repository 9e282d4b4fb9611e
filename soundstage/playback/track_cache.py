"""
On-disk cache of generated audio.

Artifacts live at ``<directory>/music/<key>.mp3`` and
``<directory>/ambience/<key>.mp3``. The directory is shared by every
session, so files are written to a temporary name and renamed into
place.
"""

import asyncio
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Optional

import aiohttp
import soundfile as sf

from soundstage.generation import GenerationJobClient

from .errors import FetchError, ValidationError

logger = logging.getLogger(__name__)

KINDS = ("music", "ambience")
ARTIFACT_SUFFIX = ".mp3"
DOWNLOAD_CHUNK_SIZE = 64 * 1024

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def safe_key(key: str) -> str:
    """Filesystem-safe form of a cache key."""
    cleaned = _UNSAFE_KEY_CHARS.sub("_", key.strip().lower()).strip("._")
    if not cleaned:
        raise ValueError(f"Invalid cache key: {key!r}")
    return cleaned


class TrackCache:
    """Maps a mood or ambience key to a generated artifact on disk."""

    def __init__(
        self,
        directory: Path,
        client: Optional[GenerationJobClient] = None,
        default_duration_s: float = 30.0,
        download_timeout_s: float = 30.0,
    ):
        self.directory = Path(directory)
        self._client = client
        self.default_duration_s = default_duration_s
        self.download_timeout_s = download_timeout_s
        for kind in KINDS:
            (self.directory / kind).mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str, kind: str = "music") -> Path:
        """
        Artifact path for a key.

        Raises:
            ValidationError: If the kind is unknown or the key has no usable characters
        """
        if kind not in KINDS:
            raise ValidationError(f"Unknown cache kind: {kind}")
        try:
            name = safe_key(key)
        except ValueError as e:
            raise ValidationError(str(e))
        return self.directory / kind / f"{name}{ARTIFACT_SUFFIX}"

    def exists(self, key: str, kind: str = "music") -> bool:
        path = self.path_for(key, kind)
        return path.is_file() and path.stat().st_size > 0

    def read(self, key: str, kind: str = "music") -> bytes:
        """
        Read a cached artifact.

        Raises:
            FetchError: If it is missing or unreadable
        """
        path = self.path_for(key, kind)
        try:
            return path.read_bytes()
        except OSError as e:
            raise FetchError(f"Cached {kind} '{key}' unavailable: {e}", str(path))

    async def get_or_generate(
        self, key: str, force_regen: bool = False, kind: str = "music"
    ) -> Path:
        """
        Return the cached artifact path, generating it when missing or forced.

        Raises:
            GenerationError: If generation fails (timeout, failure, cancellation)
            FetchError: If the generated output cannot be downloaded
            ValidationError: If the key or kind is unusable
        """
        path = self.path_for(key, kind)
        if not force_regen and self.exists(key, kind):
            logger.debug(f"Track cache hit: {path}")
            return path

        if self._client is None:
            raise FetchError(f"No cached {kind} for '{key}' and generation is not configured")

        logger.info(f"Generating {kind} for '{key}'" + (" (forced)" if force_regen else ""))
        result = await self._client.submit(key, kind)
        if result.rate_limited:
            logger.warning(f"Generation for '{key}' was rate limited")
        await self.download(result.output_locator, path)
        return path

    async def download(self, url: str, path: Path) -> None:
        """
        Stream ``url`` into ``path`` atomically.

        Raises:
            FetchError: On HTTP or transport failure
        """
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".part")
        timeout = aiohttp.ClientTimeout(total=self.download_timeout_s)
        try:
            with os.fdopen(fd, "wb") as out:
                async with aiohttp.ClientSession(timeout=timeout) as session:
                    async with session.get(url) as resp:
                        if resp.status != 200:
                            raise FetchError(f"Download failed with {resp.status}", url)
                        async for chunk in resp.content.iter_chunked(DOWNLOAD_CHUNK_SIZE):
                            out.write(chunk)
            os.replace(tmp_name, path)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FetchError(f"Download failed: {e}", url)
        finally:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
        logger.info(f"Cached {path} ({path.stat().st_size} bytes)")

    def duration_s(self, path: Path) -> float:
        """Probe an artifact's duration, falling back to the configured length."""
        try:
            return float(sf.info(str(path)).duration)
        except (RuntimeError, OSError) as e:
            logger.debug(f"Cannot probe {path} ({e}), assuming {self.default_duration_s}s")
            return self.default_duration_s
