"""
Track byte fetching.

Locators are either http(s) URLs (downloaded with aiohttp) or local
filesystem paths.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import aiohttp

from .errors import FetchError
from .types import Track

logger = logging.getLogger(__name__)


class TrackFetcher:
    """Loads the encoded bytes of a track."""

    def __init__(self, timeout_s: float = 10.0):
        self.timeout_s = timeout_s
        self._session: Optional[aiohttp.ClientSession] = None

    async def fetch(self, track: Track) -> bytes:
        """
        Raises:
            FetchError: If the bytes are unavailable or empty
        """
        locator = track.source_locator
        if not locator:
            raise FetchError(f"Track '{track.name}' has no locator")

        if locator.startswith(("http://", "https://")):
            data = await self._download(locator)
        else:
            data = self._read_file(Path(locator))

        if not data:
            raise FetchError(f"Track '{track.name}' is empty", locator)
        logger.debug(f"Fetched {len(data)} bytes for '{track.name}'")
        return data

    async def _download(self, url: str) -> bytes:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        timeout = aiohttp.ClientTimeout(total=self.timeout_s)
        try:
            async with self._session.get(url, timeout=timeout) as resp:
                if resp.status != 200:
                    raise FetchError(f"Download failed with {resp.status}", url)
                return await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FetchError(f"Download failed: {e}", url)

    def _read_file(self, path: Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as e:
            raise FetchError(f"Cannot read {path}: {e}", str(path))

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None
