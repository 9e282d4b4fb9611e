"""
Catalog over a local directory of audio files.
"""

import logging
from pathlib import Path

from .base import CatalogEntry, CatalogError, TrackCatalog
from .names import AUDIO_EXTENSIONS

logger = logging.getLogger(__name__)


class LocalTrackCatalog(TrackCatalog):
    """Every audio file directly inside ``library_dir``, newest first."""

    def __init__(self, library_dir: Path):
        self.library_dir = Path(library_dir)

    def _path(self, name: str) -> Path:
        path = (self.library_dir / name).resolve()
        if path.parent != self.library_dir.resolve():
            raise CatalogError(f"Invalid track name: {name}")
        return path

    async def list(self) -> list[CatalogEntry]:
        if not self.library_dir.is_dir():
            logger.debug(f"Library directory missing: {self.library_dir}")
            return []
        entries = []
        for path in self.library_dir.iterdir():
            if not path.is_file() or path.suffix.lower() not in AUDIO_EXTENSIONS:
                continue
            try:
                mtime = path.stat().st_mtime
            except FileNotFoundError:
                # Removed while listing
                continue
            entries.append(CatalogEntry(name=path.name, locator=str(path), last_modified=mtime))
        entries.sort(key=lambda e: e.last_modified, reverse=True)
        return entries

    async def get(self, name: str) -> str:
        path = self._path(name)
        if not path.is_file():
            raise CatalogError(f"Track not found: {name}")
        return str(path)

    async def delete(self, name: str) -> bool:
        path = self._path(name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info(f"Deleted track {name}")
        return True
