"""
Track catalog interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from soundstage.playback.types import Track

from .names import parse_track_name


@dataclass(frozen=True)
class CatalogEntry:
    """A stored track as listed by the catalog."""

    name: str
    locator: str
    last_modified: float

    def to_track(self) -> Track:
        artist, title = parse_track_name(self.name)
        return Track(
            name=self.name,
            source_locator=self.locator,
            artist=artist,
            title=title,
            added_at=self.last_modified,
        )


class CatalogError(Exception):
    """Catalog operation failed."""

    pass


class TrackCatalog(ABC):
    """
    Storage of uploaded tracks.

    Listings may lag behind writes; callers must tolerate a listed track
    that can no longer be fetched.
    """

    async def tracks(self) -> list[Track]:
        return [entry.to_track() for entry in await self.list()]

    @abstractmethod
    async def list(self) -> list[CatalogEntry]:
        """Entries in display order."""
        pass

    @abstractmethod
    async def get(self, name: str) -> str:
        """
        Locator for a track, valid for a limited time.

        Raises:
            CatalogError: If the track does not exist
        """
        pass

    @abstractmethod
    async def delete(self, name: str) -> bool:
        pass
