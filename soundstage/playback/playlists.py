"""
Playlist library and persistence.

Playlists are grouped by scope (one scope per output binding, e.g. a
guild or a room). Names are unique within a scope, compared
case-insensitively. The library keeps an in-memory copy of each scope
and writes every change through to a PlaylistStore.
"""

import logging
import os
import tempfile
import time
import unicodedata
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import yaml

from .errors import ValidationError
from .types import Playlist, Track

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100


def validate_playlist_name(name: str) -> str:
    """
    Check a playlist name and return it stripped.

    Raises:
        ValidationError: If the name is empty, too long or has control characters
    """
    if not isinstance(name, str):
        raise ValidationError("Playlist name must be a string")
    name = name.strip()
    if not name:
        raise ValidationError("Playlist name cannot be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Playlist name must be at most {MAX_NAME_LENGTH} characters")
    if any(unicodedata.category(ch) == "Cc" for ch in name):
        raise ValidationError("Playlist name cannot contain control characters")
    return name


def _key(name: str) -> str:
    return name.strip().casefold()


# =============================================================================
# Stores
# =============================================================================


class PlaylistStore(ABC):
    """Persistence for playlists, keyed by scope and name."""

    @abstractmethod
    async def get(self, scope: str, name: str) -> Optional[Playlist]:
        pass

    @abstractmethod
    async def put(self, scope: str, playlist: Playlist) -> None:
        pass

    @abstractmethod
    async def delete(self, scope: str, name: str) -> bool:
        pass

    @abstractmethod
    async def list(self, scope: str) -> list[Playlist]:
        pass


class MemoryPlaylistStore(PlaylistStore):
    """Process-local store."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict]] = {}

    async def get(self, scope: str, name: str) -> Optional[Playlist]:
        raw = self._data.get(scope, {}).get(_key(name))
        return Playlist.from_dict(raw) if raw else None

    async def put(self, scope: str, playlist: Playlist) -> None:
        self._data.setdefault(scope, {})[_key(playlist.name)] = playlist.to_dict()

    async def delete(self, scope: str, name: str) -> bool:
        return self._data.get(scope, {}).pop(_key(name), None) is not None

    async def list(self, scope: str) -> list[Playlist]:
        return [Playlist.from_dict(raw) for raw in self._data.get(scope, {}).values()]


class YamlPlaylistStore(PlaylistStore):
    """
    Stores all scopes in one YAML document.

    Layout::

        <scope>:
          <lowercased name>:
            name: ...
            tracks: [...]
            created_at: ...
            last_modified: ...

    Writes go to a temporary file in the same directory that is then
    renamed over the original, so readers never see a partial document.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValidationError(f"Playlist file {self.path} is corrupt: {e}")
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w") as f:
                yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    async def get(self, scope: str, name: str) -> Optional[Playlist]:
        raw = self._load().get(scope, {}).get(_key(name))
        return Playlist.from_dict(raw) if raw else None

    async def put(self, scope: str, playlist: Playlist) -> None:
        data = self._load()
        data.setdefault(scope, {})[_key(playlist.name)] = playlist.to_dict()
        self._save(data)

    async def delete(self, scope: str, name: str) -> bool:
        data = self._load()
        removed = data.get(scope, {}).pop(_key(name), None)
        if removed is None:
            return False
        self._save(data)
        return True

    async def list(self, scope: str) -> list[Playlist]:
        return [Playlist.from_dict(raw) for raw in (self._load().get(scope) or {}).values()]


# =============================================================================
# Library
# =============================================================================


class PlaylistLibrary:
    """
    Playlist operations with a per-scope in-memory cache.

    All mutations raise ValidationError on bad input instead of failing
    silently.
    """

    def __init__(self, store: PlaylistStore):
        self._store = store
        self._cache: dict[str, dict[str, Playlist]] = {}

    async def _scope(self, scope: str) -> dict[str, Playlist]:
        if scope not in self._cache:
            playlists = await self._store.list(scope)
            self._cache[scope] = {_key(p.name): p for p in playlists}
            logger.debug(f"Loaded {len(playlists)} playlists for scope {scope}")
        return self._cache[scope]

    async def list_playlists(self, scope: str) -> list[Playlist]:
        """Playlists in a scope, oldest first."""
        playlists = await self._scope(scope)
        return sorted(playlists.values(), key=lambda p: p.created_at)

    async def get_playlist(self, scope: str, name: str) -> Optional[Playlist]:
        playlists = await self._scope(scope)
        return playlists.get(_key(name))

    async def require_playlist(self, scope: str, name: str) -> Playlist:
        playlist = await self.get_playlist(scope, name)
        if playlist is None:
            raise ValidationError(f"Playlist '{name}' not found")
        return playlist

    async def create_playlist(self, scope: str, name: str) -> Playlist:
        """
        Create an empty playlist.

        Raises:
            ValidationError: If the name is invalid or already taken
        """
        name = validate_playlist_name(name)
        playlists = await self._scope(scope)
        if _key(name) in playlists:
            raise ValidationError(f"A playlist named '{name}' already exists")

        playlist = Playlist(name=name)
        await self._store.put(scope, playlist)
        playlists[_key(name)] = playlist
        logger.info(f"Created playlist '{name}' in {scope}")
        return playlist

    async def delete_playlist(self, scope: str, name: str) -> None:
        playlists = await self._scope(scope)
        if _key(name) not in playlists:
            raise ValidationError(f"Playlist '{name}' not found")
        await self._store.delete(scope, name)
        del playlists[_key(name)]
        logger.info(f"Deleted playlist '{name}' from {scope}")

    async def add_to_playlist(self, scope: str, name: str, track: Track) -> Playlist:
        """
        Append a track.

        Raises:
            ValidationError: If the playlist is unknown or already has the track
        """
        playlist = await self.require_playlist(scope, name)
        if playlist.contains(track.id):
            raise ValidationError(f"'{track.name}' is already in playlist '{playlist.name}'")

        playlist.tracks.append(track)
        playlist.last_modified = time.time()
        await self._store.put(scope, playlist)
        logger.info(f"Added '{track.name}' to playlist '{playlist.name}'")
        return playlist

    async def create_or_update_from_tracks(
        self, scope: str, name: str, tracks: list[Track]
    ) -> tuple[Playlist, int]:
        """
        Create a playlist, or extend an existing one, from search results.

        Tracks already present are skipped.

        Returns:
            The playlist and the number of tracks added
        """
        name = validate_playlist_name(name)
        playlists = await self._scope(scope)
        playlist = playlists.get(_key(name))
        if playlist is None:
            playlist = Playlist(name=name)
            playlists[_key(name)] = playlist

        added = 0
        for track in tracks:
            if not playlist.contains(track.id):
                playlist.tracks.append(track)
                added += 1
        playlist.last_modified = time.time()
        await self._store.put(scope, playlist)
        logger.info(f"Playlist '{playlist.name}': added {added} of {len(tracks)} tracks")
        return playlist, added

    def invalidate(self, scope: Optional[str] = None) -> None:
        """Drop cached playlists so the next access reloads from the store."""
        if scope is None:
            self._cache.clear()
        else:
            self._cache.pop(scope, None)
