"""Tests for the directory-backed catalog."""

import os
from pathlib import Path

import pytest

from soundstage.catalog import CatalogError, LocalTrackCatalog


def _write(directory: Path, name: str, mtime: float) -> Path:
    path = directory / name
    path.write_bytes(b"ID3")
    os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def library(tmp_path: Path) -> Path:
    _write(tmp_path, "1-Old Artist - Old Song.mp3", 1_000_000)
    _write(tmp_path, "2-New Artist - New Song.wav", 3_000_000)
    _write(tmp_path, "3-Mid Artist - Mid Song.m4a", 2_000_000)
    _write(tmp_path, "cover.jpg", 4_000_000)
    (tmp_path / "subdir.mp3").mkdir()
    return tmp_path


class TestLocalTrackCatalog:
    """Test listing, lookup and deletion."""

    async def test_list_newest_first(self, library: Path) -> None:
        catalog = LocalTrackCatalog(library)

        entries = await catalog.list()

        assert [e.name for e in entries] == [
            "2-New Artist - New Song.wav",
            "3-Mid Artist - Mid Song.m4a",
            "1-Old Artist - Old Song.mp3",
        ]

    async def test_tracks_are_parsed(self, library: Path) -> None:
        catalog = LocalTrackCatalog(library)

        track = (await catalog.tracks())[0]

        assert track.artist == "New Artist"
        assert track.title == "New Song"
        assert track.added_at == 3_000_000
        assert track.source_locator == str(library / "2-New Artist - New Song.wav")

    async def test_missing_directory(self, tmp_path: Path) -> None:
        catalog = LocalTrackCatalog(tmp_path / "nope")

        assert await catalog.list() == []

    async def test_get(self, library: Path) -> None:
        catalog = LocalTrackCatalog(library)

        locator = await catalog.get("1-Old Artist - Old Song.mp3")

        assert Path(locator).read_bytes() == b"ID3"

    async def test_get_missing(self, library: Path) -> None:
        with pytest.raises(CatalogError, match="not found"):
            await LocalTrackCatalog(library).get("Nobody - Nothing.mp3")

    async def test_rejects_path_traversal(self, library: Path) -> None:
        catalog = LocalTrackCatalog(library / "inner")
        (library / "inner").mkdir()

        with pytest.raises(CatalogError, match="Invalid"):
            await catalog.get("../1-Old Artist - Old Song.mp3")
        with pytest.raises(CatalogError):
            await catalog.delete("../1-Old Artist - Old Song.mp3")
        assert (library / "1-Old Artist - Old Song.mp3").exists()

    async def test_delete(self, library: Path) -> None:
        catalog = LocalTrackCatalog(library)

        assert await catalog.delete("1-Old Artist - Old Song.mp3") is True
        assert await catalog.delete("1-Old Artist - Old Song.mp3") is False
        assert len(await catalog.list()) == 2
