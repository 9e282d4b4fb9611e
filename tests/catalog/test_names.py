"""Tests for track name parsing and lookup."""

import pytest

from soundstage.catalog import display_name, find_matching_track, parse_track_name, search_tracks
from soundstage.playback import Track


def _track(name: str) -> Track:
    return Track(name=name, source_locator=f"/library/{name}")


@pytest.fixture
def tracks() -> list[Track]:
    return [
        _track("1700000300-Daft Punk - One More Time.mp3"),
        _track("1700000200-Daft Punk - One More Time (Radio Edit).mp3"),
        _track("1700000100-Boards of Canada - Roygbiv.wav"),
        _track("rain on tin roof.m4a"),
    ]


class TestParseTrackName:
    """Test splitting filenames into artist and title."""

    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("1700000000-Daft Punk - One More Time.mp3", ("Daft Punk", "One More Time")),
            ("Daft Punk - One More Time.MP3", ("Daft Punk", "One More Time")),
            ("ambient loop.wav", ("Unknown Artist", "ambient loop")),
            ("A - B - C.m4a", ("A", "B - C")),
            ("notes.txt", ("Unknown Artist", "notes.txt")),
        ],
    )
    def test_parse(self, filename: str, expected: tuple[str, str]) -> None:
        assert parse_track_name(filename) == expected

    def test_empty(self) -> None:
        assert parse_track_name("") == ("Unknown Artist", "Unknown Track")
        assert parse_track_name(None) == ("Unknown Artist", "Unknown Track")

    def test_display_name(self) -> None:
        assert display_name("12-Ozric Tentacles - Erpland.mp3") == "Ozric Tentacles - Erpland"


class TestFindMatchingTrack:
    """Test lookup by "artist - title"."""

    def test_exact_match_wins_over_earlier_partial(self, tracks: list[Track]) -> None:
        reversed_tracks = list(reversed(tracks))

        found = find_matching_track(reversed_tracks, "daft punk - one more time")

        assert found.name == "1700000300-Daft Punk - One More Time.mp3"

    def test_partial_match(self, tracks: list[Track]) -> None:
        found = find_matching_track(tracks, "roygbiv")

        assert found.name == "1700000100-Boards of Canada - Roygbiv.wav"

    def test_no_match(self, tracks: list[Track]) -> None:
        assert find_matching_track(tracks, "aphex twin") is None
        assert find_matching_track(tracks, "   ") is None

    def test_search(self, tracks: list[Track]) -> None:
        assert len(search_tracks(tracks, "daft")) == 2
        assert search_tracks(tracks, "") == []
