"""
Track name parsing and lookup.

Library files are named ``[<timestamp>-]Artist - Title.<ext>``.
"""

import re
from typing import Optional, Sequence

from soundstage.playback.types import Track

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_TRACK = "Unknown Track"
AUDIO_EXTENSIONS = (".mp3", ".m4a", ".wav")

_TIMESTAMP_PREFIX = re.compile(r"^\d+-")
_EXTENSION = re.compile(r"\.(mp3|m4a|wav)$", re.IGNORECASE)


def parse_track_name(filename: Optional[str]) -> tuple[str, str]:
    """
    Split a library filename into (artist, title).

    >>> parse_track_name("1700000000-Daft Punk - One More Time.mp3")
    ('Daft Punk', 'One More Time')
    >>> parse_track_name("ambient loop.wav")
    ('Unknown Artist', 'ambient loop')
    """
    if not filename:
        return UNKNOWN_ARTIST, UNKNOWN_TRACK
    stem = _EXTENSION.sub("", _TIMESTAMP_PREFIX.sub("", filename))
    artist, sep, title = stem.partition(" - ")
    if not sep:
        return UNKNOWN_ARTIST, stem
    return artist.strip(), title.strip()


def display_name(name: str) -> str:
    artist, title = parse_track_name(name)
    return f"{artist} - {title}"


def find_matching_track(tracks: Sequence[Track], query: str) -> Optional[Track]:
    """
    Find a track by "artist - title".

    An exact (case-insensitive) match wins; otherwise the first track
    whose "artist - title" contains the query.
    """
    wanted = query.strip().lower()
    if not wanted:
        return None
    labels = [(track, display_name(track.name).lower()) for track in tracks]
    for track, label in labels:
        if label == wanted:
            return track
    for track, label in labels:
        if wanted in label:
            return track
    return None


def search_tracks(tracks: Sequence[Track], query: str) -> list[Track]:
    """Every track whose "artist - title" contains the query."""
    wanted = query.strip().lower()
    return [t for t in tracks if wanted and wanted in display_name(t.name).lower()]
