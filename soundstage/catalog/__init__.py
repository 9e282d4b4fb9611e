"""
Track catalog: listing, lookup and name parsing.
"""

from .base import CatalogEntry, CatalogError, TrackCatalog
from .local import LocalTrackCatalog
from .names import display_name, find_matching_track, parse_track_name, search_tracks

__all__ = [
    "CatalogEntry",
    "CatalogError",
    "LocalTrackCatalog",
    "TrackCatalog",
    "display_name",
    "find_matching_track",
    "parse_track_name",
    "search_tracks",
]
