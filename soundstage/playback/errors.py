"""Playback error types."""


class PlaybackError(Exception):
    """Base class for playback errors."""

    pass


class TransportError(PlaybackError):
    """Output sink or connection failure. Fatal to the session."""

    pass


class NotJoinedError(TransportError):
    """Operation requires an output sink but none is bound."""

    pass


class FetchError(PlaybackError):
    """Track bytes could not be obtained."""

    def __init__(self, message: str, locator: str = ""):
        super().__init__(message)
        self.locator = locator


class ResourceError(PlaybackError):
    """An audio resource could not be built."""

    pass


class ValidationError(PlaybackError):
    """Invalid request: bad playlist name, duplicate track, empty queue."""

    pass
