"""Tests for manual queue and playlist sequencing."""

import random

import pytest

from soundstage.playback import (
    MemoryPlaylistStore,
    PlaybackSession,
    PlaylistLibrary,
    Playlist,
    QueueManager,
    Track,
    ValidationError,
)


def _track(name: str) -> Track:
    return Track(name=name, source_locator=f"/music/{name}.mp3")


@pytest.fixture
def session() -> PlaybackSession:
    return PlaybackSession(scope="guild-1")


@pytest.fixture
def queue(session: PlaybackSession) -> QueueManager:
    return QueueManager(session, rng=random.Random(1234))


@pytest.fixture
def abc() -> Playlist:
    return Playlist(name="abc", tracks=[_track("a"), _track("b"), _track("c")])


class TestManualQueue:
    """Test the manual FIFO queue."""

    def test_fifo_order(self, queue: QueueManager) -> None:
        queue.enqueue(_track("A"))
        queue.enqueue(_track("B"))

        assert queue.dequeue().name == "A"
        assert queue.dequeue().name == "B"
        assert queue.dequeue() is None

    def test_len_and_entries(self, queue: QueueManager) -> None:
        queue.enqueue(_track("A"))
        entry = queue.enqueue(_track("B"))

        assert len(queue) == 2
        assert queue.has_manual
        assert queue.manual_entries()[-1] is entry
        assert entry.added_at > 0

    def test_require_dequeue_empty_raises(self, queue: QueueManager) -> None:
        with pytest.raises(ValidationError):
            queue.require_dequeue()

    def test_reset_clears_manual_and_playlist(self, queue: QueueManager, abc: Playlist) -> None:
        queue.enqueue(_track("A"))
        queue.set_playlist(abc)

        queue.reset()

        assert len(queue) == 0
        assert queue.session.active_playlist is None
        assert queue.get_next() is None


class TestPlaylistSequencing:
    """Test get_next() over the active playlist."""

    def test_no_playlist_returns_none(self, queue: QueueManager) -> None:
        assert queue.get_next() is None

    def test_ordered_wraps(self, queue: QueueManager, abc: Playlist) -> None:
        queue.set_playlist(abc)

        names = [queue.get_next().name for _ in range(6)]

        assert names == ["a", "b", "c", "a", "b", "c"]

    def test_empty_playlist_rejected(self, queue: QueueManager) -> None:
        with pytest.raises(ValidationError):
            queue.set_playlist(Playlist(name="empty"))

    def test_shuffle_plays_each_track_once_per_cycle(self, queue: QueueManager) -> None:
        tracks = [_track(f"t{i}") for i in range(12)]
        queue.set_playlist(Playlist(name="many", tracks=tracks))
        queue.toggle_shuffle()

        for _ in range(3):
            cycle = [queue.get_next().name for _ in range(len(tracks))]
            assert sorted(cycle) == sorted(t.name for t in tracks)

    def test_shuffle_rebuilds_only_when_empty(self, queue: QueueManager, abc: Playlist) -> None:
        queue.set_playlist(abc)
        queue.toggle_shuffle()

        queue.get_next()
        assert len(queue.session.shuffled_remainder) == 2
        queue.get_next()
        queue.get_next()
        assert queue.session.shuffled_remainder == []

        queue.get_next()
        assert len(queue.session.shuffled_remainder) == 2

    def test_toggle_shuffle_clears_remainder(self, queue: QueueManager, abc: Playlist) -> None:
        queue.set_playlist(abc)
        queue.toggle_shuffle()
        queue.get_next()

        assert queue.toggle_shuffle() is False
        assert queue.session.shuffled_remainder == []
        assert queue.toggle_shuffle() is True
        assert queue.session.shuffled_remainder == []

    def test_toggle_repeat(self, queue: QueueManager) -> None:
        assert queue.toggle_repeat() is True
        assert queue.session.repeat_enabled
        assert queue.toggle_repeat() is False


class TestPlaylistLibraryIntegration:
    """Test queue operations that go through the playlist library."""

    @pytest.fixture
    def library(self) -> PlaylistLibrary:
        return PlaylistLibrary(MemoryPlaylistStore())

    async def test_load_playlist(self, session: PlaybackSession, library: PlaylistLibrary) -> None:
        await library.create_playlist("guild-1", "Road Trip")
        await library.add_to_playlist("guild-1", "road trip", _track("x"))
        queue = QueueManager(session, library)

        playlist = await queue.load_playlist("ROAD TRIP")

        assert playlist.name == "Road Trip"
        assert queue.get_next().name == "x"

    async def test_load_unknown_playlist(self, session: PlaybackSession, library: PlaylistLibrary) -> None:
        queue = QueueManager(session, library)

        with pytest.raises(ValidationError):
            await queue.load_playlist("nope")

    async def test_add_to_playlist_rejects_duplicates(
        self, session: PlaybackSession, library: PlaylistLibrary
    ) -> None:
        await library.create_playlist("guild-1", "mix")
        queue = QueueManager(session, library)

        await queue.add_to_playlist("mix", _track("x"))
        with pytest.raises(ValidationError):
            await queue.add_to_playlist("mix", _track("x"))

    async def test_without_library(self, queue: QueueManager) -> None:
        with pytest.raises(ValidationError):
            await queue.load_playlist("mix")
