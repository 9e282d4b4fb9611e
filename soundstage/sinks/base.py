"""
Abstract output sink interface.

A sink is the live transport that consumes decoded PCM frames. A player
is bound to at most one sink at a time.
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable, Optional

import numpy as np

if TYPE_CHECKING:
    from soundstage.playback.player import AudioPlayer

logger = logging.getLogger(__name__)

# Event callback types
DisconnectCallback = Callable[[str], None]  # reason


class OutputSink(ABC):
    """
    Base class for audio outputs.

    ``subscribe(player)`` binds the player's frame stream to this sink and
    ``destroy()`` detaches it. A sink that loses its transport notifies
    ``on_disconnect`` listeners; the player auto-pauses until a sink is
    subscribed again.
    """

    def __init__(self, name: str = "OutputSink"):
        self.name = name
        self._player: Optional["AudioPlayer"] = None
        self._destroyed = False
        self._on_disconnect: Optional[DisconnectCallback] = None

    # =========================================================================
    # Binding
    # =========================================================================

    def subscribe(self, player: "AudioPlayer") -> bool:
        """
        Bind a player to this sink.

        Returns:
            True if the player is now feeding this sink
        """
        if self._destroyed:
            logger.warning(f"Cannot subscribe to destroyed sink {self.name}")
            return False
        if self._player is player:
            return True
        if self._player is not None:
            self._player.detach_sink(self)
        if not self._open():
            return False
        self._player = player
        player.attach_sink(self)
        logger.debug(f"Player subscribed to {self.name}")
        return True

    def unsubscribe(self) -> None:
        """Detach the current player without releasing the transport."""
        player, self._player = self._player, None
        if player is not None:
            player.detach_sink(self)

    def destroy(self) -> None:
        """Detach the player and release the transport. Idempotent."""
        if self._destroyed:
            return
        self.unsubscribe()
        self._destroyed = True
        self._close()
        logger.debug(f"Sink {self.name} destroyed")

    @property
    def is_subscribed(self) -> bool:
        return self._player is not None and not self._destroyed

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    # =========================================================================
    # Transport - implemented by sinks
    # =========================================================================

    def _open(self) -> bool:
        """Acquire the transport. Returns False on failure."""
        return True

    def _close(self) -> None:
        """Release the transport."""
        pass

    @abstractmethod
    async def write(self, frame: np.ndarray) -> None:
        """
        Consume one int16 (samples, 2) frame.

        Raises:
            TransportError: If the transport failed
        """
        pass

    # =========================================================================
    # Events
    # =========================================================================

    def on_disconnect(self, callback: Optional[DisconnectCallback]) -> None:
        """Register callback for transport loss."""
        self._on_disconnect = callback

    def _notify_disconnect(self, reason: str) -> None:
        """Drop the subscription and tell listeners the transport went away."""
        logger.warning(f"Sink {self.name} disconnected: {reason}")
        self.unsubscribe()
        if self._on_disconnect:
            try:
                self._on_disconnect(reason)
            except Exception as e:
                logger.error(f"Disconnect callback error: {e}")
