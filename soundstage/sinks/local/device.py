"""
Output device lookup.

Wraps sounddevice (PortAudio) device enumeration and turns the configured
device string into a concrete output device.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from soundstage.playback.errors import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutputDevice:
    """A PortAudio device with at least one output channel."""

    index: int
    name: str
    channels: int
    default_samplerate: float
    is_default: bool = False

    def describe(self) -> str:
        marker = " (default)" if self.is_default else ""
        return f"[{self.index}] {self.name}{marker} - {self.channels}ch, {int(self.default_samplerate)}Hz"


def _load_sounddevice():
    """Import sounddevice, reporting a missing PortAudio as a transport failure."""
    try:
        import sounddevice
    except OSError as e:
        raise TransportError(f"PortAudio library not available: {e}")
    return sounddevice


def query_output_devices() -> list[OutputDevice]:
    """Enumerate devices that can play audio."""
    sd = _load_sounddevice()
    default_index = sd.default.device[1]

    return [
        OutputDevice(
            index=index,
            name=info["name"],
            channels=info["max_output_channels"],
            default_samplerate=info["default_samplerate"],
            is_default=index == default_index,
        )
        for index, info in enumerate(sd.query_devices())
        if info["max_output_channels"] > 0
    ]


def _by_index(devices: list[OutputDevice], query: str) -> Optional[OutputDevice]:
    if not query.strip().isdigit():
        return None
    wanted = int(query)
    for device in devices:
        if device.index == wanted:
            return device
    raise TransportError(
        f"No output device at index {wanted}. Available devices:\n{format_devices(devices)}"
    )


def _by_name(devices: list[OutputDevice], query: str) -> Optional[OutputDevice]:
    lowered = query.lower()
    exact = [d for d in devices if d.name.lower() == lowered]
    if exact:
        return exact[0]
    partial = [d for d in devices if lowered in d.name.lower()]
    if len(partial) > 1:
        logger.warning(f"'{query}' matches {len(partial)} devices, using {partial[0].name}")
    return partial[0] if partial else None


def resolve_output_device(query: str = "default") -> OutputDevice:
    """
    Pick the output device named by configuration.

    Args:
        query: "default", a device index, or a (partial) device name

    Raises:
        TransportError: If no matching output device exists
    """
    devices = query_output_devices()
    if not devices:
        raise TransportError("No audio output devices found")

    if query.lower() == "default":
        device = next((d for d in devices if d.is_default), devices[0])
    else:
        device = _by_index(devices, query) or _by_name(devices, query)

    if device is None:
        raise TransportError(
            f"No output device matching '{query}'. Available devices:\n{format_devices(devices)}"
        )
    logger.info(f"Audio output device: {device.name}")
    return device


def format_devices(devices: Optional[list[OutputDevice]] = None) -> str:
    """One line per device, for CLI listings and error messages."""
    if devices is None:
        devices = query_output_devices()
    return "\n".join(f"  {d.describe()}" for d in devices)
