"""
Local audio output via sounddevice/PortAudio.
"""

from .device import OutputDevice, format_devices, query_output_devices, resolve_output_device
from .ring_buffer import FrameRingBuffer
from .sink import LocalDeviceSink
from .stream import DeviceStream

__all__ = [
    "DeviceStream",
    "FrameRingBuffer",
    "LocalDeviceSink",
    "OutputDevice",
    "format_devices",
    "query_output_devices",
    "resolve_output_device",
]
