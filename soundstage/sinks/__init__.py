"""
Audio output sinks.

Provides the OutputSink interface and a factory that builds the sink
named in configuration.
"""

import logging

from soundstage.config import AudioConfig, OutputConfig

from .base import DisconnectCallback, OutputSink
from .local import LocalDeviceSink
from .null import NullSink

logger = logging.getLogger(__name__)

SINK_TYPES: dict[str, type[OutputSink]] = {
    "local": LocalDeviceSink,
    "null": NullSink,
}


def create_sink(output: OutputConfig, audio: AudioConfig) -> OutputSink:
    """
    Build the configured output sink.

    Raises:
        ValueError: If the sink type is unknown
    """
    if output.type not in SINK_TYPES:
        raise ValueError(
            f"Output type '{output.type}' not available. Available types: {sorted(SINK_TYPES)}"
        )
    if output.type == "local":
        sink: OutputSink = LocalDeviceSink(
            device=output.device,
            sample_rate=audio.sample_rate,
            blocksize=output.buffer_size,
        )
    else:
        sink = NullSink()
    logger.debug(f"Created {output.type} sink")
    return sink


__all__ = [
    "DisconnectCallback",
    "LocalDeviceSink",
    "NullSink",
    "OutputSink",
    "SINK_TYPES",
    "create_sink",
]
