"""
Decoding of the desk controller's UART height telemetry.

The subpackage holds the frame decoder, its byte sources, the JSON host
configuration and the serial reader/host loop used by the command line.
"""

from .config import DeskConfig, HostRuntime, SerialConfig, load_config
from .frames import (
    BufferedByteSource,
    ByteSource,
    DecoderState,
    FrameDecoder,
    SerialByteSource,
    SyncState,
)
from .runner import DeskHeightHost, HeightReading, SerialReaderThread, SerialSettings, decode_stream

__all__ = [
    "DeskConfig",
    "HostRuntime",
    "SerialConfig",
    "load_config",
    "BufferedByteSource",
    "ByteSource",
    "DecoderState",
    "FrameDecoder",
    "SerialByteSource",
    "SyncState",
    "DeskHeightHost",
    "HeightReading",
    "SerialReaderThread",
    "SerialSettings",
    "decode_stream",
]
