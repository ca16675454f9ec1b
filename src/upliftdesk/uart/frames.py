from __future__ import annotations

import enum
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Iterable, Iterator, Protocol


MARKER_BYTE = 0x01
MAX_HIGH_BYTE = 0x01
HEIGHT_SCALE = 10.0


class SyncState(str, enum.Enum):
    SEEKING = "seeking"
    IN_FRAME = "in_frame"


@dataclass
class DecoderState:
    sync_state: SyncState = SyncState.SEEKING
    awaiting_high_byte: bool = False
    last_marker_byte: int = 0
    raw_value: int = 0
    last_emitted_value: int = 0


class ByteSource(Protocol):
    def has_byte(self) -> bool:
        ...

    def next_byte(self) -> int:
        ...


class BufferedByteSource:
    """Byte source backed by chunks handed over from a reader."""

    def __init__(self, data: bytes = b""):
        self._pending: Deque[int] = deque(data)

    def extend(self, chunk: bytes) -> None:
        self._pending.extend(chunk)

    def has_byte(self) -> bool:
        return bool(self._pending)

    def next_byte(self) -> int:
        return self._pending.popleft()

    def __len__(self) -> int:
        return len(self._pending)


class SerialByteSource:
    """
    Adapter exposing an open pyserial handle as a byte source.

    Single-byte polling for callers that embed the decoder in their own loop;
    the reader thread uses chunked reads into a BufferedByteSource instead.
    """

    def __init__(self, handle: Any):
        self._handle = handle

    def has_byte(self) -> bool:
        return self._handle.in_waiting > 0

    def next_byte(self) -> int:
        data = self._handle.read(1)
        if not data:
            raise EOFError("serial port returned no data")
        return data[0]


class FrameDecoder:
    """
    Streaming decoder for the desk controller's height telemetry.

    A frame is the marker ``01 01`` followed by a big-endian 16-bit payload
    whose high byte is at most 1. The payload is published in tenths, and a
    value equal to the previously published one is suppressed.
    """

    def __init__(self, publish: Callable[[float], None]):
        self._publish = publish
        self._state = DecoderState()
        self._stats: Dict[str, int] = {
            "bytes": 0,
            "frames": 0,
            "framing_errors": 0,
            "duplicates": 0,
            "published": 0,
        }
        self._log = logging.getLogger(__name__)

    @property
    def state(self) -> DecoderState:
        return self._state

    def on_byte(self, b: int) -> None:
        if not 0 <= b <= 0xFF:
            raise ValueError(f"Byte value out of range: {b}")
        self._stats["bytes"] += 1
        state = self._state
        if state.sync_state is SyncState.SEEKING:
            self._seek(b)
        elif state.awaiting_high_byte:
            state.raw_value = 256 * b
            state.awaiting_high_byte = False
            if state.raw_value > 256 * MAX_HIGH_BYTE:
                # Locked onto a spurious marker, start over
                state.sync_state = SyncState.SEEKING
                self._stats["framing_errors"] += 1
                self._log.debug("Implausible high byte 0x%02X, resynchronising", b)
        else:
            state.raw_value += b
            state.sync_state = SyncState.SEEKING
            self._stats["frames"] += 1
            self._complete(state.raw_value)

    def _seek(self, b: int) -> None:
        state = self._state
        if b == MARKER_BYTE and state.last_marker_byte == MARKER_BYTE:
            state.sync_state = SyncState.IN_FRAME
            state.last_marker_byte = 0
            state.awaiting_high_byte = True
        else:
            state.last_marker_byte = b

    def _complete(self, raw: int) -> None:
        state = self._state
        if raw != state.last_emitted_value:
            self._stats["published"] += 1
            self._publish(raw / HEIGHT_SCALE)
        else:
            self._stats["duplicates"] += 1
        state.last_emitted_value = raw

    def poll(self, source: ByteSource) -> int:
        consumed = 0
        while source.has_byte():
            self.on_byte(source.next_byte())
            consumed += 1
        return consumed

    def feed(self, data: Iterable[int]) -> None:
        for b in data:
            self.on_byte(b)

    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def resync(self) -> None:
        """Drop any partial frame and seek a new marker, keeping the last published value."""
        state = self._state
        state.sync_state = SyncState.SEEKING
        state.awaiting_high_byte = False
        state.last_marker_byte = 0


def iterate_binary_stream(handle: Any, chunk_size: int = 64) -> Iterator[bytes]:
    while True:
        chunk = handle.read(chunk_size)
        if not chunk:
            break
        yield chunk
