from __future__ import annotations

import pytest

from upliftdesk.uart.frames import (
    BufferedByteSource,
    FrameDecoder,
    SerialByteSource,
    SyncState,
)


def make_decoder():
    published: list[float] = []
    return FrameDecoder(published.append), published


def test_marker_enters_frame():
    decoder, published = make_decoder()
    decoder.feed([1, 1])
    state = decoder.state
    assert state.sync_state is SyncState.IN_FRAME
    assert state.awaiting_high_byte is True
    assert state.last_marker_byte == 0
    assert published == []


def test_single_marker_byte_keeps_seeking():
    decoder, _ = make_decoder()
    decoder.feed([1, 0, 1])
    assert decoder.state.sync_state is SyncState.SEEKING
    assert decoder.state.last_marker_byte == 1


def test_frame_assembly_publishes_height():
    decoder, published = make_decoder()
    decoder.feed([1, 1, 0, 200])
    assert decoder.state.raw_value == 200
    assert decoder.state.sync_state is SyncState.SEEKING
    assert published == [20.0]


def test_high_byte_one_is_accepted():
    decoder, published = make_decoder()
    decoder.feed([1, 1, 1, 44])
    assert published == [30.0]


def test_identical_frames_publish_once():
    decoder, published = make_decoder()
    decoder.feed([1, 1, 0, 200, 1, 1, 0, 200])
    assert published == [20.0]
    stats = decoder.stats()
    assert stats["frames"] == 2
    assert stats["duplicates"] == 1


def test_changed_value_republishes():
    decoder, published = make_decoder()
    decoder.feed([1, 1, 0, 200, 1, 1, 0, 210])
    assert published == [20.0, 21.0]


def test_returning_to_earlier_value_publishes_again():
    decoder, published = make_decoder()
    decoder.feed([1, 1, 0, 200, 1, 1, 0, 210, 1, 1, 0, 200])
    assert published == [20.0, 21.0, 20.0]


def test_implausible_high_byte_resynchronises():
    decoder, published = make_decoder()
    decoder.feed([1, 1, 5])
    assert decoder.state.sync_state is SyncState.SEEKING
    assert published == []
    assert decoder.stats()["framing_errors"] == 1

    # The byte after the rejected high byte starts seeking from scratch
    decoder.feed([7, 9, 1, 1, 0, 120])
    assert published == [12.0]


def test_marker_inside_payload_does_not_resync():
    decoder, published = make_decoder()
    # High byte 1 and low byte 1 are payload, not a new marker
    decoder.feed([1, 1, 1, 1])
    assert published == [25.7]
    assert decoder.state.sync_state is SyncState.SEEKING


def test_first_zero_frame_is_not_published():
    decoder, published = make_decoder()
    decoder.feed([1, 1, 0, 0])
    assert published == []
    decoder.feed([1, 1, 0, 1])
    assert published == [0.1]


def test_full_round_trip():
    decoder, published = make_decoder()
    decoder.feed([9, 1, 1, 0, 150, 1, 1, 0, 150, 1, 1, 0, 151])
    assert published == [15.0, 15.1]


def test_poll_drains_available_bytes():
    decoder, published = make_decoder()
    source = BufferedByteSource(bytes([1, 1, 0]))
    assert decoder.poll(source) == 3
    assert published == []
    source.extend(bytes([99]))
    assert decoder.poll(source) == 1
    assert len(source) == 0
    assert published == [9.9]


def test_poll_without_data_is_idempotent():
    decoder, published = make_decoder()
    decoder.feed([1, 1])
    before = (decoder.state.sync_state, decoder.state.awaiting_high_byte, decoder.state.raw_value)
    source = BufferedByteSource()
    for _ in range(3):
        assert decoder.poll(source) == 0
    after = (decoder.state.sync_state, decoder.state.awaiting_high_byte, decoder.state.raw_value)
    assert before == after
    assert published == []
    assert decoder.stats()["bytes"] == 2


def test_out_of_range_byte_rejected():
    decoder, _ = make_decoder()
    with pytest.raises(ValueError):
        decoder.on_byte(256)
    with pytest.raises(ValueError):
        decoder.on_byte(-1)


def test_resync_drops_partial_frame_and_keeps_last_value():
    decoder, published = make_decoder()
    decoder.feed([1, 1, 0, 200, 1, 1, 0])
    decoder.resync()
    state = decoder.state
    assert state.sync_state is SyncState.SEEKING
    assert state.awaiting_high_byte is False
    assert state.last_marker_byte == 0
    assert state.last_emitted_value == 200
    # Leftover low byte of the cut frame is ignored while seeking
    decoder.feed([210, 1, 1, 0, 200])
    assert published == [20.0]
    decoder.feed([1, 1, 0, 210])
    assert published == [20.0, 21.0]


class FakePort:
    def __init__(self, data: bytes):
        self._data = bytearray(data)

    @property
    def in_waiting(self) -> int:
        return len(self._data)

    def read(self, size: int = 1) -> bytes:
        chunk = bytes(self._data[:size])
        del self._data[:size]
        return chunk


def test_serial_byte_source_feeds_decoder():
    decoder, published = make_decoder()
    source = SerialByteSource(FakePort(bytes([3, 1, 1, 0, 72])))
    assert decoder.poll(source) == 5
    assert published == [7.2]
    assert source.has_byte() is False
