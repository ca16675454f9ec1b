from __future__ import annotations

import logging
import queue
import sys
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import serial  # type: ignore[import]

from .config import DeskConfig
from .frames import BufferedByteSource, FrameDecoder, iterate_binary_stream

logger = logging.getLogger(__name__)


@dataclass
class SerialSettings:
    port: str
    baudrate: int = 9600
    timeout: float = 0.5


@dataclass(frozen=True)
class HeightReading:
    height: float
    raw: int
    ts: float


class SerialReaderThread(threading.Thread):
    """Reads the desk UART, decodes heights and queues each published reading."""

    def __init__(
        self,
        settings: SerialSettings,
        config: DeskConfig,
        reading_queue: "queue.Queue[HeightReading]",
    ) -> None:
        super().__init__(daemon=True)
        self.settings = settings
        self.config = config
        self.queue = reading_queue
        self.decoder = FrameDecoder(self._on_height)
        self._source = BufferedByteSource()
        self._stop_event = threading.Event()
        self._serial_handle = None
        self._dropped = 0
        self._reconnects = 0
        self._connected_once = False
        self.last_exception: Optional[Exception] = None
        self._log = logging.getLogger(__name__)

    def run(self) -> None:
        initial_delay = max(self.config.host.reconnect_initial_sec, 0.01)
        max_delay = max(self.config.host.reconnect_max_sec, initial_delay)
        backoff = initial_delay
        chunk_size = self.config.host.chunk_size
        while not self._stop_event.is_set():
            self._serial_handle = None
            try:
                self._serial_handle = self._open_serial()
                if self._connected_once:
                    self._reconnects += 1
                    self._log.info("Reconnected to %s", self.settings.port)
                else:
                    self._log.info("Connected to %s", self.settings.port)
                    self._connected_once = True
                self.last_exception = None
                backoff = initial_delay
                self.decoder.resync()
                self._source = BufferedByteSource()
                while not self._stop_event.is_set():
                    data = self._serial_handle.read(chunk_size)
                    if not data:
                        continue
                    self._source.extend(data)
                    self.decoder.poll(self._source)
            except serial.SerialException as exc:  # type: ignore[attr-defined]
                self.last_exception = exc
                self._log.warning("Serial error (%s): %s", self.settings.port, exc)
            except Exception as exc:
                self.last_exception = exc
                self._log.exception("Unexpected error in serial reader")
            finally:
                self._close_handle()
            if self._stop_event.is_set():
                break
            wait_time = min(backoff, max_delay)
            self._log.info("Reconnecting in %.1fs", wait_time)
            self._stop_event.wait(wait_time)
            backoff = min(backoff * 2, max_delay)

    def stop(self) -> None:
        self._stop_event.set()
        self._close_handle()

    def stats(self) -> Dict[str, int]:
        stats = self.decoder.stats()
        stats["dropped"] = self._dropped
        stats["reconnects"] = self._reconnects
        return stats

    def _on_height(self, height: float) -> None:
        reading = HeightReading(height=height, raw=self.decoder.state.raw_value, ts=time.time())
        try:
            self.queue.put(reading, timeout=1.0)
        except queue.Full:
            self._dropped += 1
            self._log.warning("Reading queue full (%d), dropping height %.1f", self.queue.qsize(), height)

    def _close_handle(self) -> None:
        handle = self._serial_handle
        if handle is None:
            return
        try:
            handle.close()
        except serial.SerialException as exc:  # type: ignore[attr-defined]
            self._log.debug("Error closing %s: %s", self.settings.port, exc)

    def _open_serial(self):
        return serial.Serial(
            port=self.settings.port,
            baudrate=self.settings.baudrate,
            timeout=self.settings.timeout,
        )


def decode_stream(chunks: Iterable[bytes]) -> Tuple[List[HeightReading], Dict[str, int]]:
    """Decode a finite byte stream with a fresh decoder."""
    readings: List[HeightReading] = []
    decoder: FrameDecoder

    def collect(height: float) -> None:
        readings.append(HeightReading(height=height, raw=decoder.state.raw_value, ts=time.time()))

    decoder = FrameDecoder(collect)
    for chunk in chunks:
        decoder.feed(chunk)
    return readings, decoder.stats()


class DeskHeightHost:
    """Host-side loop forwarding decoded desk heights to a sink."""

    def __init__(
        self,
        settings: SerialSettings,
        config: DeskConfig,
        sink: Callable[[HeightReading], None],
    ):
        self.settings = settings
        self.config = config
        self.sink = sink
        self.published = 0

    def run(self) -> None:
        if self.settings.port == "-":
            self._run_from_stream()
            return

        reading_queue: "queue.Queue[HeightReading]" = queue.Queue(maxsize=self.config.host.queue_maxsize)
        reader = SerialReaderThread(self.settings, self.config, reading_queue)
        reader.start()
        interval_sec = max(float(self.config.host.stats_log_interval), 5.0)
        next_log = time.monotonic() + interval_sec

        def emit_stats(prefix: str) -> None:
            stats = reader.stats()
            logger.info(
                "%spublished=%d frames=%d duplicates=%d framing_errors=%d dropped=%d reconnects=%d",
                prefix,
                self.published,
                stats.get("frames", 0),
                stats.get("duplicates", 0),
                stats.get("framing_errors", 0),
                stats.get("dropped", 0),
                stats.get("reconnects", 0),
            )

        try:
            while True:
                try:
                    reading = reading_queue.get(timeout=1.0)
                except queue.Empty:
                    reading = None
                if reading is not None:
                    self._deliver(reading)
                if time.monotonic() >= next_log:
                    emit_stats("")
                    next_log = time.monotonic() + interval_sec
        except KeyboardInterrupt:
            logger.info("Stopping host (Ctrl+C)")
        finally:
            reader.stop()
            reader.join(timeout=5)
            emit_stats("Final stats: ")

    def _run_from_stream(self) -> None:
        decoder: FrameDecoder

        def forward(height: float) -> None:
            self._deliver(HeightReading(height=height, raw=decoder.state.raw_value, ts=time.time()))

        decoder = FrameDecoder(forward)
        for chunk in iterate_binary_stream(sys.stdin.buffer, self.config.host.chunk_size):
            decoder.feed(chunk)
        stats = decoder.stats()
        logger.info(
            "Processed %d bytes from stdin (published=%d framing_errors=%d)",
            stats["bytes"],
            stats["published"],
            stats["framing_errors"],
        )

    def _deliver(self, reading: HeightReading) -> None:
        self.published += 1
        self.sink(reading)
