from __future__ import annotations

import logging
import queue
import threading
from typing import Any, BinaryIO, Iterator, Optional

import serial

from .config import HostRuntime, SerialSettings


class SerialReaderThread(threading.Thread):
    """
    Reads raw byte chunks from the instrument and queues them for the owner thread.

    The thread never parses anything itself. Every (re)connection puts a ``None``
    marker on the queue ahead of the new link's data, so the consumer can drop a
    half-received line left over from the previous link. A chunk dropped on a
    full queue breaks the byte stream the same way, so the next chunk is only
    queued once a ``None`` marker has been queued ahead of it.
    """

    def __init__(
        self,
        settings: SerialSettings,
        runtime: HostRuntime,
        chunk_queue: "queue.Queue[Optional[bytes]]",
    ) -> None:
        super().__init__(daemon=True)
        self.settings = settings
        self.runtime = runtime
        self.queue = chunk_queue
        self._stop_event = threading.Event()
        self._serial_handle = None
        self._bytes = 0
        self._dropped = 0
        self._reconnects = 0
        self._connected_once = False
        self._resync_pending = False
        self.last_exception: Optional[Exception] = None
        self._log = logging.getLogger(__name__)

    def run(self) -> None:
        initial_delay = max(self.runtime.reconnect_initial_sec, 0.01)
        max_delay = max(self.runtime.reconnect_max_sec, initial_delay)
        backoff = initial_delay
        chunk_size = max(self.runtime.chunk_size, 1)
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
                self._emit(None)
                self.last_exception = None
                backoff = initial_delay
                self._pump(chunk_size)
            except serial.SerialException as exc:
                self.last_exception = exc
                self._log.warning("Serial error (%s): %s", self.settings.port, exc)
            except Exception as exc:  # pragma: no cover - port closed under a blocking read
                self.last_exception = exc
                if not self._stop_event.is_set():
                    self._log.exception("Unexpected error in serial reader")
            finally:
                self._close_handle()
            if self._stop_event.is_set():
                break
            wait_time = min(backoff, max_delay)
            self._log.info("Reconnecting in %.1fs", wait_time)
            self._stop_event.wait(wait_time)
            backoff = min(backoff * 2, max_delay)

    def _pump(self, chunk_size: int) -> None:
        while not self._stop_event.is_set():
            handle = self._serial_handle
            if handle is None:
                return
            waiting = getattr(handle, "in_waiting", 0) or 0
            data = handle.read(min(max(waiting, 1), chunk_size))
            if not data:
                continue
            self._bytes += len(data)
            self._emit(bytes(data))

    def _emit(self, chunk: Optional[bytes]) -> None:
        if self._resync_pending:
            if not self._put(None):
                if chunk is not None:
                    self._dropped += 1
                return
            self._resync_pending = False
            if chunk is None:
                return
        if not self._put(chunk):
            if chunk is not None:
                self._dropped += 1
            self._resync_pending = True

    def _put(self, item: Optional[bytes]) -> bool:
        try:
            self.queue.put(item, timeout=1.0)
        except queue.Full:
            self._log.warning("Chunk queue full (%d), dropping chunk", self.queue.qsize())
            return False
        return True

    def stop(self) -> None:
        self._stop_event.set()
        self._close_handle()

    def stats(self) -> dict[str, int]:
        return {
            "bytes": self._bytes,
            "dropped": self._dropped,
            "reconnects": self._reconnects,
        }

    def _close_handle(self) -> None:
        handle = self._serial_handle
        self._serial_handle = None
        if handle is None:
            return
        try:
            handle.close()
        except Exception as exc:
            self._log.debug("Error closing %s: %s", self.settings.port, exc)

    def _open_serial(self):
        return serial.Serial(
            port=self.settings.port,
            baudrate=self.settings.baudrate,
            timeout=self.settings.timeout,
        )


def iterate_binary_stream(handle: BinaryIO | Any, chunk_size: int = 256) -> Iterator[bytes]:
    while True:
        chunk = handle.read(chunk_size)
        if not chunk:
            break
        yield chunk
