from __future__ import annotations

import logging
import queue
import threading
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from .config import ScoutConfig
from .export import NumberFormat
from .manager import MeasurementDataManager, ParseResult
from .reader import SerialReaderThread
from .series import MeasurementSeries

logger = logging.getLogger(__name__)

AUTO_CSV_NAME = "dscout.csv"
AUTO_PYTHON_NAME = "dscout.py"

_LF = 0x0A


class AcquisitionSession:
    """
    Single owner of a :class:`MeasurementDataManager`.

    Chunks arriving from a serial reader thread, stdin or a capture file are fed
    into the manager on the calling thread only. Completed series are handed to
    registered callbacks and, when ``export.auto_dir`` is configured, written
    out immediately.
    """

    def __init__(
        self,
        config: ScoutConfig,
        manager: Optional[MeasurementDataManager] = None,
        number_format: Optional[NumberFormat] = None,
    ):
        self.config = config
        self.manager = manager or MeasurementDataManager()
        self.number_format = number_format or config.export.number_format()
        self._callbacks: List[Callable[[MeasurementSeries], None]] = []
        self._stop_event = threading.Event()

    def register_callback(self, callback: Callable[[MeasurementSeries], None]) -> None:
        self._callbacks.append(callback)

    def consume(self, chunk: bytes) -> int:
        completed = 0
        for byte in chunk:
            result = self.manager.process_received_char(byte)
            if result is ParseResult.SERIES_COMPLETED:
                completed += 1
                self._on_series_completed()
            elif byte == _LF:
                self._report_progress()
        return completed

    def consume_stream(self, chunks: Iterable[bytes]) -> int:
        completed = 0
        for chunk in chunks:
            completed += self.consume(chunk)
            if self._stop_event.is_set():
                break
        return completed

    def run_serial(self) -> None:
        """Read from the configured serial port until :meth:`stop` or Ctrl+C."""

        chunk_queue: "queue.Queue[Optional[bytes]]" = queue.Queue(
            maxsize=self.config.host.queue_maxsize
        )
        reader = SerialReaderThread(self.config.serial, self.config.host, chunk_queue)
        reader.start()
        try:
            while not self._stop_event.is_set():
                try:
                    chunk = chunk_queue.get(timeout=0.5)
                except queue.Empty:
                    continue
                if chunk is None:
                    self._on_link_up()
                    continue
                self.consume(chunk)
        except KeyboardInterrupt:
            logger.info("Stopping acquisition (Ctrl+C)")
        finally:
            reader.stop()
            reader.join(timeout=5)
            reader_stats = reader.stats()
            parser_stats = self.manager.stats()
            logger.info(
                "Final stats: series=%d bytes=%d dropped=%d reconnects=%d malformed_lines=%d",
                self.manager.series_count(),
                reader_stats.get("bytes", 0),
                reader_stats.get("dropped", 0),
                reader_stats.get("reconnects", 0),
                parser_stats.get("malformed_lines", 0),
            )

    def stop(self) -> None:
        self._stop_event.set()

    def export(
        self,
        *,
        csv_path: Optional[Path] = None,
        python_path: Optional[Path] = None,
        png_path: Optional[Path] = None,
    ) -> bool:
        """Write each requested export; ``False`` if any of them failed."""

        ok = True
        if csv_path is not None:
            ok = self.manager.export_csv(csv_path, self.number_format) and ok
        if python_path is not None:
            ok = self.manager.export_python(python_path) and ok
        if png_path is not None:
            from .plotting import generate_plot

            try:
                generate_plot(
                    self.manager.all_series(),
                    png_path,
                    max_voltage=self.manager.get_max_voltage(),
                    max_current=self.manager.get_max_current(),
                )
                logger.info("PNG export written to %s", png_path)
            except (OSError, RuntimeError, ValueError) as exc:
                logger.warning("PNG export to %s failed: %s", png_path, exc)
                ok = False
        return ok

    def _on_series_completed(self) -> None:
        series = self.manager.series(self.manager.series_count() - 1)
        for callback in self._callbacks:
            callback(series)
        auto_dir = self.config.export.auto_dir
        if auto_dir is None:
            return
        try:
            auto_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("Unable to create auto-export directory %s: %s", auto_dir, exc)
            return
        self.export(csv_path=auto_dir / AUTO_CSV_NAME, python_path=auto_dir / AUTO_PYTHON_NAME)

    def _report_progress(self) -> None:
        points = self.manager.temp_series_size()
        interval = max(self.config.host.progress_log_interval, 1)
        if points and points % interval == 0:
            logger.debug("Receiving data: %d points", points)

    def _on_link_up(self) -> None:
        if self.manager.receiving:
            logger.info("Byte stream resynchronised, discarding partial series")
        self.manager.reset()
