from __future__ import annotations

import enum
import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .export import NumberFormat, export_csv, export_python
from .series import MeasurementSeries

logger = logging.getLogger(__name__)

OPEN_SENTINEL = "*"
CLOSE_SENTINEL = "#"

_CR = 0x0D
_LF = 0x0A
_NUMBER = re.compile(r"\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)")


class ParseResult(enum.Enum):
    NOTHING = "nothing"
    SERIES_COMPLETED = "series_completed"


@dataclass
class Idle:
    """No series is open; data lines are ignored."""


@dataclass
class ReceivingSeries:
    """A ``*`` sentinel opened a series that is still being filled."""

    series: MeasurementSeries = field(default_factory=MeasurementSeries)


ParserState = Union[Idle, ReceivingSeries]


class MeasurementDataManager:
    """
    Owns the completed measurement series and the line parser feeding them.

    Bytes are pushed one at a time through :meth:`process_received_char`, so the
    parser is indifferent to how the serial link chunks its reads. The object is
    not thread-safe; a single owner feeds bytes and issues queries.
    """

    def __init__(self) -> None:
        self._completed: List[MeasurementSeries] = []
        self._state: ParserState = Idle()
        self._line = bytearray()
        self._stats: Dict[str, int] = {
            "lines": 0,
            "ignored_lines": 0,
            "malformed_lines": 0,
            "points": 0,
            "series_completed": 0,
            "series_discarded": 0,
        }

    # -- store queries -------------------------------------------------------

    def series_count(self) -> int:
        return len(self._completed)

    def all_series(self) -> Sequence[MeasurementSeries]:
        return tuple(self._completed)

    def series(self, index: int) -> MeasurementSeries:
        if not 0 <= index < len(self._completed):
            raise IndexError(
                f"series index {index} out of range (have {len(self._completed)})"
            )
        return self._completed[index]

    def remove_last_series(self) -> None:
        if self._completed:
            self._completed.pop()

    def remove_all_series(self) -> None:
        self._completed.clear()

    def temp_series_size(self) -> int:
        if isinstance(self._state, ReceivingSeries):
            return self._state.series.size()
        return 0

    @property
    def receiving(self) -> bool:
        return isinstance(self._state, ReceivingSeries)

    def get_max_voltage(self) -> float:
        return self._max_column(0)

    def get_max_current(self) -> float:
        return self._max_column(1)

    def _max_column(self, column: int) -> float:
        best = 0.0
        for series in self._series_with_temporary():
            if series.empty():
                continue
            best = max(best, float(series.as_array()[:, column].max()))
        return best

    def _series_with_temporary(self) -> Iterable[MeasurementSeries]:
        yield from self._completed
        if isinstance(self._state, ReceivingSeries):
            yield self._state.series

    # -- parser --------------------------------------------------------------

    def process_received_char(self, byte: Union[int, bytes, bytearray]) -> ParseResult:
        value = _byte_value(byte)
        if value == _LF:
            line = self._line.decode("utf-8", errors="ignore")
            self._line.clear()
            return self._handle_line(line)
        if value != _CR:
            self._line.append(value)
        return ParseResult.NOTHING

    def feed(self, data: Union[bytes, bytearray, Iterable[int]]) -> int:
        """Push a chunk byte by byte; return how many series it completed."""

        completed = 0
        for byte in data:
            if self.process_received_char(byte) is ParseResult.SERIES_COMPLETED:
                completed += 1
        return completed

    def reset(self) -> None:
        """Drop the partial line and any open series, keeping completed ones."""

        self._line.clear()
        self._state = Idle()

    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def _handle_line(self, raw_line: str) -> ParseResult:
        line = raw_line.strip()
        if not line:
            return ParseResult.NOTHING
        self._stats["lines"] += 1

        if line == OPEN_SENTINEL:
            if isinstance(self._state, ReceivingSeries) and not self._state.series.empty():
                self._stats["series_discarded"] += 1
                logger.debug(
                    "Discarding unfinished series with %d points", self._state.series.size()
                )
            self._state = ReceivingSeries()
            return ParseResult.NOTHING

        if line.startswith(OPEN_SENTINEL):
            # Metadata such as "* AVCC = 5.0"
            self._ignore(line)
            return ParseResult.NOTHING

        if line == CLOSE_SENTINEL:
            state = self._state
            if isinstance(state, ReceivingSeries) and not state.series.empty():
                self._completed.append(state.series)
                self._state = Idle()
                self._stats["series_completed"] += 1
                logger.info(
                    "Series %d completed (%d points)", len(self._completed), state.series.size()
                )
                return ParseResult.SERIES_COMPLETED
            self._ignore(line)
            return ParseResult.NOTHING

        if isinstance(self._state, ReceivingSeries):
            point = _parse_data_line(line)
            if point is None:
                self._stats["malformed_lines"] += 1
                logger.debug("Skipping malformed data line %r", line)
            else:
                self._state.series.add_point(*point)
                self._stats["points"] += 1
        else:
            self._ignore(line)
        return ParseResult.NOTHING

    def _ignore(self, line: str) -> None:
        self._stats["ignored_lines"] += 1
        logger.debug("Ignoring line %r", line)

    # -- export --------------------------------------------------------------

    def export_csv(self, path: Path | str, number_format: Optional[NumberFormat] = None) -> bool:
        return export_csv(self._completed, path, number_format)

    def export_python(self, path: Path | str) -> bool:
        return export_python(self._completed, path)


def _byte_value(byte: Union[int, bytes, bytearray]) -> int:
    if isinstance(byte, int):
        if not 0 <= byte <= 0xFF:
            raise ValueError(f"byte value out of range: {byte}")
        return byte
    if len(byte) != 1:
        raise ValueError(f"expected a single byte, got {len(byte)}")
    return byte[0]


def _parse_data_line(line: str) -> Optional[Tuple[float, float]]:
    """
    Read two leading decimal numbers, each after optional whitespace.

    Each number is taken as the longest numeric prefix, so ``"1.0 0.5abc"``
    gives ``(1.0, 0.5)`` while ``"1.0abc 0.5"`` is malformed.
    """

    values: List[float] = []
    pos = 0
    for _ in range(2):
        match = _NUMBER.match(line, pos)
        if match is None:
            return None
        values.append(float(match.group(1)))
        pos = match.end()
    voltage, current = values
    if not (math.isfinite(voltage) and math.isfinite(current)):
        return None
    return voltage, current
