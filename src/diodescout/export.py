"""Writers and readers for exported measurement series."""
from __future__ import annotations

import io
import locale
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

import pandas as pd

from .series import MeasurementSeries

logger = logging.getLogger(__name__)

CSV_DELIMITER = ";"
CSV_COLUMN_HEADER = "Voltage (V);Current (mA)"
DECIMALS = 6

_SERIES_HEADER = re.compile(r"^Series\s+(\d+)$")
_NO_MORE_GROUPING = locale.CHAR_MAX


@dataclass(frozen=True)
class NumberFormat:
    """Decimal point, thousands separator and digit grouping of a locale."""

    decimal_point: str = "."
    thousands_sep: str = ""
    grouping: Tuple[int, ...] = ()

    @classmethod
    def from_locale(cls, name: Optional[str] = None) -> "NumberFormat":
        """
        Build the format of the current ``LC_NUMERIC`` locale, or of *name*.

        ``"system"`` selects the user's default locale and falls back to C when
        the environment names a locale that is not installed. The process
        locale is restored afterwards. Unknown explicit names raise ``ValueError``.
        """

        if name is None:
            return cls._from_conv(locale.localeconv())
        system = name.lower() == "system"
        previous = locale.setlocale(locale.LC_NUMERIC)
        try:
            locale.setlocale(locale.LC_NUMERIC, "" if system else name)
        except locale.Error as exc:
            if system:
                logger.warning("System locale unavailable (%s), using C number format", exc)
                return cls()
            raise ValueError(f"Unsupported locale '{name}'") from exc
        try:
            return cls._from_conv(locale.localeconv())
        finally:
            locale.setlocale(locale.LC_NUMERIC, previous)

    @classmethod
    def _from_conv(cls, conv) -> "NumberFormat":
        return cls(
            decimal_point=str(conv.get("decimal_point") or "."),
            thousands_sep=str(conv.get("thousands_sep") or ""),
            grouping=tuple(int(g) for g in conv.get("grouping") or ()),
        )

    def with_overrides(
        self, decimal_point: Optional[str] = None, thousands_sep: Optional[str] = None
    ) -> "NumberFormat":
        grouping = self.grouping
        if thousands_sep and not grouping:
            grouping = (3, 0)
        return NumberFormat(
            decimal_point=self.decimal_point if decimal_point is None else decimal_point,
            thousands_sep=self.thousands_sep if thousands_sep is None else thousands_sep,
            grouping=grouping,
        )


C_FORMAT = NumberFormat()


def format_localized(value: float, fmt: NumberFormat, decimals: int = DECIMALS) -> str:
    text = f"{value:.{decimals}f}"
    sign = ""
    if text.startswith("-"):
        sign, text = "-", text[1:]
    integer, _, fraction = text.partition(".")
    integer = _group_digits(integer, fmt.thousands_sep, fmt.grouping)
    if decimals <= 0:
        return sign + integer
    return f"{sign}{integer}{fmt.decimal_point}{fraction}"


def format_fixed(value: float, decimals: int = DECIMALS) -> str:
    """Locale-independent rendering used for generated source code."""

    return f"{value:.{decimals}f}"


def _group_digits(digits: str, separator: str, grouping: Sequence[int]) -> str:
    if not separator or not grouping:
        return digits
    groups: List[str] = []
    remaining = digits
    for size in _grouping_intervals(grouping):
        if len(remaining) <= size:
            break
        groups.insert(0, remaining[-size:])
        remaining = remaining[:-size]
    groups.insert(0, remaining)
    return separator.join(groups)


def _grouping_intervals(grouping: Sequence[int]) -> Iterator[int]:
    # CHAR_MAX stops grouping, a trailing 0 repeats the previous size forever
    last: Optional[int] = None
    for size in grouping:
        if size == _NO_MORE_GROUPING or size < 0:
            return
        if size == 0:
            if last is None:
                return
            while True:
                yield last
        yield size
        last = size


def render_csv(series: Sequence[MeasurementSeries], fmt: NumberFormat) -> str:
    lines: List[str] = []
    for number, item in enumerate(series, start=1):
        lines.append(f"Series {number}")
        lines.append(CSV_COLUMN_HEADER)
        for point in item.points():
            voltage = format_localized(point.voltage_volt, fmt)
            current = format_localized(point.current_milliamp, fmt)
            lines.append(f"{voltage}{CSV_DELIMITER}{current}")
        lines.append("")
    return "".join(line + "\n" for line in lines)


def render_python(series: Sequence[MeasurementSeries]) -> str:
    lines: List[str] = [
        "#!/usr/bin/env python3",
        "import matplotlib.pyplot as plt",
        "",
        "series = []",
        "",
    ]
    for number, item in enumerate(series, start=1):
        voltages = ", ".join(format_fixed(p.voltage_volt) for p in item.points())
        currents = ", ".join(format_fixed(p.current_milliamp) for p in item.points())
        lines.extend(
            [
                f"# Series {number}",
                f"voltage_{number} = [{voltages}]",
                f"current_{number} = [{currents}]",
                f"series.append((voltage_{number}, current_{number}))",
                "",
            ]
        )
    lines.extend(
        [
            "for i, (v, c) in enumerate(series):",
            "    plt.plot(v, c, label=f'Series {i+1}')",
            "",
            "plt.xlabel('Volt (V)')",
            "plt.ylabel('Milliampere (mA)')",
            "plt.legend()",
            "plt.grid(True)",
            "plt.show()",
        ]
    )
    return "".join(line + "\n" for line in lines)


def export_csv(
    series: Sequence[MeasurementSeries],
    path: Path | str,
    number_format: Optional[NumberFormat] = None,
) -> bool:
    """Write the tabular export. Returns ``False`` if *path* cannot be written."""

    fmt = number_format if number_format is not None else NumberFormat.from_locale()
    return _write_atomic(Path(path), render_csv(series, fmt), kind="CSV")


def export_python(series: Sequence[MeasurementSeries], path: Path | str) -> bool:
    """Write the plotting script export. Returns ``False`` if *path* cannot be written."""

    return _write_atomic(Path(path), render_python(series), kind="Python")


def _write_atomic(path: Path, text: str, *, kind: str) -> bool:
    tmp_name: Optional[str] = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            newline="\n",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            tmp_name = handle.name
            handle.write(text)
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, path)
    except OSError as exc:
        logger.warning("%s export to %s failed: %s", kind, path, exc)
        if tmp_name is not None:
            Path(tmp_name).unlink(missing_ok=True)
        return False
    logger.info("%s export written to %s", kind, path)
    return True


def load_tabular_export(
    path: Path | str, number_format: Optional[NumberFormat] = None
) -> List[MeasurementSeries]:
    """
    Read a tabular export back into measurement series.

    Parameters
    ----------
    path:
        File written by :func:`export_csv`.
    number_format:
        Format the file was written with; defaults to the current locale.

    Returns
    -------
    list of MeasurementSeries
        Series in file order, values rounded to the exported precision.
    """

    fmt = number_format if number_format is not None else NumberFormat.from_locale()
    text = Path(path).read_text(encoding="utf-8")
    blocks = _split_blocks(text.splitlines())
    result: List[MeasurementSeries] = []
    for number, lines in blocks:
        if not lines or lines[0] != CSV_COLUMN_HEADER:
            raise ValueError(f"Series {number}: missing column header '{CSV_COLUMN_HEADER}'")
        frame = pd.read_csv(
            io.StringIO("\n".join(lines)),
            sep=CSV_DELIMITER,
            decimal=fmt.decimal_point,
            thousands=fmt.thousands_sep or None,
        )
        try:
            frame = frame.apply(pd.to_numeric)
        except (ValueError, TypeError) as exc:
            raise ValueError(f"Series {number}: non-numeric values") from exc
        series = MeasurementSeries()
        for voltage, current in frame.itertuples(index=False, name=None):
            series.add_point(float(voltage), float(current))
        result.append(series)
    return result


def _split_blocks(lines: Iterable[str]) -> List[Tuple[int, List[str]]]:
    blocks: List[Tuple[int, List[str]]] = []
    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        match = _SERIES_HEADER.match(line)
        if match:
            blocks.append((int(match.group(1)), []))
            continue
        if not blocks:
            raise ValueError(f"Data before first 'Series' header: {line!r}")
        blocks[-1][1].append(line)
    return blocks
