"""PNG rendering of completed measurement series."""
from __future__ import annotations

import math
from datetime import datetime
from pathlib import Path
from typing import Any, Sequence

from .series import MeasurementSeries

TICK_INTERVAL = 0.5
MINOR_TICKS = 4


def round_up_to_half(value: float) -> float:
    return math.ceil(value * 2.0) / 2.0


def axis_limit(max_value: float) -> float:
    """Upper axis bound: *max_value* rounded up to 0.5, never an empty range."""

    limit = round_up_to_half(max(max_value, 0.0))
    return limit if limit > 0 else TICK_INTERVAL


def generate_plot(
    series: Sequence[MeasurementSeries],
    output_path: Path,
    *,
    max_voltage: float,
    max_current: float,
    title: str | None = None,
) -> Path:
    """Draw every series as a voltage/current line and save it as PNG."""

    plt = _require_matplotlib()
    from matplotlib.ticker import AutoMinorLocator, MultipleLocator

    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig, ax = plt.subplots(figsize=(10, 6))

    for number, item in enumerate(series, start=1):
        data = item.as_array()
        ax.plot(data[:, 0], data[:, 1], label=f"Series {number}")

    ax.set_xlim(0.0, axis_limit(max_voltage))
    ax.set_ylim(0.0, axis_limit(max_current))
    for axis in (ax.xaxis, ax.yaxis):
        axis.set_major_locator(MultipleLocator(TICK_INTERVAL))
        axis.set_minor_locator(AutoMinorLocator(MINOR_TICKS + 1))
    ax.yaxis.set_major_formatter("{x:.2f}")
    ax.set_xlabel("Volt (V)")
    ax.set_ylabel("Milliampere (mA)")
    ax.set_title(title or datetime.now().strftime("%Y-%m-%d %H:%M:%S"))
    ax.grid(True, which="major")
    ax.grid(True, which="minor", alpha=0.3)
    if series:
        ax.legend(loc="best")

    try:
        fig.tight_layout()
        fig.savefig(output_path, dpi=150)
    finally:
        plt.close(fig)
    return output_path


def _require_matplotlib() -> Any:
    home_cache = Path.home() / ".cache" / "fontconfig"
    try:
        home_cache.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RuntimeError("matplotlib cannot write font cache in this environment") from exc

    try:
        import matplotlib
        matplotlib.use("Agg", force=True)
        import matplotlib.pyplot as plt  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("matplotlib is required for plotting; install diodescout[plot]") from exc
    except Exception as exc:  # pragma: no cover - environment issues
        raise RuntimeError(f"matplotlib initialisation failed: {exc}") from exc
    return plt
