"""Measurement series containers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Sequence

import numpy as np


@dataclass(frozen=True)
class MeasurementPoint:
    """Single sample: voltage in volt, current in milliampere."""

    voltage_volt: float
    current_milliamp: float


class MeasurementSeries:
    """Append-only sequence of points in arrival order."""

    def __init__(self) -> None:
        self._points: List[MeasurementPoint] = []

    def add_point(self, voltage: float, current_milliamp: float) -> None:
        self._points.append(MeasurementPoint(voltage, current_milliamp))

    def points(self) -> Sequence[MeasurementPoint]:
        return self._points

    def size(self) -> int:
        return len(self._points)

    def empty(self) -> bool:
        return not self._points

    def as_array(self) -> np.ndarray:
        """Return the points as a ``(n, 2)`` float array of (voltage, current)."""

        if not self._points:
            return np.empty((0, 2), dtype=float)
        return np.array(
            [(p.voltage_volt, p.current_milliamp) for p in self._points], dtype=float
        )

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[MeasurementPoint]:
        return iter(self._points)

    def __repr__(self) -> str:
        return f"MeasurementSeries(points={len(self._points)})"
