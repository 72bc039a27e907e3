"""DiodeScout serial acquisition toolkit."""

from importlib.metadata import PackageNotFoundError, version

from .manager import MeasurementDataManager, ParseResult
from .series import MeasurementPoint, MeasurementSeries

try:  # pragma: no cover - fallback when package metadata missing
    __version__ = version("diodescout")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"

__all__ = [
    "__version__",
    "MeasurementDataManager",
    "MeasurementPoint",
    "MeasurementSeries",
    "ParseResult",
]
