from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from .export import NumberFormat


@dataclass
class SerialSettings:
    port: str = "/dev/ttyACM0"
    baudrate: int = 9600
    timeout: float = 1.0


@dataclass
class HostRuntime:
    queue_maxsize: int = 256
    reconnect_initial_sec: float = 0.5
    reconnect_max_sec: float = 5.0
    chunk_size: int = 64
    progress_log_interval: int = 25


@dataclass
class ExportConfig:
    locale: str = "system"  # system | C | any name accepted by locale.setlocale
    decimal_point: Optional[str] = None
    thousands_sep: Optional[str] = None
    auto_dir: Optional[Path] = None

    def number_format(self) -> NumberFormat:
        """Resolve the tabular export number format; ``ValueError`` on unknown locales."""

        base = NumberFormat() if self.locale.upper() in {"C", "POSIX"} else NumberFormat.from_locale(self.locale)
        return base.with_overrides(self.decimal_point, self.thousands_sep)


@dataclass
class ScoutConfig:
    serial: SerialSettings = field(default_factory=SerialSettings)
    host: HostRuntime = field(default_factory=HostRuntime)
    export: ExportConfig = field(default_factory=ExportConfig)


def _load_json(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Top level of {path} must be a JSON object")
    return data


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {**base}
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merged[key] = _merge(base[key], value)  # type: ignore[index]
        else:
            merged[key] = value
    return merged


def load_config(path: Path | str | None = None, overrides: Sequence[str] | None = None) -> ScoutConfig:
    """
    Load the acquisition configuration from JSON and apply CLI-style overrides.

    A missing *path* yields the defaults. Overrides are dotted `key=value` pairs, e.g.:
        ["serial.baudrate=115200", "export.locale=de_DE.UTF-8"]
    """
    data = _load_json(Path(path)) if path is not None else {}
    override_data: Dict[str, Any] = {}
    for override in overrides or []:
        key, raw_value = _parse_override(override)
        _assign_nested(override_data, key, raw_value)
    merged = _merge(data, override_data)
    serial_data = merged.get("serial") or {}
    host_data = merged.get("host") or {}
    export_data = merged.get("export") or {}
    auto_dir = export_data.get("auto_dir")
    return ScoutConfig(
        serial=SerialSettings(
            port=str(serial_data.get("port", "/dev/ttyACM0")),
            baudrate=int(serial_data.get("baudrate", 9600)),
            timeout=float(serial_data.get("timeout", 1.0)),
        ),
        host=HostRuntime(
            queue_maxsize=int(host_data.get("queue_maxsize", 256)),
            reconnect_initial_sec=float(host_data.get("reconnect_initial_sec", 0.5)),
            reconnect_max_sec=float(host_data.get("reconnect_max_sec", 5.0)),
            chunk_size=int(host_data.get("chunk_size", 64)),
            progress_log_interval=int(host_data.get("progress_log_interval", 25)),
        ),
        export=ExportConfig(
            locale=str(export_data.get("locale") or "system"),
            decimal_point=_optional_str(export_data.get("decimal_point")),
            thousands_sep=_optional_str(export_data.get("thousands_sep")),
            auto_dir=Path(auto_dir) if auto_dir else None,
        ),
    )


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _parse_override(item: str) -> tuple[str, Any]:
    if "=" not in item:
        raise ValueError(f"Override '{item}' must use key=value syntax")
    key, raw_value = item.split("=", 1)
    key = key.strip()
    if not key:
        raise ValueError("Override key may not be empty")
    value = _coerce_value(raw_value.strip())
    return key, value


def _coerce_value(raw: str) -> Any:
    if raw.lower() in {"true", "false"}:
        return raw.lower() == "true"
    if raw.lower() == "null":
        return None
    try:
        if "." in raw or "e" in raw.lower():
            return float(raw)
        return int(raw)
    except ValueError:
        pass
    if raw.startswith("[") and raw.endswith("]"):
        return json.loads(raw)
    if raw.startswith("{") and raw.endswith("}"):
        return json.loads(raw)
    return raw


def _assign_nested(target: Dict[str, Any], dotted_key: str, value: Any) -> None:
    cursor = target
    parts = dotted_key.split(".")
    for part in parts[:-1]:
        cursor = cursor.setdefault(part, {})
    cursor[parts[-1]] = value
