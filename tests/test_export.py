from __future__ import annotations

import locale
from pathlib import Path

import numpy as np
import pytest

from diodescout.export import (
    C_FORMAT,
    NumberFormat,
    export_csv,
    format_fixed,
    format_localized,
    load_tabular_export,
    render_csv,
)
from diodescout.manager import MeasurementDataManager

GERMAN = NumberFormat(decimal_point=",", thousands_sep=".", grouping=(3, 0))


def _manager_with_two_series() -> MeasurementDataManager:
    manager = MeasurementDataManager()
    manager.feed(b"*\n0.1 0.0\n0.65 1.25\n#\n*\n1234.5 0.000001\n#\n*\n9 9\n")
    return manager


def test_format_localized_c_locale() -> None:
    assert format_localized(1.0, C_FORMAT) == "1.000000"
    assert format_localized(-0.5, C_FORMAT) == "-0.500000"
    assert format_localized(1234567.25, C_FORMAT) == "1234567.250000"


def test_format_localized_with_grouping() -> None:
    assert format_localized(1234567.25, GERMAN) == "1.234.567,250000"
    assert format_localized(-1234.5, GERMAN) == "-1.234,500000"
    assert format_localized(999.0, GERMAN) == "999,000000"
    indian = NumberFormat(decimal_point=".", thousands_sep=",", grouping=(3, 2, 0))
    assert format_localized(12345678.0, indian) == "1,23,45,678.000000"
    single = NumberFormat(decimal_point=".", thousands_sep=",", grouping=(3, locale.CHAR_MAX))
    assert format_localized(12345678.0, single) == "12345,678.000000"


def test_format_fixed_ignores_locale() -> None:
    assert format_fixed(1234.5) == "1234.500000"
    assert format_fixed(-0.0000004) == "-0.000000"


def test_with_overrides_enables_grouping() -> None:
    fmt = C_FORMAT.with_overrides(decimal_point=",", thousands_sep=" ")
    assert format_localized(12345.5, fmt) == "12 345,500000"
    assert C_FORMAT.with_overrides() == C_FORMAT


def test_csv_layout(tmp_path: Path) -> None:
    manager = _manager_with_two_series()
    target = tmp_path / "dscout.csv"
    assert manager.export_csv(target, C_FORMAT) is True

    assert target.read_text(encoding="utf-8") == (
        "Series 1\n"
        "Voltage (V);Current (mA)\n"
        "0.100000;0.000000\n"
        "0.650000;1.250000\n"
        "\n"
        "Series 2\n"
        "Voltage (V);Current (mA)\n"
        "1234.500000;0.000001\n"
        "\n"
    )


def test_csv_uses_number_format() -> None:
    manager = _manager_with_two_series()
    text = render_csv(manager.all_series(), GERMAN)
    assert "0,650000;1,250000\n" in text
    assert "1.234,500000;0,000001\n" in text


def test_csv_defaults_to_process_locale(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(
        locale,
        "localeconv",
        lambda: {"decimal_point": ",", "thousands_sep": "", "grouping": []},
    )
    manager = _manager_with_two_series()
    target = tmp_path / "out.csv"
    assert manager.export_csv(target)
    assert "0,650000;1,250000" in target.read_text(encoding="utf-8")


def test_python_script_layout(tmp_path: Path, monkeypatch) -> None:
    # script numbers must not follow the locale
    monkeypatch.setattr(
        locale,
        "localeconv",
        lambda: {"decimal_point": ",", "thousands_sep": ".", "grouping": [3, 0]},
    )
    manager = _manager_with_two_series()
    target = tmp_path / "dscout.py"
    assert manager.export_python(target) is True

    text = target.read_text(encoding="utf-8")
    assert text.startswith("#!/usr/bin/env python3\nimport matplotlib.pyplot as plt\n\nseries = []\n\n")
    assert (
        "# Series 1\n"
        "voltage_1 = [0.100000, 0.650000]\n"
        "current_1 = [0.000000, 1.250000]\n"
        "series.append((voltage_1, current_1))\n\n"
    ) in text
    assert "voltage_2 = [1234.500000]\n" in text
    assert "voltage_3" not in text
    assert text.endswith(
        "for i, (v, c) in enumerate(series):\n"
        "    plt.plot(v, c, label=f'Series {i+1}')\n\n"
        "plt.xlabel('Volt (V)')\n"
        "plt.ylabel('Milliampere (mA)')\n"
        "plt.legend()\n"
        "plt.grid(True)\n"
        "plt.show()\n"
    )
    compile(text, str(target), "exec")


def test_exports_with_no_series(tmp_path: Path) -> None:
    manager = MeasurementDataManager()
    csv_path = tmp_path / "empty.csv"
    py_path = tmp_path / "empty.py"
    assert manager.export_csv(csv_path, C_FORMAT)
    assert manager.export_python(py_path)
    assert csv_path.read_text(encoding="utf-8") == ""
    assert "series = []" in py_path.read_text(encoding="utf-8")


def test_export_failure_returns_false(tmp_path: Path) -> None:
    manager = _manager_with_two_series()
    missing_dir = tmp_path / "missing" / "out.csv"
    assert manager.export_csv(missing_dir, C_FORMAT) is False
    assert manager.export_python(tmp_path / "missing" / "out.py") is False
    # a directory in the way of the destination
    blocked = tmp_path / "blocked"
    blocked.mkdir()
    assert export_csv(manager.all_series(), blocked, C_FORMAT) is False
    assert [p.name for p in tmp_path.iterdir()] == ["blocked"]
    assert list(blocked.iterdir()) == []


def test_export_overwrites_existing_file(tmp_path: Path) -> None:
    target = tmp_path / "dscout.csv"
    target.write_text("old content\n", encoding="utf-8")
    manager = _manager_with_two_series()
    assert manager.export_csv(target, C_FORMAT)
    assert target.read_text(encoding="utf-8").startswith("Series 1\n")


@pytest.mark.parametrize("fmt", [C_FORMAT, GERMAN, NumberFormat(",", "", ())])
def test_tabular_round_trip(tmp_path: Path, fmt: NumberFormat) -> None:
    manager = MeasurementDataManager()
    manager.feed(b"*\n0.1234567 0.5\n2.25 1500.75\n#\n*\n3.0 0.000004\n4.5 12345.678901\n#\n")
    target = tmp_path / "round.csv"
    assert manager.export_csv(target, fmt)

    loaded = load_tabular_export(target, fmt)
    assert len(loaded) == manager.series_count()
    for original, restored in zip(manager.all_series(), loaded):
        assert restored.size() == original.size()
        assert np.allclose(restored.as_array(), original.as_array(), rtol=0.0, atol=5e-7)


def test_load_rejects_malformed_file(tmp_path: Path) -> None:
    target = tmp_path / "bad.csv"
    target.write_text("1.0;2.0\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_tabular_export(target, C_FORMAT)

    target.write_text("Series 1\n1.0;2.0\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_tabular_export(target, C_FORMAT)

    target.write_text("Series 1\nVoltage (V);Current (mA)\nabc;2.0\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_tabular_export(target, C_FORMAT)


def test_from_locale_rejects_unknown_name() -> None:
    with pytest.raises(ValueError):
        NumberFormat.from_locale("xx_NOT_A_LOCALE.UTF-8")


def test_from_locale_c_restores_process_locale() -> None:
    before = locale.setlocale(locale.LC_NUMERIC)
    fmt = NumberFormat.from_locale("C")
    assert fmt.decimal_point == "."
    assert fmt.thousands_sep == ""
    assert locale.setlocale(locale.LC_NUMERIC) == before
