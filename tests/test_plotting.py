from __future__ import annotations

from pathlib import Path

import pytest

from diodescout.config import load_config
from diodescout.plotting import _require_matplotlib, axis_limit, round_up_to_half
from diodescout.session import AcquisitionSession


def test_round_up_to_half() -> None:
    assert round_up_to_half(0.0) == 0.0
    assert round_up_to_half(0.1) == 0.5
    assert round_up_to_half(0.5) == 0.5
    assert round_up_to_half(2.51) == 3.0


def test_axis_limit_never_empty() -> None:
    assert axis_limit(0.0) == 0.5
    assert axis_limit(-3.0) == 0.5
    assert axis_limit(1.2) == 1.5


def test_png_export(tmp_path: Path) -> None:
    pytest.importorskip("matplotlib")
    session = AcquisitionSession(load_config(overrides=["export.locale=C"]))
    session.consume(b"*\n0.1 0.0\n0.6 1.2\n0.7 3.1\n#\n*\n0.2 0.4\n#\n")
    target = tmp_path / "plots" / "dscout.png"

    assert session.export(png_path=target)
    assert target.read_bytes()[:8] == b"\x89PNG\r\n\x1a\n"


def test_png_export_rejects_unknown_image_format(tmp_path: Path) -> None:
    pytest.importorskip("matplotlib")
    plt = _require_matplotlib()
    session = AcquisitionSession(load_config(overrides=["export.locale=C"]))
    session.consume(b"*\n0.1 0.0\n0.6 1.2\n#\n")
    open_before = len(plt.get_fignums())

    assert not session.export(png_path=tmp_path / "plot.xyz")
    assert len(plt.get_fignums()) == open_before
    assert not (tmp_path / "plot.xyz").exists()
