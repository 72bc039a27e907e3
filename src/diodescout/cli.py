"""Command line interface for the diodescout package."""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import List, Optional

import typer

from .config import ScoutConfig, load_config
from .export import load_tabular_export
from .reader import iterate_binary_stream
from .session import AcquisitionSession

logger = logging.getLogger(__name__)

app = typer.Typer(
    add_completion=False,
    help="DiodeScout acquisition and export utilities.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_config(
    config_path: Optional[Path], override: Optional[List[str]], locale_name: Optional[str] = None
) -> ScoutConfig:
    overrides = list(override or [])
    if locale_name is not None:
        overrides.append(f"export.locale={locale_name}")
    try:
        return load_config(config_path, overrides or None)
    except (OSError, ValueError) as exc:
        raise typer.BadParameter(str(exc), param_hint="--config/--set") from exc


def _build_session(cfg: ScoutConfig) -> AcquisitionSession:
    try:
        return AcquisitionSession(cfg)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="export.locale") from exc


def _finish(
    session: AcquisitionSession,
    csv_path: Optional[Path],
    python_path: Optional[Path],
    png_path: Optional[Path],
) -> None:
    if not session.export(csv_path=csv_path, python_path=python_path, png_path=png_path):
        typer.echo("[error] one or more exports failed, see log", err=True)
        raise typer.Exit(code=1)


@app.command()
def acquire(
    port: Optional[str] = typer.Option(
        None, "--port", "-p", help="Serial device. Use '-' to read from stdin."
    ),
    baudrate: Optional[int] = typer.Option(None, "--baud", help="Serial baudrate."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Serial read timeout (seconds)."),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to a JSON configuration file."
    ),
    override: Optional[List[str]] = typer.Option(
        None,
        "--set",
        help="Override config keys, e.g. --set export.locale=C --set host.chunk_size=128",
    ),
    csv_path: Optional[Path] = typer.Option(None, "--csv", help="Write the tabular export on exit."),
    python_path: Optional[Path] = typer.Option(None, "--python", help="Write the plotting script on exit."),
    png_path: Optional[Path] = typer.Option(None, "--png", help="Write a PNG plot on exit."),
) -> None:
    """Acquire measurement series until Ctrl+C or end of input, then export."""

    cfg = _build_config(config_path, override)
    if port is not None:
        cfg.serial.port = port
    if baudrate is not None:
        cfg.serial.baudrate = baudrate
    if timeout is not None:
        cfg.serial.timeout = timeout
    session = _build_session(cfg)
    session.register_callback(
        lambda series: typer.echo(
            f"Series {session.manager.series_count()} received ({series.size()} points)"
        )
    )
    if cfg.serial.port == "-":
        try:
            session.consume_stream(iterate_binary_stream(sys.stdin.buffer, cfg.host.chunk_size))
        except KeyboardInterrupt:
            logger.info("Stopping acquisition (Ctrl+C)")
    else:
        logger.info("Listening on %s at %d baud", cfg.serial.port, cfg.serial.baudrate)
        session.run_serial()
    typer.echo(f"{session.manager.series_count()} series acquired")
    _finish(session, csv_path, python_path, png_path)


@app.command()
def convert(
    input_path: Path = typer.Argument(
        ..., help="Raw capture of the instrument's serial output.", exists=True, readable=True
    ),
    csv_path: Optional[Path] = typer.Option(None, "--csv", help="Tabular export destination."),
    python_path: Optional[Path] = typer.Option(None, "--python", help="Plotting script destination."),
    png_path: Optional[Path] = typer.Option(None, "--png", help="PNG plot destination."),
    locale_name: Optional[str] = typer.Option(
        None, "--locale", help="Number locale for the tabular export (system, C, de_DE.UTF-8, ...)."
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a JSON configuration file."),
    override: Optional[List[str]] = typer.Option(None, "--set", help="Override config keys."),
) -> None:
    """Replay a captured byte log through the parser and export the series."""

    cfg = _build_config(config_path, override, locale_name)
    session = _build_session(cfg)
    with input_path.open("rb") as handle:
        session.consume_stream(iterate_binary_stream(handle, cfg.host.chunk_size))
    stats = session.manager.stats()
    typer.echo(
        f"Parsed {session.manager.series_count()} series from {input_path} "
        f"({stats['malformed_lines']} malformed lines skipped)"
    )
    _finish(session, csv_path, python_path, png_path)


@app.command()
def inspect(
    input_path: Path = typer.Argument(..., help="Tabular export to read back.", exists=True, readable=True),
    locale_name: Optional[str] = typer.Option(
        None, "--locale", help="Number locale the file was written with."
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a JSON configuration file."),
    override: Optional[List[str]] = typer.Option(None, "--set", help="Override config keys."),
) -> None:
    """Summarise the series stored in a tabular export."""

    cfg = _build_config(config_path, override, locale_name)
    try:
        number_format = cfg.export.number_format()
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--locale") from exc
    try:
        series_list = load_tabular_export(input_path, number_format)
    except ValueError as exc:
        typer.echo(f"[error] {input_path}: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    for number, series in enumerate(series_list, start=1):
        data = series.as_array()
        max_v = float(data[:, 0].max()) if len(data) else 0.0
        max_i = float(data[:, 1].max()) if len(data) else 0.0
        typer.echo(f"Series {number}: {series.size()} points, max {max_v:.3f} V, max {max_i:.3f} mA")
    typer.echo(f"{len(series_list)} series in {input_path}")


def run() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
