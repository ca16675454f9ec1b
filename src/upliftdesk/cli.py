"""Command line interface for the upliftdesk package."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from . import __version__
from .summary import summarize
from .uart.config import load_config
from .uart.frames import iterate_binary_stream
from .uart.runner import DeskHeightHost, HeightReading, SerialSettings, decode_stream

logger = logging.getLogger(__name__)

app = typer.Typer(
    add_completion=False,
    help="Desk height telemetry utilities.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _echo_height(reading: HeightReading) -> None:
    typer.echo(f"height={reading.height:.1f}")


@app.command()
def run(
    port: Optional[str] = typer.Option(
        None, "--port", "-p", help="Serial device. Use '-' to read raw bytes from stdin."
    ),
    baudrate: Optional[int] = typer.Option(None, "--baud", help="Serial baudrate."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Serial read timeout (seconds)."),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Path to host config JSON.", exists=True, readable=True
    ),
    override: Optional[List[str]] = typer.Option(
        None,
        "--set",
        help="Override config keys, e.g. --set serial.baudrate=19200 --set host.chunk_size=32",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Read the desk UART and print every new height."""

    try:
        cfg = load_config(config_path, override or None)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--set/--config") from exc
    _configure_logging("DEBUG" if verbose else cfg.log_level)
    settings = SerialSettings(
        port=port if port is not None else cfg.serial.port,
        baudrate=baudrate if baudrate is not None else cfg.serial.baudrate,
        timeout=timeout if timeout is not None else cfg.serial.timeout,
    )
    if settings.baudrate <= 0:
        raise typer.BadParameter("Baudrate must be positive", param_hint="--baud")
    logger.info("Reading desk heights from %s at %d baud", settings.port, settings.baudrate)
    host = DeskHeightHost(settings=settings, config=cfg, sink=_echo_height)
    try:
        host.run()
    except KeyboardInterrupt:
        logger.info("Stopping host (Ctrl+C)")


@app.command()
def replay(
    input_path: Path = typer.Option(..., "--in", help="Captured UART bytes.", exists=True, readable=True),
    hex_text: bool = typer.Option(False, "--hex", help="Input is whitespace-separated hex text."),
    chunk_size: int = typer.Option(64, "--chunk-size", min=1, help="Bytes per decode chunk."),
) -> None:
    """Decode a captured byte stream and print the published heights."""

    if hex_text:
        try:
            data = bytes.fromhex(input_path.read_text(encoding="utf-8"))
        except ValueError as exc:
            raise typer.BadParameter(f"Invalid hex capture: {exc}", param_hint="--in") from exc
        chunks = [data]
        readings, stats = decode_stream(chunks)
    else:
        with input_path.open("rb") as fh:
            readings, stats = decode_stream(iterate_binary_stream(fh, chunk_size))
    for reading in readings:
        _echo_height(reading)
    typer.echo(summarize(readings).describe())
    typer.echo(
        f"bytes={stats['bytes']} frames={stats['frames']} "
        f"duplicates={stats['duplicates']} framing_errors={stats['framing_errors']}"
    )


@app.command()
def version() -> None:
    """Print the package version."""

    typer.echo(__version__)


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
