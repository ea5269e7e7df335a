from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from ..config import load_config
from ..errors import ConfigurationError
from ..examples.environment import write_environment
from ..sdk.run import run_from_config

app = typer.Typer(help="Simulated multi-beam lidar publisher")
env_app = typer.Typer(help="Synthetic test environment helpers")
app.add_typer(env_app, name="env")


def _configure_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric, format="[%(levelname)s] %(message)s")
    logging.getLogger("lidarsim").setLevel(numeric)


def _load(config: Path):
    try:
        return load_config(config)
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc), param_hint="CONFIG") from exc


@app.command("run")
def run(
    config: Path = typer.Argument(..., exists=True, readable=True, help="Path to YAML configuration file."),
    duration: float = typer.Option(5.0, "--duration", "-d", help="Run time in seconds."),
    record: Optional[Path] = typer.Option(None, "--record", "-r", help="Record published clouds (.las/.laz/.npz/.ply)."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level (defaults to the config's level)."),
) -> None:
    """Scan and publish for a fixed duration."""

    cfg = _load(config)
    _configure_logging(log_level or cfg.logging.level)
    if duration <= 0.0:
        raise typer.BadParameter("duration must be positive.", param_hint="--duration")
    if record is not None and record.suffix.lower() not in {".las", ".laz", ".npz", ".ply"}:
        raise typer.BadParameter("Recording must end with .las, .laz, .npz, or .ply", param_hint="--record")

    result = run_from_config(cfg, duration_s=duration, record=record)
    stats = result.stats
    typer.echo(
        f"Completed {stats.cycles} scan cycles, published {stats.published} clouds "
        f"({stats.dropped} dropped, {stats.skipped} skipped)"
    )
    if result.output_path is not None:
        typer.echo(f"Recorded {result.frames_recorded} frames → {result.output_path}")


@app.command("pattern")
def pattern(
    config: Path = typer.Argument(..., exists=True, readable=True, help="Path to YAML configuration file."),
) -> None:
    """Print the beam layout derived from a configuration."""

    scan = _load(config).scan.to_settings()
    typer.echo(f"horizontal_steps: {scan.horizontal_steps}")
    typer.echo(f"vertical_steps: {scan.vertical_steps}")
    typer.echo(f"total_beams_per_cycle: {scan.total_beams_per_cycle}")
    typer.echo(f"scan_period_s: {scan.scan_period_s:g}")


@env_app.command("generate")
def env_generate(
    output: Path = typer.Argument(..., help="Output mesh path (.ply)."),
    ground_size: float = typer.Option(100.0, "--ground-size", help="Edge length of the square ground in metres."),
    obstacles: int = typer.Option(10, "--obstacles", help="Number of box obstacles."),
    radius: float = typer.Option(50.0, "--radius", help="Maximum obstacle distance from the origin."),
    seed: int = typer.Option(42, "--seed", help="Random seed for the obstacle layout."),
) -> None:
    """Write the synthetic test environment as an ASCII PLY mesh."""

    if obstacles < 0:
        raise typer.BadParameter("obstacles must be non-negative.", param_hint="--obstacles")
    out = write_environment(
        output.resolve(), ground_size=ground_size, obstacle_count=obstacles, obstacle_radius=radius, seed=seed
    )
    typer.echo(f"Wrote test environment to {out}")


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
