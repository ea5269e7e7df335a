from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..config import SimulationConfig, load_config
from ..config.schema import RecordConfig
from ..pipeline import PipelineStats
from ..runtime.builders import build_pipeline, build_recorder, build_transport


@dataclass(frozen=True)
class RunResult:
    """Summary of a simulation run driven by a configuration file."""

    stats: PipelineStats
    frames_recorded: int
    output_path: Optional[Path]
    config: SimulationConfig


def run_from_config(
    config: Union[str, Path, SimulationConfig],
    *,
    duration_s: float = 5.0,
    record: Optional[Path] = None,
) -> RunResult:
    """Run the scan and publish loops for ``duration_s`` seconds.

    Parameters
    ----------
    config:
        Path to a YAML file or a pre-loaded :class:`~lidarsim.config.schema.SimulationConfig`.
    duration_s:
        Wall-clock run time. The pipeline is shut down afterwards and the
        last buffered cycle is published once more.
    record:
        Optional override for the recording path. The extension drives the
        format (``.las``, ``.laz``, ``.npz``, or ``.ply``).

    Returns
    -------
    RunResult
        Pipeline counters, number of recorded frames, the resolved output
        path, and the configuration object used for the run.
    """

    cfg = load_config(config) if not isinstance(config, SimulationConfig) else config.model_copy(deep=True)
    if duration_s <= 0.0:
        raise ValueError("duration_s must be positive.")

    if record is not None:
        out_path = Path(record).resolve()
        ext = out_path.suffix.lower()
        if ext not in {".las", ".laz", ".npz", ".ply"}:
            raise ValueError(f"Unsupported output extension '{ext}'")
        cfg.record = RecordConfig(path=out_path, format=ext.lstrip("."))

    transport = build_transport(cfg)
    recorder = None
    try:
        pipeline = build_pipeline(cfg, transport=transport)
        recorder = build_recorder(cfg, transport)
        pipeline.start()
        try:
            time.sleep(duration_s)
        finally:
            pipeline.shutdown()
        pipeline.drain()
        stats = pipeline.stats()
    finally:
        if recorder is not None:
            recorder.close()
        transport.close()

    return RunResult(
        stats=stats,
        frames_recorded=recorder.frames if recorder is not None else 0,
        output_path=cfg.record.path if cfg.record is not None else None,
        config=cfg,
    )
