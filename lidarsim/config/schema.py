from __future__ import annotations

from pathlib import Path
from typing import Annotated, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..errors import ConfigurationError
from .settings import PoseConfig, PublishConfig, ScanConfig

LOG_INTERVAL_RANGE_S = (0.5, 10.0)


class ScanSection(BaseModel):
    max_range: float = 260.0
    min_range: float = 0.05
    horizontal_resolution_deg: float = 1.0
    vertical_resolution_deg: float = 1.0
    min_vertical_angle_deg: float = -30.0
    max_vertical_angle_deg: float = 30.0
    scan_frequency_hz: float = 10.0

    def to_settings(self) -> ScanConfig:
        return ScanConfig(**self.model_dump())


class PublishSection(BaseModel):
    publish_frequency_hz: float = 10.0
    max_points_per_message: int = 100_000
    frame_id: str = "lidar_link"
    topic_name: str = "/lidar/pointcloud"

    def to_settings(self) -> PublishConfig:
        return PublishConfig(**self.model_dump())


class PoseSection(BaseModel):
    enabled: bool = True
    topic_name: str = "/object_pose"
    publish_frequency_hz: float = 10.0
    frame_id: str = "world"

    def to_settings(self) -> PoseConfig:
        return PoseConfig(**self.model_dump())


class MountSection(BaseModel):
    xyz: tuple[float, float, float] = (0.0, 1.5, 0.0)
    rpy_deg: tuple[float, float, float] = (0.0, 0.0, 0.0)
    point_frame: Literal["sensor", "world"] = "sensor"


class StaticTrajectoryConfig(BaseModel):
    kind: Literal["static"]
    xyz: tuple[float, float, float] = (0.0, 0.0, 0.0)
    rpy_deg: tuple[float, float, float] = (0.0, 0.0, 0.0)


class PolylineTrajectoryConfig(BaseModel):
    kind: Literal["polyline"]
    waypoints: List[tuple[float, float, float]]
    speed_mps: float
    loop: bool = False

    @model_validator(mode="after")
    def _check_path(self) -> "PolylineTrajectoryConfig":
        if len(self.waypoints) < 2:
            raise ValueError("polyline trajectory needs at least two waypoints")
        if self.speed_mps <= 0.0:
            raise ValueError("speed_mps must be positive")
        return self


TrajectoryConfig = Annotated[
    Union[StaticTrajectoryConfig, PolylineTrajectoryConfig],
    Field(discriminator="kind"),
]


class PlaneSceneConfig(BaseModel):
    kind: Literal["plane"]
    point: tuple[float, float, float] = (0.0, 0.0, 0.0)
    normal: tuple[float, float, float] = (0.0, 1.0, 0.0)


class MeshSceneConfig(BaseModel):
    kind: Literal["mesh"]
    path: Path


class EnvironmentSceneConfig(BaseModel):
    """Synthetic test environment generated in memory."""

    kind: Literal["environment"]
    ground_size_m: float = 100.0
    obstacle_count: int = 10
    obstacle_radius_m: float = 50.0
    seed: int = 42


SceneConfig = Annotated[
    Union[PlaneSceneConfig, MeshSceneConfig, EnvironmentSceneConfig],
    Field(discriminator="kind"),
]


class MemoryTransportConfig(BaseModel):
    kind: Literal["memory"]


class ZmqTransportConfig(BaseModel):
    kind: Literal["zmq"]
    host: str = "127.0.0.1"
    port: int = 10000


TransportConfig = Annotated[
    Union[MemoryTransportConfig, ZmqTransportConfig],
    Field(discriminator="kind"),
]


class LoggingSection(BaseModel):
    level: str = "INFO"
    log_interval_s: Optional[float] = 5.0

    @field_validator("log_interval_s")
    @classmethod
    def _clamp_interval(cls, value: Optional[float]) -> Optional[float]:
        if value is None:
            return None
        lo, hi = LOG_INTERVAL_RANGE_S
        return min(max(float(value), lo), hi)

    @field_validator("level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level '{value}'")
        return level


class RecordConfig(BaseModel):
    path: Path
    format: Literal["las", "laz", "npz", "ply"] = "las"


class SimulationConfig(BaseModel):
    scan: ScanSection = ScanSection()
    publish: PublishSection = PublishSection()
    pose: PoseSection = PoseSection()
    mount: MountSection = MountSection()
    trajectory: TrajectoryConfig = StaticTrajectoryConfig(kind="static")
    scene: SceneConfig = PlaneSceneConfig(kind="plane")
    transport: TransportConfig = MemoryTransportConfig(kind="memory")
    logging: LoggingSection = LoggingSection()
    record: Optional[RecordConfig] = None

    @model_validator(mode="after")
    def _validate_runtime_settings(self) -> "SimulationConfig":
        # ConfigurationError is a ValueError, so pydantic reports range errors here
        self.scan.to_settings()
        self.publish.to_settings()
        self.pose.to_settings()
        return self


def load_config(path: str | Path) -> SimulationConfig:
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Malformed YAML in {path}: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration root must be a mapping.")
    try:
        cfg = SimulationConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration {path}:\n{exc}") from exc
    if isinstance(cfg.scene, MeshSceneConfig) and not cfg.scene.path.is_absolute():
        cfg.scene.path = (path.parent / cfg.scene.path).resolve()
    if cfg.record is not None and not cfg.record.path.is_absolute():
        cfg.record.path = (path.parent / cfg.record.path).resolve()
    return cfg
