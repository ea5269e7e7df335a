from __future__ import annotations

import math
from dataclasses import dataclass, fields, replace as _dc_replace
from typing import Any, Tuple

from ..errors import ConfigurationError

SCAN_FREQUENCY_RANGE_HZ: Tuple[float, float] = (1.0, 50.0)
PUBLISH_FREQUENCY_RANGE_HZ: Tuple[float, float] = (1.0, 60.0)
VERTICAL_ANGLE_RANGE_DEG: Tuple[float, float] = (-45.0, 45.0)
MAX_RESOLUTION_DEG = 2.0


def _require_finite(name: str, value: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc
    if not math.isfinite(value):
        raise ConfigurationError(f"{name} must be finite, got {value}")
    return value


def _require_in_range(name: str, value: float, lo: float, hi: float) -> float:
    value = _require_finite(name, value)
    if not (lo <= value <= hi):
        raise ConfigurationError(f"{name} must lie in [{lo:g}, {hi:g}], got {value:g}")
    return value


class _Replaceable:
    def replace(self, **changes: Any):
        """Return a re-validated copy with ``changes`` applied."""
        known = {f.name for f in fields(self)}  # type: ignore[arg-type]
        unknown = set(changes) - known
        if unknown:
            raise ConfigurationError(f"Unknown setting(s): {sorted(unknown)}")
        return _dc_replace(self, **changes)  # type: ignore[type-var]


@dataclass(frozen=True)
class ScanConfig(_Replaceable):
    """Scan geometry and cadence of the simulated lidar.

    Derived step counts are properties of the inputs, so a reloaded config
    (see :meth:`replace`) always carries consistent counts.
    """

    max_range: float = 260.0
    min_range: float = 0.05
    horizontal_resolution_deg: float = 1.0
    vertical_resolution_deg: float = 1.0
    min_vertical_angle_deg: float = -30.0
    max_vertical_angle_deg: float = 30.0
    scan_frequency_hz: float = 10.0

    def __post_init__(self) -> None:
        max_range = _require_finite("max_range", self.max_range)
        min_range = _require_finite("min_range", self.min_range)
        if not (0.0 < min_range < max_range):
            raise ConfigurationError(
                f"Ranges must satisfy 0 < min_range < max_range, got min={min_range:g}, max={max_range:g}"
            )
        for name in ("horizontal_resolution_deg", "vertical_resolution_deg"):
            res = _require_finite(name, getattr(self, name))
            if not (0.0 < res <= MAX_RESOLUTION_DEG):
                raise ConfigurationError(f"{name} must lie in (0, {MAX_RESOLUTION_DEG:g}], got {res:g}")
        lo, hi = VERTICAL_ANGLE_RANGE_DEG
        min_v = _require_in_range("min_vertical_angle_deg", self.min_vertical_angle_deg, lo, hi)
        max_v = _require_in_range("max_vertical_angle_deg", self.max_vertical_angle_deg, lo, hi)
        if min_v > max_v:
            raise ConfigurationError(
                f"min_vertical_angle_deg ({min_v:g}) must not exceed max_vertical_angle_deg ({max_v:g})"
            )
        _require_in_range("scan_frequency_hz", self.scan_frequency_hz, *SCAN_FREQUENCY_RANGE_HZ)

    @property
    def horizontal_steps(self) -> int:
        return int(round(360.0 / self.horizontal_resolution_deg))

    @property
    def vertical_steps(self) -> int:
        span = self.max_vertical_angle_deg - self.min_vertical_angle_deg
        return int(round(span / self.vertical_resolution_deg)) + 1

    @property
    def total_beams_per_cycle(self) -> int:
        return self.horizontal_steps * self.vertical_steps

    @property
    def scan_period_s(self) -> float:
        return 1.0 / self.scan_frequency_hz


@dataclass(frozen=True)
class PublishConfig(_Replaceable):
    """Settings of the point-cloud publisher."""

    publish_frequency_hz: float = 10.0
    max_points_per_message: int = 100_000
    frame_id: str = "lidar_link"
    topic_name: str = "/lidar/pointcloud"

    def __post_init__(self) -> None:
        _require_in_range("publish_frequency_hz", self.publish_frequency_hz, *PUBLISH_FREQUENCY_RANGE_HZ)
        if isinstance(self.max_points_per_message, bool) or not isinstance(self.max_points_per_message, int):
            raise ConfigurationError("max_points_per_message must be an integer")
        if self.max_points_per_message < 1:
            raise ConfigurationError("max_points_per_message must be positive")
        if not self.frame_id:
            raise ConfigurationError("frame_id must be a non-empty string")
        if not self.topic_name:
            raise ConfigurationError("topic_name must be a non-empty string")

    @property
    def publish_period_s(self) -> float:
        return 1.0 / self.publish_frequency_hz


@dataclass(frozen=True)
class PoseConfig(_Replaceable):
    """Settings of the auxiliary vehicle pose publisher."""

    enabled: bool = True
    topic_name: str = "/object_pose"
    publish_frequency_hz: float = 10.0
    frame_id: str = "world"

    def __post_init__(self) -> None:
        _require_in_range("pose publish_frequency_hz", self.publish_frequency_hz, *PUBLISH_FREQUENCY_RANGE_HZ)
        if not self.topic_name:
            raise ConfigurationError("pose topic_name must be a non-empty string")
        if not self.frame_id:
            raise ConfigurationError("pose frame_id must be a non-empty string")

    @property
    def publish_period_s(self) -> float:
        return 1.0 / self.publish_frequency_hz
