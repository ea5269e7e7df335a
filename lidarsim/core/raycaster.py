from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Optional

import numpy as np

from ..config.settings import ScanConfig
from ..errors import SceneUnavailableError
from ..motion.pose import Pose
from .pattern import ScanPattern
from .scene import SceneQuery
from .utils import get_logger, readonly

_log = get_logger()

PointFrame = Literal["sensor", "world"]

DEBUG_RAY_INTERVAL = 500


@dataclass(frozen=True)
class ScanCycleResult:
    """Points from one complete sweep, in beam order."""

    points: np.ndarray        # (N, 3) float32
    beam_index: np.ndarray    # (N,) index of the producing beam
    ranges: np.ndarray        # (N,) float32 hit distances
    stamp: float
    cycle_id: int
    total_beams: int
    point_frame: PointFrame = "sensor"

    def __post_init__(self) -> None:
        n = len(self.points)
        if self.points.ndim != 2 or self.points.shape[1] != 3:
            raise ValueError(f"points must be (N, 3), got {self.points.shape}")
        if len(self.beam_index) != n or len(self.ranges) != n:
            raise ValueError("points, beam_index and ranges must have equal length")
        if n > self.total_beams:
            raise ValueError(f"{n} points exceed {self.total_beams} beams")

    def __len__(self) -> int:
        return len(self.points)

    @staticmethod
    def empty(stamp: float, cycle_id: int, total_beams: int, point_frame: PointFrame = "sensor") -> "ScanCycleResult":
        return ScanCycleResult(
            points=readonly(np.zeros((0, 3), dtype=np.float32)),
            beam_index=readonly(np.zeros((0,), dtype=np.int64)),
            ranges=readonly(np.zeros((0,), dtype=np.float32)),
            stamp=stamp,
            cycle_id=cycle_id,
            total_beams=total_beams,
            point_frame=point_frame,
        )


class RayCaster:
    """Casts the full beam pattern of a mounted sensor into a scene.

    ``mount`` is the sensor pose in the vehicle frame (lever arm and
    boresight). Points are reported in the sensor frame unless
    ``point_frame="world"``.
    """

    def __init__(
        self,
        scene: SceneQuery,
        config: ScanConfig,
        mount: Optional[Pose] = None,
        point_frame: PointFrame = "sensor",
    ) -> None:
        if point_frame not in ("sensor", "world"):
            raise ValueError(f"point_frame must be 'sensor' or 'world', got {point_frame!r}")
        self.scene = scene
        self.mount = mount if mount is not None else Pose.identity()
        self.point_frame: PointFrame = point_frame
        self._pattern = ScanPattern(config)

    @property
    def config(self) -> ScanConfig:
        return self._pattern.config

    @property
    def pattern(self) -> ScanPattern:
        return self._pattern

    def reconfigure(self, config: ScanConfig) -> None:
        """Swap the scan geometry. Takes effect on the next :meth:`cast`."""
        if config != self._pattern.config:
            self._pattern = ScanPattern(config)

    def sensor_pose(self, vehicle_pose: Pose) -> Pose:
        return vehicle_pose.compose(self.mount)

    def cast(self, vehicle_pose: Pose, stamp: float = 0.0, cycle_id: int = 0) -> ScanCycleResult:
        pattern = self._pattern
        cfg = pattern.config
        total = pattern.total_beams
        sensor = self.sensor_pose(vehicle_pose)
        origin = sensor.t
        dirs_world = sensor.rotate(pattern.directions())

        try:
            hit_mask, hit_points, hit_dist = self._query(origin, dirs_world, cfg.max_range, pattern)
        except SceneUnavailableError as exc:
            _log.warning("Scan cycle %d failed, publishing an empty cycle: %s", cycle_id, exc)
            return ScanCycleResult.empty(stamp, cycle_id, total, self.point_frame)

        keep = hit_mask & (hit_dist >= cfg.min_range) & (hit_dist <= cfg.max_range)
        beam_index = np.flatnonzero(keep)
        points = hit_points[beam_index]
        if self.point_frame == "sensor":
            points = sensor.apply_inverse(points).reshape(-1, 3)

        _log.debug(
            "Scan cycle %d completed: %d/%d rays hit (%dH x %dV)",
            cycle_id, len(beam_index), total, cfg.horizontal_steps, cfg.vertical_steps,
        )
        return ScanCycleResult(
            points=readonly(points.astype(np.float32)),
            beam_index=readonly(beam_index.astype(np.int64)),
            ranges=readonly(hit_dist[beam_index].astype(np.float32)),
            stamp=stamp,
            cycle_id=cycle_id,
            total_beams=total,
            point_frame=self.point_frame,
        )

    def _query(self, origin: np.ndarray, dirs_world: np.ndarray, max_range: float, pattern: ScanPattern):
        n = dirs_world.shape[0]
        debug = _log.isEnabledFor(logging.DEBUG)
        batch = getattr(self.scene, "cast_rays", None)
        if callable(batch):
            origins = np.tile(origin, (n, 1))
            hit_mask, points, distances = batch(origins, dirs_world, max_range)
            hit_mask = np.asarray(hit_mask, dtype=bool)
            distances = np.asarray(distances, dtype=np.float64)
            if debug:
                angles = pattern.angles_deg()
                for i in range(0, n, DEBUG_RAY_INTERVAL):
                    _log_ray(i, angles[i], dirs_world[i], distances[i] if hit_mask[i] else None)
            return hit_mask, np.asarray(points, dtype=np.float64), distances

        hit_mask = np.zeros((n,), dtype=bool)
        points = np.full((n, 3), np.nan, dtype=np.float64)
        distances = np.full((n,), np.nan, dtype=np.float64)
        angles = pattern.angles_deg() if debug else None
        for i in range(n):
            hit = self.scene.cast_ray(origin, dirs_world[i], max_range)
            if hit is not None:
                hit_mask[i] = True
                points[i] = hit.point
                distances[i] = hit.distance
            if debug and i % DEBUG_RAY_INTERVAL == 0:
                _log_ray(i, angles[i], dirs_world[i], hit.distance if hit is not None else None)
        return hit_mask, points, distances


def _log_ray(index: int, angles: np.ndarray, direction: np.ndarray, distance: Optional[float]) -> None:
    _log.debug(
        "Ray %d: H=%.1f V=%.1f direction=%s %s",
        index, angles[1], angles[0], np.round(direction, 3),
        f"hit distance={distance:.2f}m" if distance is not None else "no hit",
    )
