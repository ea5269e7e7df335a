from __future__ import annotations

from typing import List, Sequence

import numpy as np

from .pose import Pose


class Trajectory:
    """Base interface for vehicle motion, sampled by elapsed time in seconds."""

    def sample(self, t: float) -> Pose:
        raise NotImplementedError


class StaticTrajectory(Trajectory):
    """A parked vehicle."""

    def __init__(self, pose: Pose) -> None:
        self.pose = pose

    def sample(self, t: float) -> Pose:
        return self.pose


class PolylineTrajectory(Trajectory):
    """Piecewise-linear drive through ground waypoints at constant speed.

    Heading follows the horizontal (x/z) direction of the current segment.
    With ``loop=True`` the path closes back to the first waypoint and repeats.
    """

    def __init__(
        self,
        waypoints: Sequence[Sequence[float]],
        speed_mps: float,
        loop: bool = False,
    ) -> None:
        if len(waypoints) < 2:
            raise ValueError("PolylineTrajectory requires at least two waypoints.")
        if speed_mps <= 0.0:
            raise ValueError("speed_mps must be positive.")

        points = np.asarray(waypoints, dtype=np.float64)
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError("Waypoints must be (x, y, z) triples.")
        if loop and not np.allclose(points[0], points[-1]):
            points = np.vstack([points, points[:1]])

        seg_vecs = np.diff(points, axis=0)
        seg_lengths = np.linalg.norm(seg_vecs, axis=1)
        if np.any(seg_lengths == 0):
            raise ValueError("Consecutive waypoints must be distinct.")

        self._points = points
        self._speed = float(speed_mps)
        self._loop = bool(loop)
        self._segment_vectors = seg_vecs
        self._times = np.concatenate([[0.0], np.cumsum(seg_lengths / self._speed)])
        self._headings = [self._heading_deg(v) for v in seg_vecs]

    @staticmethod
    def _heading_deg(vec: np.ndarray) -> float:
        return float(np.degrees(np.arctan2(vec[0], vec[2])))

    @property
    def duration_s(self) -> float:
        return float(self._times[-1])

    def sample(self, t: float) -> Pose:
        if self._loop:
            t = float(t) % self.duration_s
        if t <= self._times[0]:
            return Pose.from_xyz_rpy(tuple(self._points[0]), (0.0, 0.0, self._headings[0]))
        if t >= self._times[-1]:
            return Pose.from_xyz_rpy(tuple(self._points[-1]), (0.0, 0.0, self._headings[-1]))

        idx = int(np.searchsorted(self._times, t, side="right") - 1)
        t0, t1 = self._times[idx], self._times[idx + 1]
        alpha = (t - t0) / max(t1 - t0, 1e-9)
        pos = (1.0 - alpha) * self._points[idx] + alpha * self._points[idx + 1]
        return Pose.from_xyz_rpy(tuple(pos), (0.0, 0.0, self._headings[idx]))

    def waypoints(self) -> List[np.ndarray]:
        return [p.copy() for p in self._points]
