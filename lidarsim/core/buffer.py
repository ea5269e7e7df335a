from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from typing import Optional

import numpy as np

from .raycaster import ScanCycleResult
from .utils import readonly


@dataclass(frozen=True)
class PublishSnapshot:
    """Capped, independently owned copy of one scan cycle."""

    points: np.ndarray          # (K, 3) float32, read-only
    stamp: float
    cycle_id: int
    source_point_count: int
    point_frame: str = "sensor"

    def __len__(self) -> int:
        return len(self.points)

    @property
    def truncated(self) -> bool:
        return self.source_point_count > len(self.points)


class PointCloudBuffer:
    """Holds the latest complete :class:`ScanCycleResult`.

    ``replace`` and ``snapshot`` only hold the lock for a reference swap or
    read; copying happens outside it, so a reader never waits on a scan and
    a scan never waits on an encode.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._result: Optional[ScanCycleResult] = None

    def replace(self, result: ScanCycleResult) -> None:
        with self._lock:
            self._result = result

    @property
    def latest(self) -> Optional[ScanCycleResult]:
        with self._lock:
            return self._result

    @property
    def has_data(self) -> bool:
        return self.latest is not None

    @property
    def point_count(self) -> int:
        result = self.latest
        return 0 if result is None else len(result)

    @property
    def last_stamp(self) -> Optional[float]:
        result = self.latest
        return None if result is None else result.stamp

    def snapshot(self, max_points: int) -> Optional[PublishSnapshot]:
        """First ``max_points`` points of the latest cycle, in beam order.

        Returns ``None`` when no cycle has completed yet or the latest cycle
        produced no points.
        """
        if max_points < 1:
            raise ValueError("max_points must be positive")
        result = self.latest
        if result is None or len(result) == 0:
            return None
        points = np.array(result.points[:max_points], dtype=np.float32, copy=True)
        return PublishSnapshot(
            points=readonly(points),
            stamp=result.stamp,
            cycle_id=result.cycle_id,
            source_point_count=len(result),
            point_frame=result.point_frame,
        )
