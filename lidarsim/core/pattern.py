from __future__ import annotations

from functools import lru_cache
from typing import NamedTuple, Tuple

import numpy as np

from ..config.settings import ScanConfig
from .utils import ensure_unit_vectors, readonly


class Beam(NamedTuple):
    """One ray of the scan, angles in degrees."""

    vertical_deg: float
    horizontal_deg: float


def beam_direction(vertical_deg: float, horizontal_deg: float) -> np.ndarray:
    """Sensor-frame unit direction of a single beam (x right, y up, z forward)."""
    return _directions_from_angles(np.array([[vertical_deg, horizontal_deg]], dtype=np.float64))[0]


def _directions_from_angles(angles_deg: np.ndarray) -> np.ndarray:
    # Pitch the forward vector up by the elevation, then yaw it right by the azimuth.
    el = np.deg2rad(angles_deg[:, 0])
    az = np.deg2rad(angles_deg[:, 1])
    cos_el = np.cos(el)
    dirs = np.column_stack([cos_el * np.sin(az), np.sin(el), cos_el * np.cos(az)])
    return ensure_unit_vectors(dirs)


@lru_cache(maxsize=16)
def generate_beams(config: ScanConfig) -> Tuple[Beam, ...]:
    """Canonical beam order: vertical rows ascending from the lowest angle,
    each row sweeping azimuth upward from 0 degrees."""
    v_res = config.vertical_resolution_deg
    h_res = config.horizontal_resolution_deg
    beams = []
    for v in range(config.vertical_steps):
        vertical = config.min_vertical_angle_deg + v * v_res
        for h in range(config.horizontal_steps):
            beams.append(Beam(vertical, h * h_res))
    return tuple(beams)


class ScanPattern:
    """Array views over the beam sequence of a :class:`ScanConfig`."""

    def __init__(self, config: ScanConfig) -> None:
        self.config = config
        self._beams = generate_beams(config)
        angles = np.asarray(self._beams, dtype=np.float64).reshape(-1, 2)
        self._angles = readonly(angles)
        self._directions = readonly(_directions_from_angles(angles))

    @property
    def total_beams(self) -> int:
        return len(self._beams)

    def beams(self) -> Tuple[Beam, ...]:
        return self._beams

    def angles_deg(self) -> np.ndarray:
        """(N, 2) read-only array of (vertical, horizontal) angles in beam order."""
        return self._angles

    def directions(self) -> np.ndarray:
        """(N, 3) read-only array of sensor-frame unit vectors in beam order."""
        return self._directions
