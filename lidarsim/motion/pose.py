from __future__ import annotations
from dataclasses import dataclass
import numpy as np

# Native simulation frame: x right, y up, z forward.

def _rot_x(a: float) -> np.ndarray:
    c, s = np.cos(a), np.sin(a)
    return np.array([[1, 0, 0], [0, c, -s], [0, s, c]], dtype=float)

def _rot_y(a: float) -> np.ndarray:
    c, s = np.cos(a), np.sin(a)
    return np.array([[c, 0, s], [0, 1, 0], [-s, 0, c]], dtype=float)

def _rot_z(a: float) -> np.ndarray:
    c, s = np.cos(a), np.sin(a)
    return np.array([[c, -s, 0], [s, c, 0], [0, 0, 1]], dtype=float)


@dataclass
class Pose:
    t: np.ndarray   # (3,)
    R: np.ndarray   # (3,3)

    @staticmethod
    def identity() -> "Pose":
        return Pose(t=np.zeros(3), R=np.eye(3))

    @staticmethod
    def from_xyz_rpy(xyz: tuple[float, float, float], rpy_deg: tuple[float, float, float]) -> "Pose":
        """Build a pose from a position and (roll, pitch, yaw) in degrees.

        Roll turns about the forward axis, pitch about the right axis (positive
        raises the nose), yaw about the up axis (positive turns to the right).
        Applied roll first, then pitch, then yaw.
        """
        roll, pitch, yaw = np.deg2rad(rpy_deg)
        R = _rot_y(yaw) @ _rot_x(-pitch) @ _rot_z(roll)
        return Pose(t=np.array(xyz, dtype=float), R=R)

    def apply(self, p_body: np.ndarray) -> np.ndarray:
        return (self.R @ np.asarray(p_body, dtype=float).T).T + self.t

    def apply_inverse(self, p_world: np.ndarray) -> np.ndarray:
        return (self.R.T @ (np.asarray(p_world, dtype=float) - self.t).T).T

    def rotate(self, v_body: np.ndarray) -> np.ndarray:
        return (self.R @ np.asarray(v_body, dtype=float).T).T

    def compose(self, other: "Pose") -> "Pose":
        """Pose of ``other`` (expressed in this pose's body frame) in the parent frame."""
        return Pose(t=self.t + self.R @ other.t, R=self.R @ other.R)

    def inverse(self) -> "Pose":
        return Pose(t=-(self.R.T @ self.t), R=self.R.T.copy())
