"""Mapping between the simulation frame and the published frame.

Simulation (native) frame: x right, y up, z forward (left-handed).
Published frame: x forward, y left, z up (right-handed).

The same matrix converts lidar points and vehicle poses, so both streams
stay consistent with each other.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from ..motion.pose import Pose

# rows: published x, y, z expressed in native coordinates
NATIVE_TO_PUBLISH = np.array(
    [
        [0.0, 0.0, 1.0],   # forward
        [-1.0, 0.0, 0.0],  # left = -right
        [0.0, 1.0, 0.0],   # up
    ],
    dtype=np.float64,
)
NATIVE_TO_PUBLISH.setflags(write=False)


def to_publish_frame(points: np.ndarray) -> np.ndarray:
    """Convert a point ``(3,)`` or points ``(N, 3)``; the dtype is preserved."""
    p = np.asarray(points)
    if p.shape[-1] != 3:
        raise ValueError(f"Expected trailing dimension 3, got shape {p.shape}")
    out = np.empty_like(p)
    out[..., 0] = p[..., 2]
    out[..., 1] = -p[..., 0]
    out[..., 2] = p[..., 1]
    return out


def rotation_to_publish_frame(R: np.ndarray) -> np.ndarray:
    M = NATIVE_TO_PUBLISH
    return M @ np.asarray(R, dtype=np.float64) @ M.T


def quaternion_from_matrix(R: np.ndarray) -> np.ndarray:
    """Unit quaternion ``(x, y, z, w)`` with ``w >= 0`` for a rotation matrix."""
    m = np.asarray(R, dtype=np.float64)
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    if trace > 0.0:
        s = 2.0 * np.sqrt(trace + 1.0)
        q = np.array([(m[2, 1] - m[1, 2]) / s, (m[0, 2] - m[2, 0]) / s, (m[1, 0] - m[0, 1]) / s, 0.25 * s])
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = 2.0 * np.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2])
        q = np.array([0.25 * s, (m[0, 1] + m[1, 0]) / s, (m[0, 2] + m[2, 0]) / s, (m[2, 1] - m[1, 2]) / s])
    elif m[1, 1] > m[2, 2]:
        s = 2.0 * np.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2])
        q = np.array([(m[0, 1] + m[1, 0]) / s, 0.25 * s, (m[1, 2] + m[2, 1]) / s, (m[0, 2] - m[2, 0]) / s])
    else:
        s = 2.0 * np.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1])
        q = np.array([(m[0, 2] + m[2, 0]) / s, (m[1, 2] + m[2, 1]) / s, 0.25 * s, (m[1, 0] - m[0, 1]) / s])
    q = q / np.linalg.norm(q)
    if q[3] < 0.0:
        q = -q
    return q


def matrix_from_quaternion(q: np.ndarray) -> np.ndarray:
    x, y, z, w = np.asarray(q, dtype=np.float64) / np.linalg.norm(q)
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
            [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
            [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
        ]
    )


def pose_to_publish_frame(pose: Pose) -> Tuple[np.ndarray, np.ndarray]:
    """Position and ``(x, y, z, w)`` orientation of ``pose`` in the published frame."""
    position = to_publish_frame(np.asarray(pose.t, dtype=np.float64))
    return position, quaternion_from_matrix(rotation_to_publish_frame(pose.R))
