"""Synthetic test environment: ground, scattered obstacles and four walls.

Coordinates use the simulation frame (x right, y up, z forward).
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Tuple

import numpy as np

from ..core.scene import MeshScene

Part = Tuple[np.ndarray, np.ndarray, np.ndarray]

GROUND_COLOR = (90, 170, 90)
WALL_COLOR = (128, 128, 128)
WALL_HEIGHT_M = 4.0
WALL_OFFSET_M = 25.0


def _ground(size: float, divisions: int, color: Tuple[int, int, int]) -> Part:
    lin = np.linspace(-size / 2.0, size / 2.0, divisions + 1, dtype=np.float32)
    xv, zv = np.meshgrid(lin, lin, indexing="ij")
    vertices = np.column_stack([xv.ravel(), np.zeros(xv.size, dtype=np.float32), zv.ravel()])

    i, j = np.meshgrid(np.arange(divisions), np.arange(divisions), indexing="ij")
    idx0 = (i * (divisions + 1) + j).ravel()
    idx1 = idx0 + 1
    idx2 = idx0 + (divisions + 1)
    idx3 = idx2 + 1
    faces = np.vstack([
        np.column_stack([idx0, idx1, idx3]),
        np.column_stack([idx0, idx3, idx2]),
    ]).astype(np.int64)
    colors = np.tile(np.asarray(color, dtype=np.uint8), (vertices.shape[0], 1))
    return vertices.astype(np.float32), faces, colors


def _box(center: Tuple[float, float, float], size: Tuple[float, float, float], color: Tuple[int, int, int]) -> Part:
    c = np.asarray(center, dtype=np.float32)
    h = np.asarray(size, dtype=np.float32) / 2.0
    corners = np.array([
        [-1, -1, -1], [1, -1, -1], [1, 1, -1], [-1, 1, -1],
        [-1, -1, 1], [1, -1, 1], [1, 1, 1], [-1, 1, 1],
    ], dtype=np.float32)
    vertices = c + corners * h
    faces = np.array([
        [0, 2, 1], [0, 3, 2],  # back (-z)
        [4, 5, 6], [4, 6, 7],  # front (+z)
        [0, 1, 5], [0, 5, 4],  # bottom
        [3, 7, 6], [3, 6, 2],  # top
        [1, 2, 6], [1, 6, 5],  # right
        [0, 4, 7], [0, 7, 3],  # left
    ], dtype=np.int64)
    colors = np.tile(np.asarray(color, dtype=np.uint8), (8, 1))
    return vertices, faces, colors


def _merge_parts(parts: Iterable[Part]) -> Part:
    vertices: List[np.ndarray] = []
    faces: List[np.ndarray] = []
    colors: List[np.ndarray] = []
    offset = 0
    for verts, tri, col in parts:
        vertices.append(verts)
        faces.append(tri + offset)
        colors.append(col)
        offset += verts.shape[0]
    return (
        np.vstack(vertices).astype(np.float32, copy=False),
        np.vstack(faces).astype(np.int64, copy=False),
        np.vstack(colors).astype(np.uint8, copy=False),
    )


def build_environment(
    ground_size: float = 100.0,
    obstacle_count: int = 10,
    obstacle_radius: float = 50.0,
    seed: int = 42,
) -> Part:
    """Vertices, faces and per-vertex colours of the test environment.

    Obstacles are spread evenly in bearing around the origin at a random
    distance in ``[5, obstacle_radius]``; the layout is fixed by ``seed``.
    """
    if ground_size <= 0.0:
        raise ValueError("ground_size must be positive.")
    if obstacle_count < 0:
        raise ValueError("obstacle_count must be non-negative.")
    rng = np.random.default_rng(seed)
    parts: List[Part] = [_ground(ground_size, divisions=20, color=GROUND_COLOR)]

    for i in range(obstacle_count):
        angle = np.deg2rad(i * 360.0 / obstacle_count)
        distance = rng.uniform(5.0, max(obstacle_radius, 5.0))
        center = (np.cos(angle) * distance, rng.uniform(0.5, 3.0), np.sin(angle) * distance)
        size = (rng.uniform(1.0, 3.0), rng.uniform(1.0, 5.0), rng.uniform(1.0, 3.0))
        color = tuple(int(c) for c in rng.integers(40, 256, size=3))
        parts.append(_box(center, size, color))  # type: ignore[arg-type]

    w, hh = WALL_OFFSET_M, WALL_HEIGHT_M / 2.0
    parts.append(_box((0.0, hh, w), (2 * w, WALL_HEIGHT_M, 1.0), WALL_COLOR))   # north
    parts.append(_box((0.0, hh, -w), (2 * w, WALL_HEIGHT_M, 1.0), WALL_COLOR))  # south
    parts.append(_box((w, hh, 0.0), (1.0, WALL_HEIGHT_M, 2 * w), WALL_COLOR))   # east
    parts.append(_box((-w, hh, 0.0), (1.0, WALL_HEIGHT_M, 2 * w), WALL_COLOR))  # west
    return _merge_parts(parts)


def _write_ascii_ply(path: Path, vertices: np.ndarray, faces: np.ndarray, colors: np.ndarray) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write("ply\n")
        f.write("format ascii 1.0\n")
        f.write(f"element vertex {len(vertices)}\n")
        f.write("property float x\nproperty float y\nproperty float z\n")
        f.write("property uchar red\nproperty uchar green\nproperty uchar blue\n")
        f.write(f"element face {len(faces)}\n")
        f.write("property list uchar int vertex_indices\n")
        f.write("end_header\n")
        for (x, y, z), (r, g, b) in zip(vertices, colors):
            f.write(f"{x:.6f} {y:.6f} {z:.6f} {int(r)} {int(g)} {int(b)}\n")
        for tri in faces:
            f.write(f"3 {tri[0]} {tri[1]} {tri[2]}\n")


def write_environment(path: str | Path, **kwargs) -> Path:
    """Write the environment as ASCII PLY and return the path."""
    path = Path(path)
    vertices, faces, colors = build_environment(**kwargs)
    _write_ascii_ply(path, vertices, faces, colors)
    return path


def environment_scene(**kwargs) -> MeshScene:
    vertices, faces, _colors = build_environment(**kwargs)
    return MeshScene(vertices=vertices, faces=faces)
