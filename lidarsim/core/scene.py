from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Sequence, Tuple, runtime_checkable

import numpy as np
import trimesh

from ..errors import SceneUnavailableError
from .utils import get_logger, ensure_unit_vectors

_log = get_logger()


@dataclass(frozen=True)
class RayHit:
    point: np.ndarray   # (3,) world coordinates
    distance: float


@runtime_checkable
class SceneQuery(Protocol):
    """Read-only probe into the physical scene.

    Implementations raise :class:`SceneUnavailableError` when they cannot
    answer queries at all (as opposed to a miss, which returns ``None``).
    """

    def cast_ray(self, origin: np.ndarray, direction: np.ndarray, max_distance: float) -> Optional[RayHit]: ...


class PlaneScene:
    """An infinite plane, e.g. flat ground ``y = 0``."""

    def __init__(
        self,
        point: Sequence[float] = (0.0, 0.0, 0.0),
        normal: Sequence[float] = (0.0, 1.0, 0.0),
        epsilon: float = 1e-9,
    ) -> None:
        n = np.asarray(normal, dtype=np.float64)
        if np.linalg.norm(n) == 0.0:
            raise ValueError("Plane normal must be non-zero.")
        self.point = np.asarray(point, dtype=np.float64)
        self.normal = ensure_unit_vectors(n)
        self.epsilon = float(epsilon)

    def cast_ray(self, origin: np.ndarray, direction: np.ndarray, max_distance: float) -> Optional[RayHit]:
        o = np.asarray(origin, dtype=np.float64)
        d = ensure_unit_vectors(np.asarray(direction, dtype=np.float64))
        denom = float(np.dot(d, self.normal))
        if abs(denom) < self.epsilon:
            return None
        t = float(np.dot(self.point - o, self.normal)) / denom
        if t < 0.0 or t > max_distance:
            return None
        return RayHit(point=o + d * t, distance=t)


class MeshScene:
    """Triangle mesh scene backed by trimesh ray queries."""

    def __init__(
        self,
        mesh_path: str | Path | None = None,
        vertices: Optional[np.ndarray] = None,
        faces: Optional[np.ndarray] = None,
    ) -> None:
        self.mesh_path = Path(mesh_path) if mesh_path is not None else None
        if vertices is not None and faces is not None:
            self._mesh = trimesh.Trimesh(
                vertices=np.asarray(vertices, dtype=np.float64),
                faces=np.asarray(faces, dtype=np.int64),
                process=False,
            )
        elif self.mesh_path is not None:
            if not self.mesh_path.exists():
                raise FileNotFoundError(f"Mesh file not found: {self.mesh_path}")
            loaded = trimesh.load(str(self.mesh_path), force="mesh", process=True)
            if not isinstance(loaded, trimesh.Trimesh) or len(loaded.faces) == 0:
                raise RuntimeError(f"{self.mesh_path} does not contain a triangle mesh.")
            self._mesh = loaded
        else:
            raise ValueError("Provide either mesh_path or vertices and faces.")
        _log.info("Loaded scene mesh: %d vertices, %d faces", len(self._mesh.vertices), len(self._mesh.faces))

    @property
    def closed(self) -> bool:
        return self._mesh is None

    def close(self) -> None:
        """Release the mesh; later queries raise :class:`SceneUnavailableError`."""
        self._mesh = None

    def cast_ray(self, origin: np.ndarray, direction: np.ndarray, max_distance: float) -> Optional[RayHit]:
        hit_mask, points, distances = self.cast_rays(
            np.asarray(origin, dtype=np.float64).reshape(1, 3),
            np.asarray(direction, dtype=np.float64).reshape(1, 3),
            max_distance,
        )
        if not hit_mask[0]:
            return None
        return RayHit(point=points[0], distance=float(distances[0]))

    def cast_rays(
        self, origins: np.ndarray, directions: np.ndarray, max_distance: float
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """One nearest-hit query per ray.

        Returns ``(hit_mask (M,), points (M,3), distances (M,))``; rows of rays
        that missed (or hit beyond ``max_distance``) are NaN.
        """
        mesh = self._mesh
        if mesh is None:
            raise SceneUnavailableError(f"Mesh scene {self.mesh_path or '<in-memory>'} is closed")
        origins = np.asarray(origins, dtype=np.float64)
        dirs = ensure_unit_vectors(np.asarray(directions, dtype=np.float64))
        n_rays = origins.shape[0]
        points = np.full((n_rays, 3), np.nan, dtype=np.float64)
        distances = np.full((n_rays,), np.nan, dtype=np.float64)
        locs, ray_idx, _tri_idx = mesh.ray.intersects_location(
            ray_origins=origins, ray_directions=dirs, multiple_hits=False
        )

        if len(ray_idx):
            ray_idx = np.asarray(ray_idx, dtype=np.int64)
            dist = np.linalg.norm(locs - origins[ray_idx], axis=1)
            # intersects_location may report more than one hit per ray; keep the nearest
            order = np.lexsort((dist, ray_idx))
            ray_idx, locs, dist = ray_idx[order], locs[order], dist[order]
            first = np.ones(len(ray_idx), dtype=bool)
            first[1:] = ray_idx[1:] != ray_idx[:-1]
            ray_idx, locs, dist = ray_idx[first], locs[first], dist[first]
            keep = dist <= max_distance
            points[ray_idx[keep]] = locs[keep]
            distances[ray_idx[keep]] = dist[keep]
        return ~np.isnan(distances), points, distances


class SceneGroup:
    """Several scenes queried together; the nearest hit wins."""

    def __init__(self, scenes: Sequence[SceneQuery]) -> None:
        if not scenes:
            raise ValueError("SceneGroup needs at least one scene.")
        self.scenes = list(scenes)

    def cast_ray(self, origin: np.ndarray, direction: np.ndarray, max_distance: float) -> Optional[RayHit]:
        best: Optional[RayHit] = None
        for scene in self.scenes:
            hit = scene.cast_ray(origin, direction, max_distance)
            if hit is not None and (best is None or hit.distance < best.distance):
                best = hit
        return best
