from __future__ import annotations

import pathlib
import threading
from dataclasses import dataclass
from typing import List, Optional, Protocol

import laspy  # type: ignore
import numpy as np

from ..core.utils import get_logger
from ..core.wire import decode_message
from ..transport.base import Subscription, Transport

_log = get_logger()


class FrameWriter(Protocol):
    def write_frame(self, xyz: np.ndarray, stamp: float, frame_index: int) -> None: ...

    def close(self) -> None: ...


@dataclass
class LasWriter:
    """Streaming LAS/LAZ writer using laspy (v2+).

    The header is created on the first frame; its offset is the minimum of
    that frame. Each point carries the message stamp as ``gps_time`` and the
    frame index as an extra ``frame_index`` dimension.
    """

    path: str
    point_format: int = 6
    compress: bool = False
    scale: tuple[float, float, float] = (1e-3, 1e-3, 1e-3)

    def __post_init__(self) -> None:
        self._fh: Optional[laspy.LasWriter] = None  # type: ignore
        self._header: Optional[laspy.LasHeader] = None  # type: ignore
        self.points_written = 0

    def write_frame(self, xyz: np.ndarray, stamp: float, frame_index: int) -> None:
        if len(xyz) == 0:
            return
        if self._fh is None:
            self._open(xyz)
        assert self._fh is not None and self._header is not None
        pts = laspy.ScaleAwarePointRecord.zeros(len(xyz), header=self._header)
        pts.x = xyz[:, 0]
        pts.y = xyz[:, 1]
        pts.z = xyz[:, 2]
        pts.gps_time = np.full(len(xyz), stamp, dtype=np.float64)
        pts["frame_index"] = np.full(len(xyz), frame_index, dtype=np.uint32)
        self._fh.write_points(pts)
        self.points_written += len(xyz)

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def _open(self, xyz: np.ndarray) -> None:
        hdr = laspy.LasHeader(point_format=laspy.PointFormat(self.point_format), version="1.4")
        hdr.scales = self.scale
        mn = np.min(xyz, axis=0)
        hdr.offsets = (float(mn[0]), float(mn[1]), float(mn[2]))
        hdr.add_extra_dim(laspy.ExtraBytesParams(name="frame_index", type="uint32"))
        path = pathlib.Path(self.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = laspy.open(path, mode="w", header=hdr, do_compress=self.compress)
        self._header = hdr
        _log.info("Opened %s (PF=%d, compress=%s)", path.name, self.point_format, self.compress)


class PlyWriter:
    """ASCII PLY of all recorded points, written once on close."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._xyz_chunks: List[np.ndarray] = []

    def write_frame(self, xyz: np.ndarray, stamp: float, frame_index: int) -> None:
        self._xyz_chunks.append(np.asarray(xyz, dtype=np.float32))

    def close(self) -> None:
        if not self._xyz_chunks:
            return
        path = pathlib.Path(self.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        xyz = np.vstack(self._xyz_chunks)
        with open(path, "w", encoding="utf-8") as f:
            f.write("ply\nformat ascii 1.0\n")
            f.write(f"element vertex {len(xyz)}\n")
            f.write("property float x\nproperty float y\nproperty float z\n")
            f.write("end_header\n")
            for x, y, z in xyz:
                f.write(f"{float(x)} {float(y)} {float(z)}\n")
        self._xyz_chunks.clear()


class NpzWriter:
    """Compressed NPZ with ``xyz``, per-point ``frame_index`` and per-frame ``stamps``."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._xyz: List[np.ndarray] = []
        self._frame_index: List[np.ndarray] = []
        self._stamps: List[float] = []

    def write_frame(self, xyz: np.ndarray, stamp: float, frame_index: int) -> None:
        self._xyz.append(np.asarray(xyz, dtype=np.float32))
        self._frame_index.append(np.full(len(xyz), frame_index, dtype=np.uint32))
        self._stamps.append(float(stamp))

    def close(self) -> None:
        if not self._xyz:
            return
        path = pathlib.Path(self.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        np.savez_compressed(
            path,
            xyz=np.vstack(self._xyz),
            frame_index=np.concatenate(self._frame_index),
            stamps=np.asarray(self._stamps, dtype=np.float64),
        )
        self._xyz.clear()
        self._frame_index.clear()
        self._stamps.clear()


class SnapshotRecorder:
    """Read-only consumer of published point clouds.

    Subscribes to a point-cloud topic, decodes each message and forwards the
    points (in the published frame) to a :class:`FrameWriter`.
    """

    def __init__(self, writer: FrameWriter) -> None:
        self.writer = writer
        self.frames = 0
        self.points = 0
        self.rejected = 0
        self._lock = threading.Lock()
        self._subscription: Optional[Subscription] = None

    def attach(self, transport: Transport, topic: str) -> None:
        if self._subscription is not None:
            raise RuntimeError("Recorder is already attached")
        self._subscription = transport.subscribe(topic, self.on_message)

    def on_message(self, payload: bytes) -> None:
        try:
            message = decode_message(payload)
        except ValueError as exc:
            _log.warning("Recorder rejected a malformed message: %s", exc)
            with self._lock:
                self.rejected += 1
            return
        xyz = message.xyz()
        with self._lock:
            self.writer.write_frame(xyz, message.stamp, self.frames)
            self.frames += 1
            self.points += len(xyz)

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        with self._lock:
            self.writer.close()
        _log.info("Recorded %d frames (%d points)", self.frames, self.points)
