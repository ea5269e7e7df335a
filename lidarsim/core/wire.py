"""Binary wire format for point clouds and poses.

Messages follow the ``sensor_msgs/PointCloud2`` and
``geometry_msgs/PoseStamped`` field layout and are serialised little-endian:

    Header      int32 sec | uint32 nanosec | string frame_id
    string      uint32 length | utf-8 bytes
    array<T>    uint32 count | T * count
    bool        uint8

PointCloud2 body (after the header):

    uint32 height | uint32 width | array<PointField> fields | bool is_bigendian
    | uint32 point_step | uint32 row_step | array<uint8> data | bool is_dense

    PointField: string name | uint32 offset | uint8 datatype | uint32 count

PoseStamped body: float64 x, y, z | float64 qx, qy, qz, qw
"""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from ..errors import EncodingInvariantViolation
from ..motion.pose import Pose
from .buffer import PublishSnapshot
from .frames import pose_to_publish_frame, to_publish_frame

POINTCLOUD2_SCHEMA = "sensor_msgs/PointCloud2"
POSE_STAMPED_SCHEMA = "geometry_msgs/PoseStamped"

# PointField datatypes
INT8, UINT8, INT16, UINT16, INT32, UINT32, FLOAT32, FLOAT64 = range(1, 9)

POINT_STEP = 12
_XYZ_DTYPE = np.dtype("<f4")
_INT32_MIN, _INT32_MAX = -(2 ** 31), 2 ** 31 - 1


def split_stamp(t: float) -> Tuple[int, int]:
    """Split seconds into ``(sec, nanosec)`` with ``0 <= nanosec < 1e9``."""
    if not math.isfinite(t):
        raise ValueError(f"Timestamp must be finite, got {t}")
    sec = math.floor(t)
    nanosec = int(round((t - sec) * 1e9))
    if nanosec >= 1_000_000_000:
        sec += 1
        nanosec -= 1_000_000_000
    if not (_INT32_MIN <= sec <= _INT32_MAX):
        raise ValueError(f"Timestamp {t} does not fit an int32 seconds field")
    return int(sec), nanosec


def join_stamp(sec: int, nanosec: int) -> float:
    return sec + nanosec * 1e-9


@dataclass(frozen=True)
class PointField:
    name: str
    offset: int
    datatype: int = FLOAT32
    count: int = 1


XYZ_FIELDS: Tuple[PointField, ...] = (
    PointField("x", 0),
    PointField("y", 4),
    PointField("z", 8),
)


@dataclass
class WireMessage:
    stamp_sec: int
    stamp_nanosec: int
    frame_id: str
    width: int
    data: bytes
    height: int = 1
    fields: Tuple[PointField, ...] = XYZ_FIELDS
    is_bigendian: bool = False
    point_step: int = POINT_STEP
    row_step: int = 0
    is_dense: bool = True

    @property
    def point_count(self) -> int:
        return self.width * self.height

    @property
    def stamp(self) -> float:
        return join_stamp(self.stamp_sec, self.stamp_nanosec)

    def layout_errors(self) -> List[str]:
        problems: List[str] = []
        if self.fields != XYZ_FIELDS:
            problems.append(f"unexpected field schema {self.fields}")
        if self.point_step != POINT_STEP:
            problems.append(f"point_step {self.point_step} != {POINT_STEP}")
        if self.height != 1:
            problems.append(f"height {self.height} != 1")
        if self.row_step != self.width * self.point_step:
            problems.append(f"row_step {self.row_step} != width*point_step {self.width * self.point_step}")
        if len(self.data) != self.row_step * self.height:
            problems.append(f"data length {len(self.data)} != row_step*height {self.row_step * self.height}")
        if self.is_bigendian:
            problems.append("big-endian payloads are not produced")
        if not (0 <= self.stamp_nanosec < 1_000_000_000):
            problems.append(f"nanosec {self.stamp_nanosec} outside [0, 1e9)")
        return problems

    def validate(self) -> None:
        problems = self.layout_errors()
        if problems:
            raise EncodingInvariantViolation("; ".join(problems))

    def xyz(self) -> np.ndarray:
        """Decode the payload into an ``(N, 3)`` float32 array via the field offsets."""
        raw = np.frombuffer(self.data, dtype=np.uint8).reshape(self.point_count, self.point_step)
        cols = []
        for f in self.fields:
            cols.append(raw[:, f.offset:f.offset + 4].copy().view(_XYZ_DTYPE).reshape(-1))
        return np.column_stack(cols).astype(np.float32, copy=False)

    def to_bytes(self) -> bytes:
        out = _Writer()
        out.header(self.stamp_sec, self.stamp_nanosec, self.frame_id)
        out.pack("<II", self.height, self.width)
        out.pack("<I", len(self.fields))
        for f in self.fields:
            out.string(f.name)
            out.pack("<IBI", f.offset, f.datatype, f.count)
        out.pack("<B", int(self.is_bigendian))
        out.pack("<II", self.point_step, self.row_step)
        out.blob(self.data)
        out.pack("<B", int(self.is_dense))
        return out.getvalue()


@dataclass
class PoseMessage:
    stamp_sec: int
    stamp_nanosec: int
    frame_id: str
    position: Tuple[float, float, float]
    orientation: Tuple[float, float, float, float]  # x, y, z, w

    @property
    def stamp(self) -> float:
        return join_stamp(self.stamp_sec, self.stamp_nanosec)

    def to_bytes(self) -> bytes:
        out = _Writer()
        out.header(self.stamp_sec, self.stamp_nanosec, self.frame_id)
        out.pack("<3d", *self.position)
        out.pack("<4d", *self.orientation)
        return out.getvalue()


def encode(snapshot: PublishSnapshot, frame_id: str, timestamp: Optional[float] = None) -> WireMessage:
    """Pack a snapshot into a point-cloud message in the published frame."""
    sec, nanosec = split_stamp(snapshot.stamp if timestamp is None else timestamp)
    pts = to_publish_frame(np.asarray(snapshot.points, dtype=np.float32))
    data = np.ascontiguousarray(pts, dtype=_XYZ_DTYPE).tobytes()
    count = len(snapshot)
    msg = WireMessage(
        stamp_sec=sec,
        stamp_nanosec=nanosec,
        frame_id=frame_id,
        width=count,
        data=data,
        row_step=count * POINT_STEP,
    )
    msg.validate()
    return msg


def encode_pose(pose: Pose, frame_id: str, timestamp: float) -> PoseMessage:
    sec, nanosec = split_stamp(timestamp)
    position, orientation = pose_to_publish_frame(pose)
    return PoseMessage(
        stamp_sec=sec,
        stamp_nanosec=nanosec,
        frame_id=frame_id,
        position=tuple(float(v) for v in position),  # type: ignore[arg-type]
        orientation=tuple(float(v) for v in orientation),  # type: ignore[arg-type]
    )


def decode_message(payload: bytes) -> WireMessage:
    """Parse bytes produced by :meth:`WireMessage.to_bytes`.

    Raises ``ValueError`` for truncated or inconsistent payloads.
    """
    src = _Reader(payload)
    sec, nanosec, frame_id = src.header()
    height, width = src.unpack("<II")
    (n_fields,) = src.unpack("<I")
    fields_list = []
    for _ in range(n_fields):
        name = src.string()
        offset, datatype, count = src.unpack("<IBI")
        fields_list.append(PointField(name, offset, datatype, count))
    (is_bigendian,) = src.unpack("<B")
    point_step, row_step = src.unpack("<II")
    data = src.blob()
    (is_dense,) = src.unpack("<B")
    src.expect_end()
    msg = WireMessage(
        stamp_sec=sec,
        stamp_nanosec=nanosec,
        frame_id=frame_id,
        width=width,
        data=data,
        height=height,
        fields=tuple(fields_list),
        is_bigendian=bool(is_bigendian),
        point_step=point_step,
        row_step=row_step,
        is_dense=bool(is_dense),
    )
    problems = msg.layout_errors()
    if problems:
        raise ValueError("Malformed point cloud message: " + "; ".join(problems))
    return msg


def decode_pose(payload: bytes) -> PoseMessage:
    src = _Reader(payload)
    sec, nanosec, frame_id = src.header()
    position = src.unpack("<3d")
    orientation = src.unpack("<4d")
    src.expect_end()
    return PoseMessage(sec, nanosec, frame_id, position, orientation)  # type: ignore[arg-type]


class _Writer:
    def __init__(self) -> None:
        self._buf = bytearray()

    def pack(self, fmt: str, *values) -> None:
        self._buf += struct.pack(fmt, *values)

    def string(self, value: str) -> None:
        self.blob(value.encode("utf-8"))

    def blob(self, value: bytes) -> None:
        self._buf += struct.pack("<I", len(value))
        self._buf += value

    def header(self, sec: int, nanosec: int, frame_id: str) -> None:
        self.pack("<iI", sec, nanosec)
        self.string(frame_id)

    def getvalue(self) -> bytes:
        return bytes(self._buf)


class _Reader:
    def __init__(self, payload: bytes) -> None:
        self._buf = memoryview(payload)
        self._pos = 0

    def unpack(self, fmt: str) -> tuple:
        size = struct.calcsize(fmt)
        if self._pos + size > len(self._buf):
            raise ValueError(f"Truncated message: need {size} bytes at offset {self._pos}")
        values = struct.unpack_from(fmt, self._buf, self._pos)
        self._pos += size
        return values

    def blob(self) -> bytes:
        (length,) = self.unpack("<I")
        if self._pos + length > len(self._buf):
            raise ValueError(f"Truncated message: {length}-byte field at offset {self._pos}")
        value = bytes(self._buf[self._pos:self._pos + length])
        self._pos += length
        return value

    def string(self) -> str:
        return self.blob().decode("utf-8")

    def header(self) -> Tuple[int, int, str]:
        sec, nanosec = self.unpack("<iI")
        return sec, nanosec, self.string()

    def expect_end(self) -> None:
        if self._pos != len(self._buf):
            raise ValueError(f"{len(self._buf) - self._pos} trailing bytes after message")
