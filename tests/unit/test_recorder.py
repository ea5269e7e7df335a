from pathlib import Path

import laspy
import numpy as np

from lidarsim.config.settings import ScanConfig
from lidarsim.core.scene import PlaneScene
from lidarsim.export.recorder import LasWriter, NpzWriter, PlyWriter, SnapshotRecorder
from lidarsim.pipeline import LidarPipeline
from lidarsim.transport import InMemoryTransport

COARSE = ScanConfig(
    horizontal_resolution_deg=4.0,
    vertical_resolution_deg=2.0,
    min_vertical_angle_deg=-10.0,
    max_vertical_angle_deg=10.0,
)
HITS = 5 * 90


class DummyClock:
    def __init__(self) -> None:
        self.t = 10.0

    def __call__(self) -> float:
        return self.t


def _publish_frames(writer, frames: int = 2) -> SnapshotRecorder:
    transport = InMemoryTransport()
    clock = DummyClock()
    pipeline = LidarPipeline(PlaneScene(), None, transport, scan=COARSE, clock=clock)
    recorder = SnapshotRecorder(writer)
    recorder.attach(transport, pipeline.publish_config.topic_name)
    for _ in range(frames):
        pipeline.scan_once()
        pipeline.publish_once()
        clock.t += 0.1
    recorder.close()
    return recorder


def test_npz_recording(tmp_path: Path) -> None:
    out = tmp_path / "rec.npz"
    recorder = _publish_frames(NpzWriter(str(out)))
    assert recorder.frames == 2
    assert recorder.points == 2 * HITS
    data = np.load(out)
    assert data["xyz"].shape == (2 * HITS, 3)
    np.testing.assert_allclose(data["xyz"][:, 2], -1.5, atol=1e-4)
    np.testing.assert_array_equal(np.unique(data["frame_index"]), [0, 1])
    np.testing.assert_allclose(data["stamps"], [10.0, 10.1])


def test_las_recording(tmp_path: Path) -> None:
    out = tmp_path / "rec.las"
    _publish_frames(LasWriter(str(out)))
    las = laspy.read(out)
    assert len(las.points) == 2 * HITS
    np.testing.assert_allclose(np.asarray(las.z), -1.5, atol=2e-3)
    np.testing.assert_allclose(np.unique(np.asarray(las.gps_time)), [10.0, 10.1])
    assert "frame_index" in las.point_format.extra_dimension_names


def test_ply_recording(tmp_path: Path) -> None:
    out = tmp_path / "rec.ply"
    _publish_frames(PlyWriter(str(out)), frames=1)
    lines = out.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "ply"
    assert f"element vertex {HITS}" in lines


def test_malformed_message_is_rejected(tmp_path: Path) -> None:
    recorder = SnapshotRecorder(NpzWriter(str(tmp_path / "none.npz")))
    recorder.on_message(b"\x00\x01")
    recorder.close()
    assert recorder.rejected == 1
    assert recorder.frames == 0
    assert not (tmp_path / "none.npz").exists()
