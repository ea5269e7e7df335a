import threading
import time

import numpy as np
import pytest

import lidarsim.pipeline as pipeline_module
from lidarsim.config.settings import PoseConfig, PublishConfig, ScanConfig
from lidarsim.core.frames import to_publish_frame
from lidarsim.core.scene import PlaneScene
from lidarsim.core.wire import decode_message, decode_pose
from lidarsim.errors import ConfigurationError, EncodingInvariantViolation, SceneUnavailableError, TransportError
from lidarsim.motion.pose import Pose
from lidarsim.motion.trajectory import PolylineTrajectory
from lidarsim.pipeline import LidarPipeline
from lidarsim.transport import InMemoryTransport

COARSE = ScanConfig(
    horizontal_resolution_deg=2.0,
    vertical_resolution_deg=2.0,
    min_vertical_angle_deg=-10.0,
    max_vertical_angle_deg=10.0,
)
COARSE_HITS = 5 * 180


class FakeClock:
    def __init__(self, t: float = 1000.0) -> None:
        self.t = t

    def __call__(self) -> float:
        return self.t


class DummyTransport(InMemoryTransport):
    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    def publish(self, name: str, payload: bytes) -> None:
        if self.fail:
            raise TransportError("link down")
        super().publish(name, payload)


class UnavailableScene:
    def cast_ray(self, origin, direction, max_distance):
        raise SceneUnavailableError("not loaded")


def _pipeline(transport=None, scene=None, **kwargs) -> LidarPipeline:
    kwargs.setdefault("scan", COARSE)
    kwargs.setdefault("clock", FakeClock())
    return LidarPipeline(
        scene=scene or PlaneScene(),
        trajectory=None,
        transport=transport or InMemoryTransport(),
        **kwargs,
    )


def _collect(transport, topic: str = "/lidar/pointcloud"):
    received = []
    transport.subscribe(topic, received.append)
    return received


def test_registers_topics_on_construction() -> None:
    transport = InMemoryTransport()
    _pipeline(transport, pose=PoseConfig())
    assert transport.topics() == {
        "/lidar/pointcloud": "sensor_msgs/PointCloud2",
        "/object_pose": "geometry_msgs/PoseStamped",
    }


def test_disabled_pose_registers_no_pose_topic() -> None:
    transport = InMemoryTransport()
    p = _pipeline(transport, pose=PoseConfig(enabled=False))
    assert "/object_pose" not in transport.topics()
    assert p.publish_pose_once() is False


def test_publish_before_first_scan_sends_nothing() -> None:
    transport = InMemoryTransport()
    received = _collect(transport)
    p = _pipeline(transport)
    assert p.publish_once() is False
    assert received == []
    assert p.stats().skipped == 1


def test_scan_then_publish_sends_latest_cycle() -> None:
    transport = InMemoryTransport()
    received = _collect(transport)
    p = _pipeline(transport)
    assert p.scan_once() == COARSE_HITS
    assert p.publish_once() is True
    msg = decode_message(received[0])
    assert msg.width == COARSE_HITS
    assert msg.frame_id == "lidar_link"
    assert msg.stamp == pytest.approx(1000.0)
    np.testing.assert_allclose(msg.xyz(), to_publish_frame(p.buffer.latest.points), atol=1e-6)
    # sensor mounted 1.5 m up: the ground is 1.5 m below in the published z axis
    np.testing.assert_allclose(msg.xyz()[:, 2], -1.5, atol=1e-4)
    stats = p.stats()
    assert stats.cycles == 1 and stats.published == 1
    assert stats.last_point_count == COARSE_HITS


def test_message_width_is_capped() -> None:
    transport = InMemoryTransport()
    received = _collect(transport)
    p = _pipeline(transport, publish=PublishConfig(max_points_per_message=100))
    p.scan_once()
    p.publish_once()
    assert decode_message(received[0]).width == 100
    p.set_max_points_per_message(1_000_000)
    p.publish_once()
    assert decode_message(received[1]).width == COARSE_HITS


def test_transport_error_drops_only_that_tick() -> None:
    transport = DummyTransport()
    received = _collect(transport)
    p = _pipeline(transport)
    p.scan_once()
    transport.fail = True
    assert p.publish_once() is False
    transport.fail = False
    assert p.publish_once() is True
    assert len(received) == 1
    assert p.stats().dropped == 1


def test_encoding_violation_skips_tick(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken_encode(*args, **kwargs):
        raise EncodingInvariantViolation("row_step mismatch")

    transport = InMemoryTransport()
    received = _collect(transport)
    p = _pipeline(transport)
    p.scan_once()
    monkeypatch.setattr(pipeline_module, "encode", broken_encode)
    assert p.publish_once() is False
    assert received == []
    assert p.stats().dropped == 1


def test_unavailable_scene_publishes_nothing() -> None:
    transport = InMemoryTransport()
    received = _collect(transport)
    p = _pipeline(transport, scene=UnavailableScene())
    assert p.scan_once() == 0
    assert p.publish_once() is False
    assert received == []


def test_runtime_setters_validate() -> None:
    p = _pipeline()
    with pytest.raises(ConfigurationError):
        p.set_publish_frequency(0.0)
    with pytest.raises(ConfigurationError):
        p.set_max_points_per_message(0)
    with pytest.raises(ConfigurationError):
        p.set_frame_id("")
    assert p.publish_config == PublishConfig()
    p.set_frame_id("base_link")
    assert p.publish_config.frame_id == "base_link"


def test_frequency_change_restarts_running_publisher() -> None:
    p = _pipeline(clock=time.time)
    p.start_publishing()
    try:
        p.set_publish_frequency(20.0)
        assert p.is_publishing
        assert p.publish_config.publish_period_s == pytest.approx(0.05)
    finally:
        p.shutdown()
    assert not p.is_publishing


def test_reload_applies_from_next_cycle() -> None:
    p = _pipeline()
    p.scan_once()
    assert p.buffer.latest.total_beams == COARSE.total_beams_per_cycle
    finer = COARSE.replace(horizontal_resolution_deg=1.0)
    p.reload_scan_config(finer)
    assert p.scan_config == finer
    assert p.buffer.latest.total_beams == COARSE.total_beams_per_cycle
    p.scan_once()
    assert p.buffer.latest.total_beams == finer.total_beams_per_cycle


class GatedScene:
    """Plane scene whose first ray blocks until released."""

    def __init__(self) -> None:
        self.entered = threading.Event()
        self.release = threading.Event()
        self._plane = PlaneScene()

    def cast_ray(self, origin, direction, max_distance):
        if not self.entered.is_set():
            self.entered.set()
            assert self.release.wait(5.0)
        return self._plane.cast_ray(origin, direction, max_distance)


def test_reload_during_running_scan_reaches_next_cycle() -> None:
    scene = GatedScene()
    p = _pipeline(scene=scene)
    worker = threading.Thread(target=p.scan_once)
    worker.start()
    assert scene.entered.wait(5.0)
    finer = COARSE.replace(horizontal_resolution_deg=1.0)
    p.reload_scan_config(finer)
    scene.release.set()
    worker.join(5.0)
    assert not worker.is_alive()
    assert p.buffer.latest.total_beams == COARSE.total_beams_per_cycle
    assert p.scan_config == finer
    p.scan_once()
    assert p.buffer.latest.total_beams == finer.total_beams_per_cycle
    assert p.raycaster.config == finer


def test_trajectory_sampled_at_elapsed_time() -> None:
    clock = FakeClock(50.0)
    traj = PolylineTrajectory([(0.0, 0.0, 0.0), (0.0, 0.0, 10.0)], speed_mps=1.0)
    transport = InMemoryTransport()
    poses = _collect(transport, "/object_pose")
    p = LidarPipeline(PlaneScene(), traj, transport, scan=COARSE, pose=PoseConfig(), clock=clock)
    clock.t = 54.0
    assert p.elapsed() == pytest.approx(4.0)
    assert p.publish_pose_once() is True
    msg = decode_pose(poses[0])
    # native z (forward) becomes published x
    np.testing.assert_allclose(msg.position, [4.0, 0.0, 0.0], atol=1e-12)
    assert msg.frame_id == "world"
    assert msg.stamp == pytest.approx(54.0)


def test_world_point_frame() -> None:
    transport = InMemoryTransport()
    received = _collect(transport)
    p = _pipeline(transport, point_frame="world", mount=Pose.from_xyz_rpy((0.0, 2.0, 0.0), (0.0, 0.0, 0.0)))
    p.scan_once()
    p.publish_once()
    np.testing.assert_allclose(decode_message(received[0]).xyz()[:, 2], 0.0, atol=1e-4)


def test_scan_and_publish_run_concurrently() -> None:
    transport = InMemoryTransport()
    received = _collect(transport)
    p = _pipeline(
        transport,
        clock=time.time,
        publish=PublishConfig(publish_frequency_hz=10.0, max_points_per_message=500),
        log_interval_s=0.5,
    )
    with p:
        assert p.is_scanning and p.is_publishing
        deadline = time.monotonic() + 5.0
        while len(received) < 3 and time.monotonic() < deadline:
            time.sleep(0.02)
    assert not p.is_scanning and not p.is_publishing
    assert len(received) >= 3
    assert all(decode_message(raw).width == 500 for raw in received)
    assert p.stats().cycles >= 1


def test_shutdown_keeps_buffer_for_drain() -> None:
    transport = InMemoryTransport()
    received = _collect(transport)
    p = _pipeline(transport)
    p.scan_once()
    p.shutdown()
    assert p.buffer.has_data
    assert p.drain() is True
    assert len(received) == 1


def test_status_log(caplog: pytest.LogCaptureFixture) -> None:
    p = _pipeline()
    p.scan_once()
    with caplog.at_level("INFO", logger="lidarsim"):
        p.log_status()
    assert "Lidar status" in caplog.text
