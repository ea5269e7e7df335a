"""Scan and publish loops of the simulated lidar.

Two independent periodic tasks share a single :class:`PointCloudBuffer`:

* the scan task samples the vehicle trajectory, casts the full beam pattern
  and replaces the buffer with the completed cycle;
* the publish task snapshots the buffer, converts the points to the
  published frame, encodes them and hands the bytes to the transport.

Optional pose and status tasks publish vehicle pose telemetry and log a
periodic summary.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .config.settings import PoseConfig, PublishConfig, ScanConfig
from .core.buffer import PointCloudBuffer
from .core.raycaster import PointFrame, RayCaster
from .core.scene import SceneQuery
from .core.scheduler import PeriodicTask
from .core.utils import get_logger
from .core.wire import POINTCLOUD2_SCHEMA, POSE_STAMPED_SCHEMA, encode, encode_pose
from .errors import EncodingInvariantViolation, TransportError
from .motion.pose import Pose
from .motion.trajectory import StaticTrajectory, Trajectory
from .transport.base import Transport

_log = get_logger()

DEFAULT_MOUNT = Pose.from_xyz_rpy((0.0, 1.5, 0.0), (0.0, 0.0, 0.0))


@dataclass(frozen=True)
class PipelineStats:
    cycles: int
    published: int
    skipped: int
    dropped: int
    poses_published: int
    last_point_count: int
    last_publish_stamp: Optional[float]


class LidarPipeline:
    """Owns the scan, publish, pose and status tasks of one simulated sensor.

    Parameters
    ----------
    scene:
        Anything implementing :class:`~lidarsim.core.scene.SceneQuery`.
    trajectory:
        Vehicle motion, sampled at the elapsed time since construction.
        ``None`` parks the vehicle at the origin.
    transport:
        Destination of the encoded messages. Topics are registered here.
    scan, publish, pose:
        Runtime settings. ``pose=None`` disables pose telemetry.
    mount:
        Sensor pose in the vehicle frame, defaults to 1.5 m above the origin.
    point_frame:
        ``"sensor"`` (default) or ``"world"`` coordinates in published clouds.
    clock:
        Wall clock used for stamps and trajectory time.
    log_interval_s:
        Period of the INFO status summary; ``None`` disables it.
    """

    def __init__(
        self,
        scene: SceneQuery,
        trajectory: Optional[Trajectory],
        transport: Transport,
        scan: Optional[ScanConfig] = None,
        publish: Optional[PublishConfig] = None,
        pose: Optional[PoseConfig] = None,
        mount: Optional[Pose] = None,
        point_frame: PointFrame = "sensor",
        clock: Callable[[], float] = time.time,
        log_interval_s: Optional[float] = None,
    ) -> None:
        scan = scan or ScanConfig()
        self._publish_cfg = publish or PublishConfig()
        self._pose_cfg = pose if pose is not None and pose.enabled else None
        self.trajectory = trajectory or StaticTrajectory(Pose.identity())
        self.transport = transport
        self.buffer = PointCloudBuffer()
        self._caster = RayCaster(scene, scan, mount if mount is not None else DEFAULT_MOUNT, point_frame)
        self._clock = clock
        self._start_time = clock()
        self._pending_scan: Optional[ScanConfig] = None
        self._reload_lock = threading.Lock()

        self._stats_lock = threading.Lock()
        self._cycles = 0
        self._published = 0
        self._skipped = 0
        self._dropped = 0
        self._poses_published = 0
        self._last_publish_stamp: Optional[float] = None

        transport.register_topic(self._publish_cfg.topic_name, POINTCLOUD2_SCHEMA)
        if self._pose_cfg is not None:
            transport.register_topic(self._pose_cfg.topic_name, POSE_STAMPED_SCHEMA)

        self._scan_task = PeriodicTask("scan", scan.scan_period_s, self.scan_once)
        self._publish_task = PeriodicTask("publish", self._publish_cfg.publish_period_s, self.publish_once)
        self._pose_task = (
            PeriodicTask("pose", self._pose_cfg.publish_period_s, self.publish_pose_once)
            if self._pose_cfg is not None
            else None
        )
        self._status_task = (
            PeriodicTask("status", log_interval_s, self.log_status) if log_interval_s else None
        )

    # ------------------------------------------------------------------
    # configuration

    @property
    def scan_config(self) -> ScanConfig:
        with self._reload_lock:
            pending = self._pending_scan
        return pending if pending is not None else self._caster.config

    @property
    def publish_config(self) -> PublishConfig:
        return self._publish_cfg

    @property
    def pose_config(self) -> Optional[PoseConfig]:
        return self._pose_cfg

    @property
    def raycaster(self) -> RayCaster:
        return self._caster

    def elapsed(self) -> float:
        return self._clock() - self._start_time

    def reload_scan_config(self, config: ScanConfig) -> None:
        """Use ``config`` from the next scan cycle on; the current cycle is unaffected."""
        with self._reload_lock:
            self._pending_scan = config
        if config.scan_period_s != self._scan_task.period_s:
            self._scan_task.set_period(config.scan_period_s)
        _log.info(
            "Scan configuration reloaded: %d x %d beams at %.1f Hz",
            config.horizontal_steps, config.vertical_steps, config.scan_frequency_hz,
        )

    def _update_publish(self, **changes) -> None:
        self._publish_cfg = self._publish_cfg.replace(**changes)
        self._publish_task.set_period(self._publish_cfg.publish_period_s)

    def set_publish_frequency(self, hz: float) -> None:
        self._update_publish(publish_frequency_hz=hz)
        _log.info("Publish frequency set to %.1f Hz", self._publish_cfg.publish_frequency_hz)

    def set_max_points_per_message(self, max_points: int) -> None:
        self._update_publish(max_points_per_message=max_points)
        _log.info("Max points per message set to %d", self._publish_cfg.max_points_per_message)

    def set_frame_id(self, frame_id: str) -> None:
        self._update_publish(frame_id=frame_id)
        _log.info("Frame ID set to %s", self._publish_cfg.frame_id)

    # ------------------------------------------------------------------
    # single ticks

    def scan_once(self) -> int:
        """Run one full scan cycle and replace the buffer. Returns the point count."""
        with self._reload_lock:
            pending, self._pending_scan = self._pending_scan, None
        if pending is not None:
            self._caster.reconfigure(pending)
        with self._stats_lock:
            cycle_id = self._cycles
            self._cycles += 1
        stamp = self._clock()
        vehicle_pose = self.trajectory.sample(stamp - self._start_time)
        result = self._caster.cast(vehicle_pose, stamp=stamp, cycle_id=cycle_id)
        self.buffer.replace(result)
        return len(result)

    def publish_once(self) -> bool:
        """Publish the latest cycle. Returns False when nothing was sent."""
        cfg = self._publish_cfg
        snapshot = self.buffer.snapshot(cfg.max_points_per_message)
        if snapshot is None:
            with self._stats_lock:
                self._skipped += 1
            return False
        try:
            message = encode(snapshot, cfg.frame_id, snapshot.stamp)
            self.transport.publish(cfg.topic_name, message.to_bytes())
        except EncodingInvariantViolation as exc:
            _log.error("Dropping point cloud of cycle %d: %s", snapshot.cycle_id, exc)
            with self._stats_lock:
                self._dropped += 1
            return False
        except TransportError as exc:
            _log.warning("Dropping point cloud of cycle %d: %s", snapshot.cycle_id, exc)
            with self._stats_lock:
                self._dropped += 1
            return False
        with self._stats_lock:
            self._published += 1
            self._last_publish_stamp = message.stamp
            count = self._published
        if snapshot.truncated:
            _log.debug(
                "Cycle %d truncated from %d to %d points",
                snapshot.cycle_id, snapshot.source_point_count, len(snapshot),
            )
        _log.debug("Published point cloud: %d points (message #%d)", message.point_count, count)
        return True

    def publish_pose_once(self) -> bool:
        cfg = self._pose_cfg
        if cfg is None:
            return False
        stamp = self._clock()
        vehicle_pose = self.trajectory.sample(stamp - self._start_time)
        message = encode_pose(vehicle_pose, cfg.frame_id, stamp)
        try:
            self.transport.publish(cfg.topic_name, message.to_bytes())
        except TransportError as exc:
            _log.warning("Dropping pose message: %s", exc)
            return False
        with self._stats_lock:
            self._poses_published += 1
        return True

    def drain(self) -> bool:
        """Publish the buffered cycle once more, e.g. after :meth:`shutdown`."""
        return self.publish_once()

    def stats(self) -> PipelineStats:
        with self._stats_lock:
            return PipelineStats(
                cycles=self._cycles,
                published=self._published,
                skipped=self._skipped,
                dropped=self._dropped,
                poses_published=self._poses_published,
                last_point_count=self.buffer.point_count,
                last_publish_stamp=self._last_publish_stamp,
            )

    def log_status(self) -> None:
        cfg = self._publish_cfg
        scan = self._caster.config
        stats = self.stats()
        last = self.buffer.last_stamp
        _log.info(
            "Lidar status: topic=%s frame=%s publish=%.1fHz scan=%.1fHz max_points=%d "
            "published=%d dropped=%d publishing=%s scanning=%s points=%d last_scan=%s",
            cfg.topic_name, cfg.frame_id, cfg.publish_frequency_hz, scan.scan_frequency_hz,
            cfg.max_points_per_message, stats.published, stats.dropped,
            self.is_publishing, self.is_scanning, stats.last_point_count,
            "never" if last is None else f"{last:.3f}",
        )

    # ------------------------------------------------------------------
    # task control

    @property
    def is_scanning(self) -> bool:
        return self._scan_task.is_running

    @property
    def is_publishing(self) -> bool:
        return self._publish_task.is_running

    def start_scanning(self) -> None:
        self._scan_task.start()

    def stop_scanning(self) -> None:
        self._scan_task.stop()

    def start_publishing(self) -> None:
        self._publish_task.start()
        _log.info(
            "Started publishing point clouds on %s at %.1f Hz",
            self._publish_cfg.topic_name, self._publish_cfg.publish_frequency_hz,
        )

    def stop_publishing(self) -> None:
        self._publish_task.stop()
        _log.info("Stopped publishing point clouds")

    def _tasks(self):
        return [t for t in (self._scan_task, self._publish_task, self._pose_task, self._status_task) if t is not None]

    def start(self) -> None:
        self.start_scanning()
        self.start_publishing()
        if self._pose_task is not None:
            self._pose_task.start()
        if self._status_task is not None:
            self._status_task.start()

    def stop(self) -> None:
        for task in self._tasks():
            task.stop()

    def shutdown(self, timeout: float = 2.0) -> None:
        """Stop every task and wait for in-flight ticks. The buffer is kept."""
        self.stop()
        for task in self._tasks():
            if not task.join(timeout):
                _log.warning("Task '%s' did not stop within %.1fs", task.name, timeout)

    def __enter__(self) -> "LidarPipeline":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()
