from __future__ import annotations

from typing import Optional

from ..config import SimulationConfig
from ..core.scene import MeshScene, PlaneScene, SceneQuery
from ..examples.environment import environment_scene
from ..export.recorder import FrameWriter, LasWriter, NpzWriter, PlyWriter, SnapshotRecorder
from ..motion.pose import Pose
from ..motion.trajectory import PolylineTrajectory, StaticTrajectory, Trajectory
from ..pipeline import LidarPipeline
from ..transport import InMemoryTransport, Transport, ZmqTransport


def build_scene(cfg: SimulationConfig) -> SceneQuery:
    scene_cfg = cfg.scene
    if scene_cfg.kind == "plane":
        return PlaneScene(point=scene_cfg.point, normal=scene_cfg.normal)
    if scene_cfg.kind == "mesh":
        return MeshScene(scene_cfg.path)
    if scene_cfg.kind == "environment":
        return environment_scene(
            ground_size=scene_cfg.ground_size_m,
            obstacle_count=scene_cfg.obstacle_count,
            obstacle_radius=scene_cfg.obstacle_radius_m,
            seed=scene_cfg.seed,
        )
    raise ValueError(f"Unsupported scene kind: {scene_cfg.kind}")


def build_trajectory(cfg: SimulationConfig) -> Trajectory:
    traj_cfg = cfg.trajectory
    if traj_cfg.kind == "static":
        return StaticTrajectory(Pose.from_xyz_rpy(traj_cfg.xyz, traj_cfg.rpy_deg))
    if traj_cfg.kind == "polyline":
        return PolylineTrajectory(traj_cfg.waypoints, speed_mps=traj_cfg.speed_mps, loop=traj_cfg.loop)
    raise ValueError(f"Unsupported trajectory kind: {traj_cfg.kind}")


def build_transport(cfg: SimulationConfig) -> Transport:
    transport_cfg = cfg.transport
    if transport_cfg.kind == "memory":
        return InMemoryTransport()
    if transport_cfg.kind == "zmq":
        transport = ZmqTransport()
        transport.configure(host=transport_cfg.host, port=transport_cfg.port)
        return transport
    raise ValueError(f"Unsupported transport kind: {transport_cfg.kind}")


def build_mount(cfg: SimulationConfig) -> Pose:
    return Pose.from_xyz_rpy(cfg.mount.xyz, cfg.mount.rpy_deg)


def build_pipeline(
    cfg: SimulationConfig,
    transport: Optional[Transport] = None,
    scene: Optional[SceneQuery] = None,
) -> LidarPipeline:
    return LidarPipeline(
        scene=scene if scene is not None else build_scene(cfg),
        trajectory=build_trajectory(cfg),
        transport=transport if transport is not None else build_transport(cfg),
        scan=cfg.scan.to_settings(),
        publish=cfg.publish.to_settings(),
        pose=cfg.pose.to_settings(),
        mount=build_mount(cfg),
        point_frame=cfg.mount.point_frame,
        log_interval_s=cfg.logging.log_interval_s,
    )


def build_writer(cfg: SimulationConfig) -> Optional[FrameWriter]:
    record_cfg = cfg.record
    if record_cfg is None:
        return None
    fmt = record_cfg.format.lower()
    if fmt in {"las", "laz"}:
        return LasWriter(str(record_cfg.path), compress=fmt == "laz")
    if fmt == "npz":
        return NpzWriter(str(record_cfg.path))
    if fmt == "ply":
        return PlyWriter(str(record_cfg.path))
    raise ValueError(f"Unsupported record format: {record_cfg.format}")


def build_recorder(cfg: SimulationConfig, transport: Transport) -> Optional[SnapshotRecorder]:
    writer = build_writer(cfg)
    if writer is None:
        return None
    recorder = SnapshotRecorder(writer)
    recorder.attach(transport, cfg.publish.topic_name)
    return recorder
