from pathlib import Path

import pytest
import yaml

from lidarsim.config import SimulationConfig, load_config
from lidarsim.config.schema import MeshSceneConfig, PolylineTrajectoryConfig, ZmqTransportConfig
from lidarsim.errors import ConfigurationError


def _write(path: Path, data) -> Path:
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f)
    return path


def test_empty_file_gives_defaults(tmp_path: Path) -> None:
    cfg_path = tmp_path / "empty.yaml"
    cfg_path.write_text("", encoding="utf-8")
    cfg = load_config(cfg_path)
    assert cfg == SimulationConfig()
    assert cfg.scan.to_settings().total_beams_per_cycle == 21960
    assert cfg.mount.xyz == (0.0, 1.5, 0.0)
    assert cfg.transport.kind == "memory"
    assert cfg.record is None


def test_full_config_round_trip(tmp_path: Path) -> None:
    data = {
        "scan": {"horizontal_resolution_deg": 0.5, "scan_frequency_hz": 20},
        "publish": {"publish_frequency_hz": 15, "max_points_per_message": 5000, "frame_id": "velodyne"},
        "pose": {"enabled": False},
        "mount": {"xyz": [0.0, 2.0, 0.5], "point_frame": "world"},
        "trajectory": {"kind": "polyline", "waypoints": [[0, 0, 0], [0, 0, 20]], "speed_mps": 5.0, "loop": True},
        "scene": {"kind": "mesh", "path": "meshes/town.ply"},
        "transport": {"kind": "zmq", "host": "0.0.0.0", "port": 10001},
        "logging": {"level": "debug", "log_interval_s": 2},
        "record": {"path": "out/run.npz", "format": "npz"},
    }
    cfg = load_config(_write(tmp_path / "sim.yaml", data))
    assert cfg.scan.to_settings().horizontal_steps == 720
    publish = cfg.publish.to_settings()
    assert publish.frame_id == "velodyne" and publish.max_points_per_message == 5000
    assert not cfg.pose.enabled
    assert isinstance(cfg.trajectory, PolylineTrajectoryConfig) and cfg.trajectory.loop
    assert isinstance(cfg.transport, ZmqTransportConfig) and cfg.transport.port == 10001
    assert cfg.logging.level == "DEBUG"
    assert isinstance(cfg.scene, MeshSceneConfig)
    assert cfg.scene.path == (tmp_path / "meshes/town.ply").resolve()
    assert cfg.record is not None and cfg.record.path == (tmp_path / "out/run.npz").resolve()


@pytest.mark.parametrize("interval, expected", [(0.1, 0.5), (3.0, 3.0), (60.0, 10.0)])
def test_log_interval_is_clamped(tmp_path: Path, interval: float, expected: float) -> None:
    cfg = load_config(_write(tmp_path / "c.yaml", {"logging": {"log_interval_s": interval}}))
    assert cfg.logging.log_interval_s == pytest.approx(expected)


@pytest.mark.parametrize(
    "data",
    [
        {"scan": {"vertical_resolution_deg": 5.0}},
        {"scan": {"min_vertical_angle_deg": 20, "max_vertical_angle_deg": 10}},
        {"publish": {"publish_frequency_hz": 120}},
        {"trajectory": {"kind": "teleport"}},
        {"trajectory": {"kind": "polyline", "waypoints": [[0, 0, 0]], "speed_mps": 1.0}},
        {"logging": {"level": "LOUD"}},
        ["not", "a", "mapping"],
    ],
)
def test_invalid_configs_raise_configuration_error(tmp_path: Path, data) -> None:
    with pytest.raises(ConfigurationError):
        load_config(_write(tmp_path / "bad.yaml", data))


def test_malformed_yaml(tmp_path: Path) -> None:
    cfg_path = tmp_path / "broken.yaml"
    cfg_path.write_text("scan: [unterminated\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(cfg_path)
