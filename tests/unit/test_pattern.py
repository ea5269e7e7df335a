import numpy as np
import pytest

from lidarsim.config.settings import ScanConfig
from lidarsim.core.pattern import Beam, ScanPattern, beam_direction, generate_beams


def test_beam_order_is_vertical_major() -> None:
    cfg = ScanConfig(horizontal_resolution_deg=2.0, vertical_resolution_deg=2.0,
                     min_vertical_angle_deg=-10.0, max_vertical_angle_deg=10.0)
    beams = generate_beams(cfg)
    assert len(beams) == cfg.total_beams_per_cycle == 180 * 11
    assert beams[0] == Beam(-10.0, 0.0)
    assert beams[1] == Beam(-10.0, 2.0)
    assert beams[179] == Beam(-10.0, 358.0)
    assert beams[180] == Beam(-8.0, 0.0)
    assert beams[-1] == Beam(10.0, 358.0)


def test_generation_is_deterministic() -> None:
    a = generate_beams(ScanConfig(horizontal_resolution_deg=1.5))
    b = generate_beams(ScanConfig(horizontal_resolution_deg=1.5))
    assert a == b


def test_beam_directions_follow_sensor_axes() -> None:
    np.testing.assert_allclose(beam_direction(0.0, 0.0), [0.0, 0.0, 1.0], atol=1e-12)
    np.testing.assert_allclose(beam_direction(0.0, 90.0), [1.0, 0.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(beam_direction(30.0, 0.0), [0.0, 0.5, np.sqrt(3) / 2], atol=1e-12)
    np.testing.assert_allclose(beam_direction(-30.0, 0.0), [0.0, -0.5, np.sqrt(3) / 2], atol=1e-12)


def test_pattern_arrays_are_unit_and_read_only() -> None:
    pattern = ScanPattern(ScanConfig(horizontal_resolution_deg=2.0, vertical_resolution_deg=2.0))
    dirs = pattern.directions()
    angles = pattern.angles_deg()
    assert dirs.shape == (pattern.total_beams, 3)
    assert angles.shape == (pattern.total_beams, 2)
    np.testing.assert_allclose(np.linalg.norm(dirs, axis=1), 1.0, atol=1e-12)
    with pytest.raises(ValueError):
        dirs[0, 0] = 1.0
    with pytest.raises(ValueError):
        angles[0, 0] = 1.0


def test_two_dimensional_sweep() -> None:
    pattern = ScanPattern(ScanConfig(min_vertical_angle_deg=0.0, max_vertical_angle_deg=0.0))
    assert pattern.total_beams == 360
    np.testing.assert_allclose(pattern.directions()[:, 1], 0.0, atol=1e-12)
