"""Configuration objects and YAML loading for lidarsim."""

from .schema import (
    SimulationConfig,
    load_config,
)
from .settings import PoseConfig, PublishConfig, ScanConfig

__all__ = ["SimulationConfig", "load_config", "ScanConfig", "PublishConfig", "PoseConfig"]
