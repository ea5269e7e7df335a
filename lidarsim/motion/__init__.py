from .pose import Pose
from .trajectory import Trajectory, StaticTrajectory, PolylineTrajectory

__all__ = ["Pose", "Trajectory", "StaticTrajectory", "PolylineTrajectory"]
