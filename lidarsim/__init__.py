"""lidarsim – simulated multi-beam lidar with a scan/publish pipeline.

- ScanConfig / PublishConfig / PoseConfig (config.settings)
- Beam pattern generation (core.pattern)
- Scene queries: PlaneScene, MeshScene, SceneGroup (core.scene)
- RayCaster & ScanCycleResult (core.raycaster)
- PointCloudBuffer & PublishSnapshot (core.buffer)
- Simulation → published frame mapping (core.frames)
- PointCloud2 / PoseStamped wire codec (core.wire)
- PeriodicTask and the LidarPipeline that drives the scan and publish loops
- In-memory and ZeroMQ transports (transport)
"""

from .config.settings import PoseConfig, PublishConfig, ScanConfig
from .core.pattern import Beam, ScanPattern, generate_beams
from .core.scene import MeshScene, PlaneScene, RayHit, SceneGroup, SceneQuery
from .core.raycaster import RayCaster, ScanCycleResult
from .core.buffer import PointCloudBuffer, PublishSnapshot
from .core.frames import to_publish_frame, pose_to_publish_frame
from .core.wire import WireMessage, PoseMessage, encode, encode_pose, decode_message, decode_pose
from .core.scheduler import PeriodicTask
from .errors import (
    LidarSimError,
    ConfigurationError,
    SceneUnavailableError,
    EncodingInvariantViolation,
    TransportError,
)
from .motion import Pose, StaticTrajectory, PolylineTrajectory
from .pipeline import LidarPipeline, PipelineStats
from .transport import InMemoryTransport, ZmqTransport

__version__ = "0.1.0"
