from lidarview.control.base import PointCloudControl, PointCloudLoadError
from lidarview.control.bridge import (
    BridgePointCloudControl,
    CommandStreamClosedError,
    UnknownLoadRequestError,
)
from lidarview.control.factory import create_control
from lidarview.control.simulated import SimulatedPointCloudControl

__all__ = [
    "BridgePointCloudControl",
    "CommandStreamClosedError",
    "PointCloudControl",
    "PointCloudLoadError",
    "SimulatedPointCloudControl",
    "UnknownLoadRequestError",
    "create_control",
]
